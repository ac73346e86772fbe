"""
Module: budget_kernel.services.audit_trail
Responsibility: Append-only change log for every budget mutation.
Architecture position: Kernel > Services.  May import from models/, db/,
    domain/.  Constructed once at startup and handed to every manager that
    needs to append (VersionManager, PayrollManager, RateCardManager); there
    is no process-wide singleton.

Invariants enforced:
    - Appends are linearized by a single writer lock, so concurrent callers
      never interleave and ``seq`` is gap-free in insertion order.
    - Callers that append inside their own transaction hold ``writer()``
      around that transaction, so ``seq`` is allocated and committed before
      any other append reads ``max(seq)``.
    - Rows are never updated or deleted (see db/immutability.py).
    - occurred_at comes from the injected Clock, not the caller.

Failure modes:
    - AuditWriteError when the store rejects a stand-alone append.  When the
      caller supplies its own session the driver error propagates so the
      caller's transaction rolls back as a whole.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import session_scope
from budget_kernel.domain.clock import Clock, SystemClock, as_utc
from budget_kernel.exceptions import AuditWriteError
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models.audit_entry import AuditAction, AuditEntryModel

logger = get_logger("services.audit_trail")


@dataclass(frozen=True)
class AuditEntry:
    """A single recorded change."""

    id: UUID
    seq: int
    action: AuditAction
    entity_type: str
    entity_id: UUID
    detail: str
    occurred_at: datetime
    actor: str = "system"
    previous_value: str | None = None
    new_value: str | None = None


class AuditTrail:
    """
    Append-only audit log handle.

    Contract:
        ``record_change`` is the only write path.  Read helpers return
        entries newest first.

    Guarantees:
        - Thread-safe: a reentrant writer lock serializes every append.
        - With ``session=None`` the append commits in its own transaction.
        - With an explicit ``session`` the entry joins that transaction and
          commits or rolls back with the caller's change.  The caller must
          open that transaction inside ``writer()``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        default_actor: str = "system",
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._default_actor = default_actor
        self._lock = threading.RLock()

    # =========================================================================
    # Write path
    # =========================================================================

    @contextmanager
    def writer(self) -> Iterator[AuditTrail]:
        """
        Hold the append lock for the duration of a caller's transaction.

        Usage::

            with trail.writer(), session_scope(factory) as session:
                session.add(model)
                trail.record_change(..., session=session)
        """
        with self._lock:
            yield self

    def record_change(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        detail: str,
        *,
        previous_value: str | None = None,
        new_value: str | None = None,
        actor: str | None = None,
        session: Session | None = None,
    ) -> AuditEntry:
        """Append one immutable entry and return it."""
        actor = actor or LogContext.get_all().get("actor") or self._default_actor
        with self._lock:
            if session is not None:
                return self._append(
                    session, action, entity_type, entity_id, detail,
                    previous_value, new_value, actor,
                )
            try:
                with session_scope(self._session_factory) as own_session:
                    return self._append(
                        own_session, action, entity_type, entity_id, detail,
                        previous_value, new_value, actor,
                    )
            except SQLAlchemyError as exc:
                logger.error(
                    "audit_append_failed",
                    extra={
                        "entity_type": entity_type,
                        "entity_id": str(entity_id),
                        "action": action.value,
                    },
                    exc_info=True,
                )
                raise AuditWriteError(entity_type, str(entity_id), str(exc)) from exc

    def _append(
        self,
        session: Session,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        detail: str,
        previous_value: str | None,
        new_value: str | None,
        actor: str,
    ) -> AuditEntry:
        last_seq = session.scalar(select(func.max(AuditEntryModel.seq)))
        model = AuditEntryModel(
            seq=(last_seq or 0) + 1,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            detail=detail,
            previous_value=previous_value,
            new_value=new_value,
            actor=actor,
            occurred_at=self._clock.now(),
        )
        session.add(model)
        session.flush()

        logger.info(
            "audit_entry_recorded",
            extra={
                "seq": model.seq,
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return model.to_dto()

    # =========================================================================
    # Read helpers (reporting / log viewers)
    # =========================================================================

    def _query(self, *criteria, limit: int | None = None) -> list[AuditEntry]:
        stmt = select(AuditEntryModel).where(*criteria).order_by(AuditEntryModel.seq.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with session_scope(self._session_factory) as session:
            return [row.to_dto() for row in session.scalars(stmt)]

    def entries_for(self, entity_id: UUID) -> list[AuditEntry]:
        """All entries about one entity."""
        return self._query(AuditEntryModel.entity_id == entity_id)

    def entries_for_type(self, entity_type: str) -> list[AuditEntry]:
        return self._query(AuditEntryModel.entity_type == entity_type)

    def entries_for_action(self, action: AuditAction) -> list[AuditEntry]:
        return self._query(AuditEntryModel.action == action.value)

    def entries_between(self, start: datetime, end: datetime) -> list[AuditEntry]:
        """Entries with ``start <= occurred_at <= end``."""
        return self._query(
            AuditEntryModel.occurred_at >= as_utc(start),
            AuditEntryModel.occurred_at <= as_utc(end),
        )

    def recent_entries(self, limit: int = 50) -> list[AuditEntry]:
        return self._query(limit=limit)

    def count(self) -> int:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(func.count()).select_from(AuditEntryModel)) or 0
