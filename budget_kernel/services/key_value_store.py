"""
Module: budget_kernel.services.key_value_store
Responsibility: Keyed text blobs backed by ``budget_key_values``.

Holds the legacy flat store that migration reads from, the timestamped
backups it writes, and per-version UI state.  Values are opaque strings;
``get_json`` / ``set_json`` add canonical JSON encoding on top.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import session_scope
from budget_kernel.logging_config import get_logger
from budget_kernel.models.key_value import KeyValueEntryModel
from budget_kernel.utils.serialization import canonicalize_json, from_json

logger = get_logger("services.key_value_store")


class KeyValueStore:
    """Get/set/delete text blobs by key."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @staticmethod
    def _find(session: Session, key: str) -> KeyValueEntryModel | None:
        return session.scalar(select(KeyValueEntryModel).where(KeyValueEntryModel.key == key))

    def get(self, key: str) -> str | None:
        with session_scope(self._session_factory) as session:
            row = self._find(session, key)
            return row.value if row is not None else None

    def set(self, key: str, value: str, *, session: Session | None = None) -> None:
        """Insert or overwrite ``key``."""
        if session is not None:
            self._upsert(session, key, value)
            return
        with session_scope(self._session_factory) as own_session:
            self._upsert(own_session, key, value)

    def _upsert(self, session: Session, key: str, value: str) -> None:
        row = self._find(session, key)
        if row is None:
            session.add(KeyValueEntryModel(key=key, value=value))
        else:
            row.value = value
        session.flush()
        logger.debug("key_value_written", extra={"key": key, "length": len(value)})

    def delete(self, key: str) -> bool:
        """Remove ``key``; returns False when it did not exist."""
        with session_scope(self._session_factory) as session:
            row = self._find(session, key)
            if row is None:
                return False
            session.delete(row)
            return True

    def keys(self, prefix: str = "") -> list[str]:
        """All keys starting with ``prefix``, sorted."""
        stmt = select(KeyValueEntryModel.key).order_by(KeyValueEntryModel.key)
        if prefix:
            stmt = stmt.where(KeyValueEntryModel.key.startswith(prefix, autoescape=True))
        with session_scope(self._session_factory) as session:
            return list(session.scalars(stmt))

    def get_json(self, key: str, default: Any = None) -> Any:
        return from_json(self.get(key), default)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, canonicalize_json(value))
