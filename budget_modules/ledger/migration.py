"""
Legacy Store Migration (``budget_modules.ledger.migration``).

Responsibility
--------------
One-shot, idempotent transfer of the legacy flat-store blob (a JSON array of
full version snapshots under a single key) into the relational
``budget_versions`` table.

Architecture position
---------------------
**Modules layer** -- service.  Runs once at startup, driven by
``VersionManager``, before any version is loaded or mutated.

Invariants enforced
-------------------
* Idempotent: a version whose id already exists in the relational store is
  skipped, so re-running never creates duplicates.
* All inserts of one run commit together.
* The legacy blob is never overwritten or deleted; a timestamped backup
  copy is written after the commit.

Failure modes
-------------
* ``LegacyDataDecodeError`` when the blob exists but cannot be decoded.
* ``MigrationError`` when the relational write fails; the transaction is
  rolled back, nothing is partially migrated, and a later run retries.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import session_scope
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import LegacyDataDecodeError, MigrationError
from budget_kernel.logging_config import get_logger
from budget_kernel.services.key_value_store import KeyValueStore
from budget_modules.ledger.codec import decode_versions
from budget_modules.ledger.config import LedgerConfig
from budget_modules.ledger.models import BudgetVersion
from budget_modules.ledger.orm import BudgetVersionModel

logger = get_logger("modules.ledger.migration")


@dataclass(frozen=True)
class MigrationOutcome:
    migrated: int
    skipped: int
    backup_key: str | None = None


class MigrationManager:
    """
    Moves legacy version snapshots into the relational store.

    Contract:
        ``migrate()`` returns ``(migrated, skipped)``.  Absence of legacy
        data is not an error and yields ``(0, 0)``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        key_value_store: KeyValueStore,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
    ):
        self._session_factory = session_factory
        self._store = key_value_store
        self._clock = clock or SystemClock()
        self._config = config or LedgerConfig.with_defaults()
        self.last_outcome: MigrationOutcome | None = None

    @property
    def legacy_key(self) -> str:
        return self._config.legacy_store_key

    def _legacy_versions(self) -> tuple[BudgetVersion, ...] | None:
        """Decoded legacy versions, or None when no blob is stored."""
        raw = self._store.get(self.legacy_key)
        if raw is None:
            return None
        return decode_versions(raw, self.legacy_key)

    def needs_migration(self) -> bool:
        """True iff the legacy blob exists, decodes, and is non-empty."""
        try:
            versions = self._legacy_versions()
        except LegacyDataDecodeError:
            logger.warning("legacy_data_undecodable", extra={"key": self.legacy_key})
            return False
        return bool(versions)

    def migrate(self) -> tuple[int, int]:
        """Copy every legacy version not yet present; returns (migrated, skipped)."""
        raw = self._store.get(self.legacy_key)
        if raw is None:
            logger.info("migration_no_legacy_data", extra={"key": self.legacy_key})
            self.last_outcome = MigrationOutcome(0, 0)
            return (0, 0)

        versions = decode_versions(raw, self.legacy_key)
        logger.info("migration_started", extra={"version_count": len(versions)})

        migrated = skipped = 0
        try:
            with session_scope(self._session_factory) as session:
                for version in versions:
                    if session.get(BudgetVersionModel, version.id) is not None:
                        logger.info(
                            "migration_version_skipped",
                            extra={"version_id": str(version.id), "name": version.name},
                        )
                        skipped += 1
                        continue
                    session.add(BudgetVersionModel.from_dto(version, created_by="migration"))
                    session.flush()
                    migrated += 1
        except SQLAlchemyError as exc:
            logger.error(
                "migration_failed",
                extra={"key": self.legacy_key, "error": str(exc)},
                exc_info=True,
            )
            raise MigrationError(str(exc)) from exc

        backup_key = f"{self._config.backup_key_prefix}{self._clock.now().timestamp()}"
        self._store.set(backup_key, raw)
        self.last_outcome = MigrationOutcome(migrated, skipped, backup_key)

        logger.info(
            "migration_completed",
            extra={"migrated": migrated, "skipped": skipped, "backup_key": backup_key},
        )
        return (migrated, skipped)

    def verify(self) -> bool:
        """Relational count >= legacy count.  No legacy data passes trivially."""
        try:
            versions = self._legacy_versions()
        except LegacyDataDecodeError:
            return True
        if versions is None:
            return True
        with session_scope(self._session_factory) as session:
            stored = session.scalar(select(func.count()).select_from(BudgetVersionModel)) or 0
        logger.info(
            "migration_verified",
            extra={"legacy_count": len(versions), "relational_count": stored},
        )
        return stored >= len(versions)

    def backup_keys(self) -> list[str]:
        """Keys of every backup written so far, oldest first."""
        return self._store.keys(self._config.backup_key_prefix)
