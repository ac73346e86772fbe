"""
Version Manager (``budget_modules.ledger.service``).

Responsibility
--------------
Top-level orchestrator of the ledger: owns the list of budget versions and
the "selected" version, runs the legacy migration once before the first
load, and funnels every version-scoped mutation (line items, transactions,
payroll, lock state, naming) through the validation gate, the relational
store and the audit trail.

Architecture position
---------------------
**Modules layer** -- service facade.  The only component other subsystems
should depend on directly.  Delegates payroll operations to
``PayrollManager`` (``self.payroll``) and single-transaction edits to
``TransactionManager`` (``self.transactions``); both commit back through
``update_payroll_items`` / ``update_transactions``.

Invariants enforced
-------------------
* While a version is locked, line items, transactions, payroll, notes,
  currency and (unless ``allow_rename_when_locked``) the name cannot change.
  Only unlock, delete and duplicate are accepted.
* The version list is never empty after ``start()``: first boot and deleting
  the last version both create a default version.
* Migration runs at most once per manager and always before the first load.
* Each mutation writes the version row and its audit entries in ONE
  transaction; the in-memory list is replaced only after the commit.

Failure modes
-------------
* Validation failures -> ``LedgerResult`` with ``REJECTED``.
* ``SQLAlchemyError`` during a mutation -> rolled back, logged as
  ``persistence_failed``, returned as ``PERSISTENCE_FAILED``; in-memory state
  is untouched and the call may be retried.
* Unknown version ids raise ``VersionNotFoundError``.
* A load failure at startup raises ``PersistenceError``.

Audit relevance
---------------
Every applied mutation records at least one ``AuditEntry``; line item and
transaction replacements record one entry per created, updated or deleted
record.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import session_scope
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import MigrationError, PersistenceError, VersionNotFoundError
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models.audit_entry import AuditAction
from budget_kernel.services.audit_trail import AuditTrail
from budget_kernel.services.key_value_store import KeyValueStore
from budget_modules.ledger.audit import (
    append_record,
    diff_records,
    line_item_record,
    transaction_record,
)
from budget_modules.ledger.config import LedgerConfig
from budget_modules.ledger.migration import MigrationManager
from budget_modules.ledger.models import ZERO, BudgetLineItem, BudgetTransaction, BudgetVersion
from budget_modules.ledger.orm import BudgetVersionModel
from budget_modules.ledger.results import AuditRecord, LedgerResult
from budget_modules.ledger.transactions import TransactionManager
from budget_modules.ledger.validation import (
    can_modify,
    validate_currency,
    validate_version_name,
)
from budget_modules.payroll.models import PayrollLineItem
from budget_modules.payroll.service import PayrollManager

logger = get_logger("modules.ledger.service")

VERSION_ENTITY = "BudgetVersion"


def _reidentify(version: BudgetVersion, name: str, created_date) -> BudgetVersion:
    """Deep copy with fresh ids for the version and everything it owns."""
    item_ids = {item.id: uuid4() for item in version.line_items}

    def remap(item_id: UUID | None) -> UUID | None:
        return item_ids.get(item_id, item_id) if item_id is not None else None

    line_items = tuple(
        replace(
            item,
            id=item_ids[item.id],
            parent_item_id=remap(item.parent_item_id),
            child_item_ids=tuple(remap(c) for c in item.child_item_ids),
        )
        for item in version.line_items
    )
    transactions = tuple(
        replace(t, id=uuid4(), line_item_id=remap(t.line_item_id))
        for t in version.transactions
    )
    payroll_items = tuple(
        replace(
            p,
            id=uuid4(),
            pay_periods=tuple(replace(period, id=uuid4()) for period in p.pay_periods),
        )
        for p in version.payroll_items
    )
    return BudgetVersion(
        id=uuid4(),
        name=name,
        created_date=created_date,
        line_items=line_items,
        transactions=transactions,
        payroll_items=payroll_items,
        currency=version.currency,
    )


class VersionManager:
    """
    Owner of every budget version and of the current selection.

    Contract:
        Call ``start()`` once before anything else.  Mutators return
        ``LedgerResult``; ``result.changed`` tells the caller to refresh.

    Guarantees:
        - Mutations are serialized by an internal lock.
        - ``versions`` is ordered newest first.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        audit_trail: AuditTrail,
        key_value_store: KeyValueStore,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        migration: MigrationManager | None = None,
    ):
        self._session_factory = session_factory
        self._audit = audit_trail
        self._store = key_value_store
        self._clock = clock or SystemClock()
        self._config = config or LedgerConfig.with_defaults()
        self._migration = migration or MigrationManager(
            session_factory, key_value_store, self._clock, self._config,
        )
        self._payroll = PayrollManager(
            self, self._clock, self._config.upcoming_payment_window_days,
        )
        self._transactions = TransactionManager(self, self._clock)
        self._versions: list[BudgetVersion] = []
        self._selected_id: UUID | None = None
        self._migration_completed = False
        self._lock = threading.RLock()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def versions(self) -> tuple[BudgetVersion, ...]:
        return tuple(self._versions)

    @property
    def selected_version(self) -> BudgetVersion:
        if self._selected_id is None:
            raise VersionNotFoundError("<none selected>")
        return self.version(self._selected_id)

    @property
    def payroll(self) -> PayrollManager:
        return self._payroll

    @property
    def transactions(self) -> TransactionManager:
        return self._transactions

    @property
    def migration(self) -> MigrationManager:
        return self._migration

    @property
    def migration_completed(self) -> bool:
        return self._migration_completed

    def version(self, version_id: UUID) -> BudgetVersion:
        for version in self._versions:
            if version.id == version_id:
                return version
        raise VersionNotFoundError(str(version_id))

    @property
    def _actor(self) -> str:
        return LogContext.get_all().get("actor") or self._config.default_actor

    # =========================================================================
    # Startup and loading
    # =========================================================================

    def start(self) -> VersionManager:
        """Migrate (once), load every version, and ensure one is selected."""
        with self._lock:
            self._migrate_once()
            self._load()
            if not self._versions:
                self._create_default()
            else:
                self._selected_id = self._versions[0].id
            logger.info(
                "ledger_started",
                extra={"version_count": len(self._versions), "selected": str(self._selected_id)},
            )
        return self

    def reload(self) -> None:
        """Re-read the store, keeping the selection when it still exists."""
        with self._lock:
            previous = self._selected_id
            self._load()
            if not self._versions:
                self._create_default()
            elif previous not in {v.id for v in self._versions}:
                self._selected_id = self._versions[0].id

    def _migrate_once(self) -> None:
        if self._migration_completed:
            return
        if not self._migration.needs_migration():
            self._migration_completed = True
            return
        try:
            migrated, skipped = self._migration.migrate()
        except MigrationError as exc:
            # Left incomplete so the next start retries.
            logger.error("migration_aborted", extra={"reason": str(exc)}, exc_info=True)
            return
        self._migration_completed = True
        logger.info("startup_migration_done", extra={"migrated": migrated, "skipped": skipped})

    def _load(self) -> None:
        stmt = select(BudgetVersionModel).order_by(BudgetVersionModel.created_date.desc())
        try:
            with session_scope(self._session_factory) as session:
                self._versions = [row.to_dto() for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            logger.error("versions_load_failed", extra={"error": str(exc)}, exc_info=True)
            raise PersistenceError("load_versions", str(exc)) from exc
        logger.info("versions_loaded", extra={"version_count": len(self._versions)})

    def _create_default(self) -> BudgetVersion:
        version = BudgetVersion(
            id=uuid4(),
            name=self._config.default_version_name,
            created_date=self._clock.now(),
            currency=self._config.default_currency,
        )
        reason = self._write(
            "create_default_version",
            version.id,
            lambda session: self._upsert(session, version),
            [AuditRecord(AuditAction.CREATED, VERSION_ENTITY, version.id, f"Created version '{version.name}'")],
        )
        if reason is not None:
            raise PersistenceError("create_default_version", reason)
        self._versions.insert(0, version)
        self._selected_id = version.id
        logger.info("default_version_created", extra={"version_id": str(version.id)})
        return version

    # =========================================================================
    # Persistence plumbing
    # =========================================================================

    def _upsert(self, session: Session, version: BudgetVersion) -> None:
        model = session.get(BudgetVersionModel, version.id)
        if model is None:
            session.add(BudgetVersionModel.from_dto(version, created_by=self._actor))
        else:
            model.apply(version, updated_by=self._actor)
        session.flush()

    def _write(
        self,
        operation: str,
        version_id: UUID,
        apply: Callable[[Session], None],
        audits: Sequence[AuditRecord],
    ) -> str | None:
        """Run ``apply`` and append ``audits`` in one transaction.

        Returns None on success, or the failure reason after rollback.
        """
        try:
            with self._audit.writer(), session_scope(self._session_factory) as session:
                apply(session)
                for record in audits:
                    append_record(self._audit, record, actor=self._actor, session=session)
        except SQLAlchemyError as exc:
            logger.error(
                "persistence_failed",
                extra={"operation": operation, "version_id": str(version_id), "error": str(exc)},
                exc_info=True,
            )
            return str(exc)
        return None

    def _replace_in_memory(self, version: BudgetVersion) -> None:
        self._versions = [version if v.id == version.id else v for v in self._versions]

    def _mutate(
        self,
        version_id: UUID,
        operation: str,
        build: Callable[[BudgetVersion], BudgetVersion],
        audits: Callable[[BudgetVersion, BudgetVersion], Sequence[AuditRecord]],
        *,
        gated: bool = True,
    ) -> LedgerResult:
        """Gate, build, persist, audit, then swap the in-memory copy."""
        with self._lock, LogContext.bind(version_id=str(version_id), operation=operation):
            version = self.version(version_id)
            if gated:
                check = can_modify(version)
                if not check:
                    logger.warning(
                        "mutation_rejected",
                        extra={"operation": operation, "kind": check.kind.value},
                    )
                    return LedgerResult.rejected(check, version)

            updated = build(version)
            reason = self._write(
                operation, version_id,
                lambda session: self._upsert(session, updated),
                audits(version, updated),
            )
            if reason is not None:
                return LedgerResult.persistence_failed(reason, version)

            self._replace_in_memory(updated)
            logger.info("version_mutated", extra={"operation": operation})
            return LedgerResult.applied(updated)

    # =========================================================================
    # Selection and side-channel UI state
    # =========================================================================

    def select_version(self, version_id: UUID) -> BudgetVersion:
        """Make ``version_id`` current.  A change of selection is audited."""
        with self._lock:
            version = self.version(version_id)
            if version.id != self._selected_id:
                append_record(
                    self._audit,
                    AuditRecord(
                        AuditAction.VERSION_SELECTED, VERSION_ENTITY, version.id,
                        f"Selected version '{version.name}'",
                    ),
                    actor=self._actor,
                )
            self._selected_id = version.id
        logger.debug(
            "version_selected",
            extra={
                "version_id": str(version.id),
                "expanded_sections": len(self.expanded_sections(version.id)),
            },
        )
        return version

    def _sections_key(self, version_id: UUID) -> str:
        return f"{self._config.expanded_sections_key_prefix}{version_id}"

    def expanded_sections(self, version_id: UUID | None = None) -> set[str]:
        version_id = version_id or self.selected_version.id
        return set(self._store.get_json(self._sections_key(version_id), default=[]))

    def set_expanded_sections(self, sections: Iterable[str], version_id: UUID | None = None) -> None:
        version_id = version_id or self.selected_version.id
        self._store.set_json(self._sections_key(version_id), sorted(set(sections)))

    def clear_expanded_sections(self, version_id: UUID) -> None:
        self._store.delete(self._sections_key(version_id))

    # =========================================================================
    # Version lifecycle
    # =========================================================================

    def create_version(self, name: str, copy_from_current: bool = True) -> LedgerResult:
        """
        Create and select a new version.

        With ``copy_from_current`` the selected version's line-item skeleton
        (name, account, category, subcategory, section) is copied with fresh
        ids and zeroed quantity, days and unit cost.
        """
        check = validate_version_name(name)
        if not check:
            return LedgerResult.rejected(check)

        line_items: tuple[BudgetLineItem, ...] = ()
        if copy_from_current and self._selected_id is not None:
            line_items = tuple(
                BudgetLineItem(
                    name=item.name,
                    account=item.account,
                    category=item.category,
                    subcategory=item.subcategory,
                    section=item.section,
                    quantity=ZERO,
                    days=ZERO,
                    unit_cost=ZERO,
                )
                for item in self.selected_version.line_items
            )
        version = BudgetVersion(
            id=uuid4(),
            name=name,
            created_date=self._clock.now(),
            line_items=line_items,
            currency=self._config.default_currency,
        )
        return self._insert(
            version,
            "create_version",
            AuditRecord(AuditAction.CREATED, VERSION_ENTITY, version.id, f"Created version '{name}'"),
        )

    def duplicate_version(self, version_id: UUID) -> LedgerResult:
        """Full deep copy with fresh ids, unlocked, named ``<name> (Copy)``."""
        source = self.version(version_id)
        copy = _reidentify(source, f"{source.name} (Copy)", self._clock.now())
        return self._insert(
            copy,
            "duplicate_version",
            AuditRecord(
                AuditAction.DUPLICATED, VERSION_ENTITY, copy.id,
                f"Duplicated from '{source.name}'",
            ),
        )

    def _insert(self, version: BudgetVersion, operation: str, record: AuditRecord) -> LedgerResult:
        with self._lock, LogContext.bind(version_id=str(version.id), operation=operation):
            reason = self._write(
                operation, version.id,
                lambda session: self._upsert(session, version),
                [record],
            )
            if reason is not None:
                return LedgerResult.persistence_failed(reason)
            self._versions.insert(0, version)
            self._selected_id = version.id
            logger.info("version_created", extra={"name": version.name})
            return LedgerResult.applied(version)

    def rename_version(self, version_id: UUID, new_name: str) -> LedgerResult:
        check = validate_version_name(new_name)
        if not check:
            return LedgerResult.rejected(check, self.version(version_id))
        return self._mutate(
            version_id,
            "rename_version",
            lambda v: replace(v, name=new_name),
            lambda old, new: [
                AuditRecord(
                    AuditAction.UPDATED, VERSION_ENTITY, old.id,
                    f"Renamed from '{old.name}' to '{new.name}'",
                    previous_value=old.name,
                    new_value=new.name,
                ),
            ],
            gated=not self._config.allow_rename_when_locked,
        )

    def lock_version(self, version_id: UUID) -> LedgerResult:
        now, actor = self._clock.now(), self._actor
        return self._mutate(
            version_id,
            "lock_version",
            lambda v: replace(v, is_locked=True, locked_at=now, locked_by=actor),
            lambda old, new: [AuditRecord(AuditAction.LOCKED, VERSION_ENTITY, old.id, "Version locked")],
            gated=False,
        )

    def unlock_version(self, version_id: UUID) -> LedgerResult:
        return self._mutate(
            version_id,
            "unlock_version",
            lambda v: replace(v, is_locked=False, locked_at=None, locked_by=None),
            lambda old, new: [AuditRecord(AuditAction.UNLOCKED, VERSION_ENTITY, old.id, "Version unlocked")],
            gated=False,
        )

    def delete_version(self, version_id: UUID) -> LedgerResult:
        """
        Delete a version (locked or not).

        If it was selected another version is selected; if it was the last
        one a fresh default version replaces it.
        """
        with self._lock, LogContext.bind(version_id=str(version_id), operation="delete_version"):
            version = self.version(version_id)

            def remove(session: Session) -> None:
                model = session.get(BudgetVersionModel, version_id)
                if model is not None:
                    session.delete(model)
                    session.flush()

            reason = self._write(
                "delete_version", version_id, remove,
                [AuditRecord(AuditAction.DELETED, VERSION_ENTITY, version_id, f"Deleted version '{version.name}'")],
            )
            if reason is not None:
                return LedgerResult.persistence_failed(reason, version)

            self._versions = [v for v in self._versions if v.id != version_id]
            self.clear_expanded_sections(version_id)
            if not self._versions:
                self._create_default()
            elif self._selected_id == version_id:
                self._selected_id = self._versions[0].id
            logger.info("version_deleted", extra={"remaining": len(self._versions)})
            return LedgerResult.applied(self.selected_version)

    # =========================================================================
    # Version contents
    # =========================================================================

    def update_line_items(
        self,
        items: Iterable[BudgetLineItem],
        version_id: UUID | None = None,
        *,
        audit_records: Sequence[AuditRecord] | None = None,
        operation: str = "update_line_items",
    ) -> LedgerResult:
        """
        Replace the line items of a version (default: the selected one).

        Without ``audit_records`` one entry per created, updated or deleted
        item is derived; template loading passes a single summary entry.
        """
        items = tuple(items)
        version_id = version_id or self.selected_version.id

        def audits(old: BudgetVersion, new: BudgetVersion) -> Sequence[AuditRecord]:
            if audit_records is not None:
                return audit_records
            return [
                line_item_record(action, item, previous, old.currency)
                for action, item, previous in diff_records(old.line_items, new.line_items)
            ]

        return self._mutate(
            version_id, operation,
            lambda v: replace(v, line_items=items),
            audits,
        )

    def update_transactions(
        self,
        transactions: Iterable[BudgetTransaction],
        version_id: UUID | None = None,
    ) -> LedgerResult:
        transactions = tuple(transactions)
        version_id = version_id or self.selected_version.id

        def audits(old: BudgetVersion, new: BudgetVersion) -> list[AuditRecord]:
            return [
                transaction_record(action, tx, previous, old.currency)
                for action, tx, previous in diff_records(old.transactions, new.transactions)
            ]

        return self._mutate(
            version_id, "update_transactions",
            lambda v: replace(v, transactions=transactions),
            audits,
        )

    def update_payroll_items(
        self,
        items: Iterable[PayrollLineItem],
        version_id: UUID | None = None,
        *,
        audit_records: Sequence[AuditRecord] | None = None,
        operation: str = "update_payroll_items",
    ) -> LedgerResult:
        """
        Replace the payroll collection of a version.

        ``PayrollManager`` passes its own ``audit_records``; otherwise one
        entry per added, updated or deleted item is derived.
        """
        items = tuple(items)
        version_id = version_id or self.selected_version.id

        def audits(old: BudgetVersion, new: BudgetVersion) -> Sequence[AuditRecord]:
            if audit_records is not None:
                return audit_records
            old_by_id = {p.id: p for p in old.payroll_items}
            records = []
            for item in new.payroll_items:
                before = old_by_id.pop(item.id, None)
                if before is None:
                    records.append(AuditRecord(
                        AuditAction.CREATED, "PayrollLineItem", item.id,
                        f"Added {item.person_name} ({item.role})",
                    ))
                elif before != item:
                    records.append(AuditRecord(
                        AuditAction.UPDATED, "PayrollLineItem", item.id,
                        f"Updated {item.person_name}",
                    ))
            for item in old_by_id.values():
                records.append(AuditRecord(
                    AuditAction.DELETED, "PayrollLineItem", item.id,
                    f"Deleted {item.person_name} ({item.role})",
                ))
            return records

        return self._mutate(
            version_id, operation,
            lambda v: replace(v, payroll_items=items),
            audits,
        )

    def update_notes(self, notes: str, version_id: UUID | None = None) -> LedgerResult:
        version_id = version_id or self.selected_version.id
        return self._mutate(
            version_id, "update_notes",
            lambda v: replace(v, notes=notes),
            lambda old, new: [
                AuditRecord(AuditAction.UPDATED, VERSION_ENTITY, old.id, "Updated notes",
                            previous_value=old.notes, new_value=new.notes),
            ],
        )

    def set_currency(self, currency: str, version_id: UUID | None = None) -> LedgerResult:
        version_id = version_id or self.selected_version.id
        check = validate_currency(currency)
        if not check:
            return LedgerResult.rejected(check, self.version(version_id))
        code = currency.strip().upper()
        return self._mutate(
            version_id, "set_currency",
            lambda v: replace(v, currency=code),
            lambda old, new: [
                AuditRecord(
                    AuditAction.UPDATED, VERSION_ENTITY, old.id,
                    f"Changed currency from {old.currency} to {new.currency}",
                    previous_value=old.currency, new_value=new.currency,
                ),
            ],
        )
