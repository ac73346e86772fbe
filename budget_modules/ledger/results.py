"""
Mutation outcomes shared by ``VersionManager`` and ``PayrollManager``.

Every mutator returns a ``LedgerResult``; callers check ``changed`` to know
whether a refresh is needed instead of observing the managers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from budget_kernel.models.audit_entry import AuditAction
from budget_modules.ledger.models import BudgetVersion
from budget_modules.ledger.validation import ValidationError, ValidationResult


class LedgerStatus(str, Enum):
    APPLIED = "applied"
    REJECTED = "rejected"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True)
class LedgerResult:
    """Result of a ledger mutation."""

    status: LedgerStatus
    version: BudgetVersion | None = None
    errors: tuple[ValidationError, ...] = ()
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == LedgerStatus.APPLIED

    @property
    def changed(self) -> bool:
        """True when in-memory state moved and dependents should refresh."""
        return self.status == LedgerStatus.APPLIED

    @property
    def error(self) -> ValidationError | None:
        return self.errors[0] if self.errors else None

    @classmethod
    def applied(cls, version: BudgetVersion | None = None, message: str | None = None) -> LedgerResult:
        return cls(status=LedgerStatus.APPLIED, version=version, message=message)

    @classmethod
    def rejected(cls, validation: ValidationResult, version: BudgetVersion | None = None) -> LedgerResult:
        return cls(
            status=LedgerStatus.REJECTED,
            version=version,
            errors=validation.errors,
            message=validation.error.message if validation.error else None,
        )

    @classmethod
    def persistence_failed(cls, reason: str, version: BudgetVersion | None = None) -> LedgerResult:
        return cls(status=LedgerStatus.PERSISTENCE_FAILED, version=version, message=reason)


@dataclass(frozen=True)
class AuditRecord:
    """An audit entry to append in the same transaction as a version change."""

    action: AuditAction
    entity_type: str
    entity_id: UUID
    detail: str
    previous_value: str | None = None
    new_value: str | None = None
