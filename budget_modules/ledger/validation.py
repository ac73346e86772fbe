"""
Ledger Validation Layer (``budget_modules.ledger.validation``).

Responsibility
--------------
Pure gate functions that run before any mutation is committed.  Each returns
a ``ValidationResult``; a failure carries one ``ValidationError`` naming the
rule that fired.  Nothing here raises for a business-rule violation --
errors are data and the caller decides whether to log or surface them.

Architecture position
---------------------
**Modules layer** -- leaf component with no I/O.  Called by
``VersionManager``, ``PayrollManager`` (via ``payroll.validation``) and by
UI/consumers directly.

Invariants enforced
-------------------
* ``can_modify`` rejects every version-scoped mutation on a locked version.
* Line items: non-blank name, no case-insensitive duplicate of
  (name, category, section) among other items, non-negative quantity, days
  and unit cost.  The first failing rule is reported.
* Transactions: finite amount; expenses may not be future-dated and may not
  exceed a supplied remaining-budget ceiling.
* Account codes: empty, or exactly ``NN-NN``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from budget_kernel.domain.clock import Clock, SystemClock, as_utc
from budget_kernel.domain.currency import CurrencyRegistry
from budget_kernel.logging_config import get_logger
from budget_modules.ledger.models import (
    BudgetLineItem,
    BudgetTransaction,
    BudgetVersion,
    TransactionType,
)

logger = get_logger("modules.ledger.validation")

_ACCOUNT_CODE_PATTERN = re.compile(r"^\d{2}-\d{2}$")
_CENT = Decimal("0.01")


class LedgerErrorKind(str, Enum):
    """Every business rule the ledger can reject a mutation for."""

    EMPTY_NAME = "empty_name"
    DUPLICATE_NAME = "duplicate_name"
    NEGATIVE_QUANTITY = "negative_quantity"
    NEGATIVE_DAYS = "negative_days"
    NEGATIVE_UNIT_COST = "negative_unit_cost"
    INVALID_AMOUNT = "invalid_amount"
    FUTURE_DATE = "future_date"
    TRANSACTION_EXCEEDS_BUDGET = "transaction_exceeds_budget"
    BUDGET_LOCKED = "budget_locked"
    INVALID_CURRENCY = "invalid_currency"
    INVALID_DATE_RANGE = "invalid_date_range"
    INVALID_ACCOUNT_CODE = "invalid_account_code"
    # Payroll
    EMPTY_PERSON_NAME = "empty_person_name"
    EMPTY_ROLE = "empty_role"
    NEGATIVE_BUDGETED_AMOUNT = "negative_budgeted_amount"
    DUPLICATE_ENTRY = "duplicate_entry"
    EMPTY_PERIOD_NAME = "empty_period_name"
    NEGATIVE_GROSS = "negative_gross"
    NEGATIVE_DEDUCTIONS = "negative_deductions"
    NEGATIVE_NET = "negative_net"


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation failure.

    Contract:
        ``kind`` is machine-readable; ``message`` is the wording surfaced to
        users verbatim.  Does NOT raise -- it IS the error representation.
    """

    kind: LedgerErrorKind
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None

    @property
    def code(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of a gate function.

    ``bool(result)`` is ``result.is_valid``.
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    @property
    def error(self) -> ValidationError | None:
        """The first error, if any."""
        return self.errors[0] if self.errors else None

    @property
    def kind(self) -> LedgerErrorKind | None:
        return self.errors[0].kind if self.errors else None

    def __bool__(self) -> bool:
        return self.is_valid


def reject(kind: LedgerErrorKind, message: str, field: str | None = None, **details: Any) -> ValidationResult:
    return ValidationResult.failure(
        ValidationError(kind=kind, message=message, field=field, details=details or None)
    )


def is_finite(value: Decimal) -> bool:
    return _to_decimal(value).is_finite()


# =============================================================================
# Line items
# =============================================================================


def validate_line_item(
    item: BudgetLineItem,
    existing_items: Iterable[BudgetLineItem] = (),
) -> ValidationResult:
    """Validate a line item against the other items in its version."""
    if not item.name.strip():
        return reject(LedgerErrorKind.EMPTY_NAME, "Name cannot be empty", "name")

    lowered = item.name.lower()
    for other in existing_items:
        if (
            other.id != item.id
            and other.name.lower() == lowered
            and other.category == item.category
            and other.section == item.section
        ):
            return reject(
                LedgerErrorKind.DUPLICATE_NAME,
                f"An item with name '{item.name}' already exists",
                "name",
                duplicate_of=str(other.id),
            )

    if not is_finite(item.quantity) or item.quantity < 0:
        return reject(LedgerErrorKind.NEGATIVE_QUANTITY, "Quantity cannot be negative", "quantity")
    if not is_finite(item.days) or item.days < 0:
        return reject(LedgerErrorKind.NEGATIVE_DAYS, "Days cannot be negative", "days")
    if not is_finite(item.unit_cost) or item.unit_cost < 0:
        return reject(LedgerErrorKind.NEGATIVE_UNIT_COST, "Unit cost cannot be negative", "unit_cost")

    return ValidationResult.success()


def validate_batch(items: Iterable[BudgetLineItem]) -> dict[UUID, ValidationError]:
    """Validate every item against all the others; returns failures by item id."""
    items = list(items)
    errors: dict[UUID, ValidationError] = {}
    for item in items:
        result = validate_line_item(item, items)
        if not result:
            errors[item.id] = result.errors[0]
    return errors


# =============================================================================
# Transactions
# =============================================================================


def validate_transaction(
    transaction: BudgetTransaction,
    budget_remaining: Decimal | None = None,
    clock: Clock | None = None,
) -> ValidationResult:
    """Validate a transaction; the date and ceiling rules apply to expenses only."""
    if not is_finite(transaction.amount):
        return reject(
            LedgerErrorKind.INVALID_AMOUNT,
            f"Invalid amount: {transaction.amount}",
            "amount",
        )

    is_expense = transaction.transaction_type == TransactionType.EXPENSE
    if is_expense and transaction.date is not None:
        now = (clock or SystemClock()).now()
        if transaction.date > now:
            return reject(
                LedgerErrorKind.FUTURE_DATE,
                "Transaction date cannot be in the future",
                "date",
            )

    # A NaN or infinite ceiling is no ceiling.
    if (
        is_expense
        and budget_remaining is not None
        and is_finite(budget_remaining)
        and transaction.amount > budget_remaining
    ):
        return reject(
            LedgerErrorKind.TRANSACTION_EXCEEDS_BUDGET,
            f"Transaction amount ({round_to_currency(transaction.amount)}) exceeds "
            f"available budget ({round_to_currency(budget_remaining)})",
            "amount",
            available=budget_remaining,
            requested=transaction.amount,
        )

    return ValidationResult.success()


# =============================================================================
# Versions, currencies, dates, account codes
# =============================================================================


def can_modify(version: BudgetVersion) -> ValidationResult:
    """Gate every version-scoped mutation on the lock flag."""
    if version.is_locked:
        return reject(
            LedgerErrorKind.BUDGET_LOCKED,
            "This budget version is locked and cannot be modified",
            version_id=str(version.id),
        )
    return ValidationResult.success()


def validate_version_name(name: str) -> ValidationResult:
    if not name.strip():
        return reject(LedgerErrorKind.EMPTY_NAME, "Name cannot be empty", "name")
    return ValidationResult.success()


def validate_currency(code: str) -> ValidationResult:
    """Accept any ISO 4217 code, case-insensitively."""
    if not CurrencyRegistry.is_valid(code):
        return reject(LedgerErrorKind.INVALID_CURRENCY, f"Invalid currency code: {code}", "currency")
    return ValidationResult.success()


def validate_date_range(start: datetime, end: datetime) -> ValidationResult:
    start, end = as_utc(start), as_utc(end)
    if start > end:
        return reject(
            LedgerErrorKind.INVALID_DATE_RANGE,
            f"Invalid date range: start ({start.isoformat()}) must be before end ({end.isoformat()})",
            "start",
        )
    return ValidationResult.success()


def validate_account_code(code: str) -> ValidationResult:
    """Empty is allowed; otherwise two digits, a dash, two digits."""
    if code == "":
        return ValidationResult.success()
    if _ACCOUNT_CODE_PATTERN.fullmatch(code) is None:
        return reject(LedgerErrorKind.INVALID_ACCOUNT_CODE, f"Invalid account code: {code}", "account")
    return ValidationResult.success()


# =============================================================================
# Numeric helpers
# =============================================================================


def _to_decimal(value: Decimal | float | int | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("NaN")


def clamp(
    value: Decimal,
    minimum: Decimal = Decimal("0"),
    maximum: Decimal | None = None,
) -> Decimal:
    """Clamp ``value`` into ``[minimum, maximum]``; no upper bound by default.  NaN passes through."""
    if _to_decimal(value).is_nan():
        return value
    if maximum is not None and value > maximum:
        return maximum
    if value < minimum:
        return minimum
    return value


def round_to_currency(value: Decimal | float | int) -> Decimal:
    """Round half-up to two decimal places.  NaN and infinities pass through."""
    result = _to_decimal(value)
    if not result.is_finite():
        return result
    return result.quantize(_CENT, rounding=ROUND_HALF_UP)


def sanitize_numeric(value: Decimal | float | int | str, allow_negative: bool = False) -> Decimal:
    """NaN and infinities become 0; negatives become 0 unless allowed."""
    result = _to_decimal(value)
    if not result.is_finite():
        return Decimal("0")
    if not allow_negative and result < 0:
        return Decimal("0")
    return result
