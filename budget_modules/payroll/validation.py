"""
Payroll validation gates.

Same contract as ``budget_modules.ledger.validation``: each function returns
a ``ValidationResult`` carrying the first rule that failed, never raises for
a business-rule violation.
"""

from __future__ import annotations

from collections.abc import Iterable

from budget_modules.ledger.validation import LedgerErrorKind, ValidationResult, is_finite, reject
from budget_modules.payroll.models import PayrollLineItem, PayrollPayPeriod


def validate_payroll_item(
    item: PayrollLineItem,
    existing_items: Iterable[PayrollLineItem] = (),
) -> ValidationResult:
    """Name, role, non-negative budget, and no other item with the same name+role."""
    if not item.person_name.strip():
        return reject(LedgerErrorKind.EMPTY_PERSON_NAME, "Person name cannot be empty", "person_name")
    if not item.role.strip():
        return reject(LedgerErrorKind.EMPTY_ROLE, "Role cannot be empty", "role")
    if not is_finite(item.total_budgeted_amount) or item.total_budgeted_amount < 0:
        return reject(
            LedgerErrorKind.NEGATIVE_BUDGETED_AMOUNT,
            "Budgeted amount cannot be negative",
            "total_budgeted_amount",
        )

    name, role = item.person_name.lower(), item.role.lower()
    for other in existing_items:
        if other.id != item.id and other.person_name.lower() == name and other.role.lower() == role:
            return reject(
                LedgerErrorKind.DUPLICATE_ENTRY,
                "A payroll entry with this name and role already exists",
                duplicate_of=str(other.id),
            )
    return ValidationResult.success()


def validate_pay_period(period: PayrollPayPeriod) -> ValidationResult:
    if not period.period_name.strip():
        return reject(LedgerErrorKind.EMPTY_PERIOD_NAME, "Pay period name cannot be empty", "period_name")
    if period.start_date > period.end_date:
        return reject(
            LedgerErrorKind.INVALID_DATE_RANGE,
            "Start date must be before or equal to end date",
            "start_date",
        )
    if not is_finite(period.gross_amount) or period.gross_amount < 0:
        return reject(LedgerErrorKind.NEGATIVE_GROSS, "Gross amount cannot be negative", "gross_amount")
    if not is_finite(period.deductions) or period.deductions < 0:
        return reject(LedgerErrorKind.NEGATIVE_DEDUCTIONS, "Deductions cannot be negative", "deductions")
    if not is_finite(period.net_amount) or period.net_amount < 0:
        return reject(LedgerErrorKind.NEGATIVE_NET, "Net amount cannot be negative", "net_amount")
    return ValidationResult.success()
