"""
Payroll Module (``budget_modules.payroll``).

Per-person payroll records and their pay periods, stored inside a budget
version and mutated through ``PayrollManager`` (``version_manager.payroll``).
"""

from budget_modules.payroll.models import (
    PaymentMethod,
    PaymentStatus,
    PayrollLineItem,
    PayrollPayPeriod,
    PayrollSortOption,
    PayrollSummary,
    StatusBreakdown,
)
from budget_modules.payroll.validation import validate_pay_period, validate_payroll_item

__all__ = [
    "PaymentMethod",
    "PaymentStatus",
    "PayrollLineItem",
    "PayrollPayPeriod",
    "PayrollSortOption",
    "PayrollSummary",
    "StatusBreakdown",
    "validate_pay_period",
    "validate_payroll_item",
]
