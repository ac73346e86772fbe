"""
Payroll Domain Models (``budget_modules.payroll.models``).

Responsibility
--------------
Frozen value objects for per-person payroll records, their pay periods and
the aggregate ``PayrollSummary``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Payroll records
live inside a ``BudgetVersion`` (``payroll_items``) and are mutated only
through ``PayrollManager``.

Invariants enforced
-------------------
* ``net_amount`` defaults to ``gross_amount - deductions``; an explicit net
  is kept as given.
* ``total_paid`` counts only periods whose status is ``PAID``.
* ``remaining_balance = total_budgeted_amount - total_paid``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID, uuid4

from budget_kernel.domain.clock import as_utc
from budget_modules.ledger.models import ZERO, ContactType


class PaymentStatus(str, Enum):
    """Pending -> Approved -> Paid.  Forward-only in normal use, not enforced."""

    PENDING = "Pending"
    APPROVED = "Approved"
    PAID = "Paid"


class PaymentMethod(str, Enum):
    CHECK = "Check"
    DIRECT_DEPOSIT = "Direct Deposit"
    CASH = "Cash"
    OTHER = "Other"


class PayrollSortOption(str, Enum):
    """The ten sort orders offered for payroll listings."""

    NAME_ASC = "Name (A-Z)"
    NAME_DESC = "Name (Z-A)"
    BUDGETED_ASC = "Budget (Low to High)"
    BUDGETED_DESC = "Budget (High to Low)"
    PAID_ASC = "Paid (Low to High)"
    PAID_DESC = "Paid (High to Low)"
    REMAINING_ASC = "Remaining (Low to High)"
    REMAINING_DESC = "Remaining (High to Low)"
    DEPARTMENT_ASC = "Department"
    ROLE_ASC = "Role"


@dataclass(frozen=True)
class PayrollPayPeriod:
    """One payroll cycle for one person."""

    period_name: str
    start_date: datetime
    end_date: datetime
    gross_amount: Decimal
    deductions: Decimal = ZERO
    net_amount: Decimal | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    payment_date: datetime | None = None
    payment_method: PaymentMethod | None = None
    notes: str = ""
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        for name in ("start_date", "end_date", "payment_date"):
            object.__setattr__(self, name, as_utc(getattr(self, name)))
        if self.net_amount is None:
            object.__setattr__(self, "net_amount", self.gross_amount - self.deductions)

    def with_recomputed_net(self) -> PayrollPayPeriod:
        return replace(self, net_amount=self.gross_amount - self.deductions)

    def is_past_due(self, now: datetime) -> bool:
        """Unpaid with a payment date before ``now``.  No date means not due."""
        if self.payment_date is None:
            return False
        return self.payment_date < as_utc(now) and self.status != PaymentStatus.PAID


@dataclass(frozen=True)
class PayrollLineItem:
    """One person/role payroll record with its ordered pay periods."""

    person_name: str
    role: str
    department: str = ""
    contact_type: ContactType = ContactType.CREW
    total_budgeted_amount: Decimal = ZERO
    rate_per_period: Decimal = ZERO
    linked_contact_id: UUID | None = None
    pay_periods: tuple[PayrollPayPeriod, ...] = ()
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", as_utc(self.created_at))
        object.__setattr__(self, "updated_at", as_utc(self.updated_at))

    def _net_for(self, status: PaymentStatus) -> Decimal:
        return sum(
            (p.net_amount for p in self.pay_periods if p.status == status), ZERO,
        )

    @property
    def total_paid(self) -> Decimal:
        return self._net_for(PaymentStatus.PAID)

    @property
    def total_pending(self) -> Decimal:
        return self._net_for(PaymentStatus.PENDING)

    @property
    def total_approved(self) -> Decimal:
        return self._net_for(PaymentStatus.APPROVED)

    @property
    def remaining_balance(self) -> Decimal:
        return self.total_budgeted_amount - self.total_paid

    @property
    def percentage_paid(self) -> Decimal:
        if self.total_budgeted_amount <= 0:
            return ZERO
        return self.total_paid / self.total_budgeted_amount * 100

    def pay_period(self, period_id: UUID) -> PayrollPayPeriod | None:
        for period in self.pay_periods:
            if period.id == period_id:
                return period
        return None

    def matches(self, search_text: str) -> bool:
        """Case-insensitive substring match over name, role, department, notes."""
        if not search_text:
            return True
        needle = search_text.lower()
        return any(
            needle in value.lower()
            for value in (self.person_name, self.role, self.department, self.notes)
        )


@dataclass(frozen=True)
class StatusBreakdown:
    """Net amounts and period counts per payment status."""

    pending: Decimal = ZERO
    approved: Decimal = ZERO
    paid: Decimal = ZERO
    pending_count: int = 0
    approved_count: int = 0
    paid_count: int = 0


@dataclass(frozen=True)
class PayrollSummary:
    """Aggregate payroll figures over a set of items."""

    total_budgeted: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_pending: Decimal = ZERO
    total_approved: Decimal = ZERO
    cast_total: Decimal = ZERO
    crew_total: Decimal = ZERO
    vendor_total: Decimal = ZERO
    status_breakdown: StatusBreakdown = field(default_factory=StatusBreakdown)
    department_breakdown: dict[str, Decimal] = field(default_factory=dict)

    @classmethod
    def from_items(cls, items: Iterable[PayrollLineItem]) -> PayrollSummary:
        totals = {"budgeted": ZERO, "paid": ZERO, "pending": ZERO, "approved": ZERO}
        by_type = {ContactType.CAST: ZERO, ContactType.CREW: ZERO, ContactType.VENDOR: ZERO}
        by_status = {status: ZERO for status in PaymentStatus}
        counts = {status: 0 for status in PaymentStatus}
        departments: dict[str, Decimal] = {}

        for item in items:
            totals["budgeted"] += item.total_budgeted_amount
            totals["paid"] += item.total_paid
            totals["pending"] += item.total_pending
            totals["approved"] += item.total_approved
            by_type[item.contact_type] += item.total_budgeted_amount
            departments[item.department] = (
                departments.get(item.department, ZERO) + item.total_budgeted_amount
            )
            for period in item.pay_periods:
                by_status[period.status] += period.net_amount
                counts[period.status] += 1

        return cls(
            total_budgeted=totals["budgeted"],
            total_paid=totals["paid"],
            total_pending=totals["pending"],
            total_approved=totals["approved"],
            cast_total=by_type[ContactType.CAST],
            crew_total=by_type[ContactType.CREW],
            vendor_total=by_type[ContactType.VENDOR],
            status_breakdown=StatusBreakdown(
                pending=by_status[PaymentStatus.PENDING],
                approved=by_status[PaymentStatus.APPROVED],
                paid=by_status[PaymentStatus.PAID],
                pending_count=counts[PaymentStatus.PENDING],
                approved_count=counts[PaymentStatus.APPROVED],
                paid_count=counts[PaymentStatus.PAID],
            ),
            department_breakdown=departments,
        )

    @property
    def remaining_balance(self) -> Decimal:
        return self.total_budgeted - self.total_paid

    @property
    def total_gross(self) -> Decimal:
        return self.total_paid + self.total_pending + self.total_approved

    @property
    def percentage_paid(self) -> Decimal:
        if self.total_budgeted <= 0:
            return ZERO
        return self.total_paid / self.total_budgeted * 100

    def breakdown(self, contact_type: ContactType) -> Decimal:
        return {
            ContactType.CAST: self.cast_total,
            ContactType.CREW: self.crew_total,
            ContactType.VENDOR: self.vendor_total,
        }[contact_type]

    def breakdown_percentage(self, contact_type: ContactType) -> Decimal:
        if self.total_budgeted <= 0:
            return ZERO
        return self.breakdown(contact_type) / self.total_budgeted * 100
