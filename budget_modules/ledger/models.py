"""
Budget Ledger Domain Models (``budget_modules.ledger.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of the ledger: versions, line
items, transactions, and the derived summaries, variances and projections
computed over them.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``VersionManager``, ``CalculationEngine`` and ``ValidationLayer``.

Invariants enforced
-------------------
* All models are ``frozen=True``; changes go through ``dataclasses.replace``.
* Money, quantities, days and rates are ``Decimal`` -- NEVER ``float``.
* Datetimes are timezone-aware; naive values are read as UTC on construction.
* A line item with children contributes nothing on its own: ``total`` is 0
  and the children carry the cost.

Failure modes
-------------
* Construction with invalid enum values raises ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from budget_kernel.domain.clock import as_utc
from budget_kernel.logging_config import get_logger

logger = get_logger("modules.ledger.models")

ZERO = Decimal("0")


class BudgetCategory(str, Enum):
    """The four top-level budget categories."""

    ABOVE_THE_LINE = "Above the Line"
    BELOW_THE_LINE = "Below the Line"
    POST_PRODUCTION = "Post-Production"
    OTHER = "Other"

    @classmethod
    def from_label(cls, label: str) -> BudgetCategory:
        """Map a free-text category label; unknown labels become OTHER."""
        for member in cls:
            if member.value == label:
                return member
        return cls.OTHER


class TransactionCategory(str, Enum):
    """Finer-grained categories used when recording spend."""

    DEVELOPMENT = "Development"
    ABOVE_THE_LINE = "Above the Line"
    PRODUCTION = "Production (Below the Line)"
    ART_CAMERA_LIGHTING_SOUND = "Art / Camera / Lighting / Sound"
    LOCATIONS_LOGISTICS = "Locations & Logistics"
    POST_PRODUCTION = "Post-Production"
    MARKETING_DISTRIBUTION = "Marketing / Distribution"
    ADMIN_OFFICE_MISC = "Admin / Office / Misc"


# Many-to-one mapping of transaction categories onto budget categories.
TRANSACTION_CATEGORY_MAP: dict[BudgetCategory, tuple[str, ...]] = {
    BudgetCategory.ABOVE_THE_LINE: (
        TransactionCategory.DEVELOPMENT.value,
        TransactionCategory.ABOVE_THE_LINE.value,
    ),
    BudgetCategory.BELOW_THE_LINE: (
        TransactionCategory.PRODUCTION.value,
        TransactionCategory.ART_CAMERA_LIGHTING_SOUND.value,
        TransactionCategory.LOCATIONS_LOGISTICS.value,
    ),
    BudgetCategory.POST_PRODUCTION: (
        TransactionCategory.POST_PRODUCTION.value,
    ),
    BudgetCategory.OTHER: (
        TransactionCategory.MARKETING_DISTRIBUTION.value,
        TransactionCategory.ADMIN_OFFICE_MISC.value,
    ),
}


class TransactionType(str, Enum):
    EXPENSE = "Expense"
    INCOME = "Income"
    PAYMENT = "Payment"
    REFUND = "Refund"
    ADJUSTMENT = "Adjustment"


class ContactType(str, Enum):
    """Kind of external contact a line item or payroll record points at."""

    CAST = "Cast"
    CREW = "Crew"
    VENDOR = "Vendor"


class BudgetTemplateType(str, Enum):
    STANDARD = "Standard"
    SHORT_FILM = "Short Film"
    FEATURE_FILM = "Feature Film"
    TV_SHOW = "TV Show"


class VarianceStatus(str, Enum):
    ON_TRACK = "on_track"
    WARNING = "warning"
    NEAR_LIMIT = "near_limit"
    OVER_BUDGET = "over_budget"


# =============================================================================
# Ledger records
# =============================================================================


@dataclass(frozen=True)
class BudgetLineItem:
    """One budgeted cost row."""

    id: UUID = field(default_factory=uuid4)
    name: str = ""
    account: str = ""
    category: str = BudgetCategory.BELOW_THE_LINE.value
    subcategory: str = ""
    section: str | None = None
    quantity: Decimal = ZERO
    days: Decimal = ZERO
    unit_cost: Decimal = ZERO
    notes: str = ""
    is_linked_to_rate_card: bool = False
    rate_card_id: UUID | None = None
    linked_contact_id: UUID | None = None
    linked_contact_type: ContactType | None = None
    parent_item_id: UUID | None = None
    child_item_ids: tuple[UUID, ...] = ()

    @property
    def has_children(self) -> bool:
        return len(self.child_item_ids) > 0

    @property
    def own_cost(self) -> Decimal:
        """quantity x days x unit_cost, ignoring the hierarchy."""
        return self.quantity * self.days * self.unit_cost

    @property
    def total(self) -> Decimal:
        """
        This item's contribution to any aggregate.

        A parent with children contributes 0 so that summing ``total`` over
        every item of a version never counts the same cost twice.
        """
        if self.has_children:
            return ZERO
        return self.own_cost


@dataclass(frozen=True)
class BudgetTransaction:
    """One recorded spend or income event."""

    id: UUID = field(default_factory=uuid4)
    date: datetime | None = None
    amount: Decimal = ZERO
    category: str = BudgetCategory.OTHER.value
    department: str = ""
    transaction_type: TransactionType = TransactionType.EXPENSE
    description: str = ""
    payee: str = ""
    notes: str = ""
    line_item_id: UUID | None = None
    vendor_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", as_utc(self.date))

    @property
    def is_expense(self) -> bool:
        return self.transaction_type == TransactionType.EXPENSE


@dataclass(frozen=True)
class BudgetVersion:
    """
    A named, independently lockable snapshot of a budget.

    ``payroll_items`` holds ``budget_modules.payroll.models.PayrollLineItem``
    values.
    """

    id: UUID
    name: str
    created_date: datetime
    line_items: tuple[BudgetLineItem, ...] = ()
    transactions: tuple[BudgetTransaction, ...] = ()
    payroll_items: tuple = ()
    is_locked: bool = False
    locked_at: datetime | None = None
    locked_by: str | None = None
    currency: str = "USD"
    notes: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_date", as_utc(self.created_date))
        object.__setattr__(self, "locked_at", as_utc(self.locked_at))

    @property
    def total_budget(self) -> Decimal:
        return sum((item.total for item in self.line_items), ZERO)

    @property
    def total_spent(self) -> Decimal:
        """Sum of expense transactions only."""
        return sum((t.amount for t in self.transactions if t.is_expense), ZERO)

    @property
    def remaining(self) -> Decimal:
        return self.total_budget - self.total_spent

    @property
    def percentage_used(self) -> Decimal:
        total = self.total_budget
        if total <= 0:
            return ZERO
        return self.total_spent / total * 100


# =============================================================================
# Derived values
# =============================================================================


@dataclass(frozen=True)
class Summary:
    """Totals by top-level budget category."""

    total_budget: Decimal = ZERO
    above_the_line_total: Decimal = ZERO
    below_the_line_total: Decimal = ZERO
    post_production_total: Decimal = ZERO
    other_total: Decimal = ZERO

    def amount_for(self, category: BudgetCategory) -> Decimal:
        return {
            BudgetCategory.ABOVE_THE_LINE: self.above_the_line_total,
            BudgetCategory.BELOW_THE_LINE: self.below_the_line_total,
            BudgetCategory.POST_PRODUCTION: self.post_production_total,
            BudgetCategory.OTHER: self.other_total,
        }[category]

    def percentage_for(self, category: BudgetCategory) -> Decimal:
        if self.total_budget <= 0:
            return ZERO
        return self.amount_for(category) / self.total_budget * 100


@dataclass(frozen=True)
class ShortFilmSummary:
    """Cast / Crew / Other split used by short-film budgets."""

    total_budget: Decimal = ZERO
    cast_total: Decimal = ZERO
    crew_total: Decimal = ZERO
    other_total: Decimal = ZERO


@dataclass(frozen=True)
class CustomCategory:
    """A user-defined budget category."""

    name: str
    id: UUID = field(default_factory=uuid4)
    sort_order: int = 0
    subcategories: tuple[str, ...] = ()


@dataclass(frozen=True)
class CustomTemplate:
    """
    A user-saved starting point: categories plus line items.

    Loading a custom template copies both with fresh ids; the saved values
    are never attached to a version directly.
    """

    name: str
    created_at: datetime
    modified_at: datetime
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    categories: tuple[CustomCategory, ...] = ()
    line_items: tuple[BudgetLineItem, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", as_utc(self.created_at))
        object.__setattr__(self, "modified_at", as_utc(self.modified_at))

    @property
    def item_count(self) -> int:
        return len(self.line_items)


@dataclass(frozen=True)
class CustomCategorySummary:
    total_budget: Decimal = ZERO
    category_totals: dict[UUID, Decimal] = field(default_factory=dict)

    def amount_for(self, category_id: UUID) -> Decimal:
        return self.category_totals.get(category_id, ZERO)

    def percentage_for(self, category_id: UUID) -> Decimal:
        if self.total_budget <= 0:
            return ZERO
        return self.amount_for(category_id) / self.total_budget * 100


@dataclass(frozen=True)
class Variance:
    """Budgeted vs actual, with a categorical status."""

    budgeted: Decimal
    actual: Decimal
    variance: Decimal
    percentage_used: Decimal
    percentage_remaining: Decimal
    status: VarianceStatus

    @property
    def is_over_budget(self) -> bool:
        """Spent more than budgeted.  Unlike ``status``, true for any overspend of a zero budget."""
        return self.variance < 0


@dataclass(frozen=True)
class Projection:
    """Linear spend projection to the end of the schedule."""

    daily_rate: Decimal
    projected_total: Decimal
    projected_remaining: Decimal
    days_remaining: int
    on_track: bool

    @property
    def status_message(self) -> str:
        if self.on_track:
            return "On track to finish under budget"
        return f"Projected to exceed budget by {-self.projected_remaining:.2f}"
