"""
Ledger Calculation Engine (``budget_modules.ledger.calculation``).

Responsibility
--------------
Pure functions deriving summaries, variances, projections and currency
conversions from line items and transactions.  No stored state, no side
effects beyond returning a value -- safe to call concurrently.

Invariants enforced
-------------------
* Aggregates sum ``BudgetLineItem.total``, which is 0 for a parent with
  children, so the same cost is never counted twice.
* ``effective_total`` of a parent equals the sum of its children's
  effective totals.
* Degenerate inputs (zero budget, zero elapsed days, unknown or
  non-positive rates) take documented fail-soft branches instead of raising.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from uuid import NAMESPACE_URL, UUID, uuid5

from budget_kernel.logging_config import get_logger
from budget_modules.ledger.models import (
    TRANSACTION_CATEGORY_MAP,
    ZERO,
    BudgetCategory,
    BudgetLineItem,
    BudgetTransaction,
    CustomCategory,
    CustomCategorySummary,
    Projection,
    ShortFilmSummary,
    Summary,
    Variance,
    VarianceStatus,
)

logger = get_logger("modules.ledger.calculation")

_HUNDRED = Decimal("100")


def _category(name: str, order: int, *subcategories: str) -> CustomCategory:
    return CustomCategory(
        name=name,
        id=uuid5(NAMESPACE_URL, f"budget-category/{name}"),
        sort_order=order,
        subcategories=subcategories,
    )


FEATURE_FILM_CATEGORIES: tuple[CustomCategory, ...] = (
    _category("Above the Line", 0, "Writers", "Producers", "Directors", "Cast"),
    _category(
        "Below the Line", 1,
        "Production Staff", "Camera", "Lighting", "Sound", "Art Department",
        "Wardrobe", "Makeup", "Locations", "Transportation", "Equipment",
    ),
    _category("Post-Production", 2, "Editing", "Sound Design", "Color Grading", "VFX", "Music"),
    _category("Other", 3, "Insurance", "Legal", "Contingency", "Marketing"),
)

SHORT_FILM_CATEGORIES: tuple[CustomCategory, ...] = (
    _category("Cast", 0),
    _category("Crew", 1),
    _category("Other", 2),
)


# =============================================================================
# Hierarchy
# =============================================================================


def effective_total(item: BudgetLineItem, items: Iterable[BudgetLineItem]) -> Decimal:
    """
    Displayed cost of ``item``.

    A parent with children shows the sum of its children's effective totals
    and never its own quantity x days x unit cost.  Child ids that are not
    present in ``items`` contribute nothing.
    """
    by_id = {i.id: i for i in items}
    return _effective_total(item, by_id, frozenset())


def _effective_total(
    item: BudgetLineItem,
    by_id: Mapping[UUID, BudgetLineItem],
    seen: frozenset[UUID],
) -> Decimal:
    if not item.has_children:
        return item.own_cost
    seen = seen | {item.id}
    total = ZERO
    for child_id in item.child_item_ids:
        child = by_id.get(child_id)
        if child is None or child_id in seen:
            continue
        total += _effective_total(child, by_id, seen)
    return total


# =============================================================================
# Summaries
# =============================================================================


def summarize(items: Iterable[BudgetLineItem]) -> Summary:
    """Bucket item totals into the four budget categories."""
    totals = {category: ZERO for category in BudgetCategory}
    for item in items:
        totals[BudgetCategory.from_label(item.category)] += item.total

    summary = Summary(
        total_budget=sum(totals.values(), ZERO),
        above_the_line_total=totals[BudgetCategory.ABOVE_THE_LINE],
        below_the_line_total=totals[BudgetCategory.BELOW_THE_LINE],
        post_production_total=totals[BudgetCategory.POST_PRODUCTION],
        other_total=totals[BudgetCategory.OTHER],
    )
    logger.debug("budget_summary_calculated", extra={"total_budget": summary.total_budget})
    return summary


def summarize_short_film(items: Iterable[BudgetLineItem]) -> ShortFilmSummary:
    """Cast / Crew / Other split keyed on section, falling back to subcategory."""
    cast = crew = other = ZERO
    for item in items:
        bucket = item.section if item.section is not None else item.subcategory
        if bucket == "Cast":
            cast += item.total
        elif bucket == "Crew":
            crew += item.total
        else:
            other += item.total
    return ShortFilmSummary(
        total_budget=cast + crew + other,
        cast_total=cast,
        crew_total=crew,
        other_total=other,
    )


def summarize_custom_categories(
    items: Sequence[BudgetLineItem],
    categories: Sequence[CustomCategory],
) -> CustomCategorySummary:
    """
    Attribute item totals to user-defined categories.

    A child is attributed through its parent's category.  An item whose
    category matches no defined category goes to the LAST category in
    ``categories``, which acts as the catch-all bucket.
    """
    by_id = {item.id: item for item in items}
    by_name: dict[str, CustomCategory] = {}
    for category in categories:
        by_name.setdefault(category.name, category)
    fallback = categories[-1] if categories else None

    total_budget = ZERO
    category_totals: dict[UUID, Decimal] = {}
    for item in items:
        cost = item.total
        total_budget += cost

        source = item
        if item.parent_item_id is not None and item.parent_item_id in by_id:
            source = by_id[item.parent_item_id]

        target = by_name.get(source.category, fallback)
        if target is not None:
            category_totals[target.id] = category_totals.get(target.id, ZERO) + cost

    return CustomCategorySummary(total_budget=total_budget, category_totals=category_totals)


def total_for_section(section: str, items: Iterable[BudgetLineItem]) -> Decimal:
    return sum((item.total for item in items if item.section == section), ZERO)


def totals_by_section(items: Iterable[BudgetLineItem]) -> dict[str, Decimal]:
    """Totals per section label; items without a section are skipped."""
    totals: dict[str, Decimal] = {}
    for item in items:
        if item.section is not None:
            totals[item.section] = totals.get(item.section, ZERO) + item.total
    return totals


# =============================================================================
# Variance
# =============================================================================


def calculate_variance(budgeted: Decimal, actual: Decimal) -> Variance:
    """
    Budgeted vs actual.

    A zero (or negative) budget reports 0% used and ON_TRACK whatever the
    actual spend is.
    """
    percentage_used = actual / budgeted * _HUNDRED if budgeted > 0 else ZERO

    if percentage_used > 100:
        status = VarianceStatus.OVER_BUDGET
    elif percentage_used > 90:
        status = VarianceStatus.NEAR_LIMIT
    elif percentage_used > 75:
        status = VarianceStatus.WARNING
    else:
        status = VarianceStatus.ON_TRACK

    return Variance(
        budgeted=budgeted,
        actual=actual,
        variance=budgeted - actual,
        percentage_used=percentage_used,
        percentage_remaining=_HUNDRED - percentage_used,
        status=status,
    )


def calculate_item_variances(
    items: Iterable[BudgetLineItem],
    transactions: Iterable[BudgetTransaction],
) -> dict[UUID, Variance]:
    """Per-item variance; actual = transactions linked to the item."""
    actual_by_item: dict[UUID, Decimal] = {}
    for t in transactions:
        if t.line_item_id is not None:
            actual_by_item[t.line_item_id] = actual_by_item.get(t.line_item_id, ZERO) + t.amount

    return {
        item.id: calculate_variance(item.total, actual_by_item.get(item.id, ZERO))
        for item in items
    }


def calculate_category_variances(
    items: Iterable[BudgetLineItem],
    transactions: Iterable[BudgetTransaction],
) -> dict[BudgetCategory, Variance]:
    """
    Per-category variance.

    Budgeted sums items whose category label is exactly the budget category;
    actual sums transactions whose category maps onto it through
    ``TRANSACTION_CATEGORY_MAP``.
    """
    items = list(items)
    transactions = list(transactions)
    variances: dict[BudgetCategory, Variance] = {}
    for category in BudgetCategory:
        budgeted = sum((i.total for i in items if i.category == category.value), ZERO)
        matching = TRANSACTION_CATEGORY_MAP[category]
        actual = sum((t.amount for t in transactions if t.category in matching), ZERO)
        variances[category] = calculate_variance(budgeted, actual)
    return variances


# =============================================================================
# Projection & currency
# =============================================================================


def project_remaining(
    total_budget: Decimal,
    spent: Decimal,
    days_elapsed: int,
    total_days: int,
) -> Projection:
    """Linear extrapolation of the current daily burn rate."""
    if days_elapsed <= 0 or total_days <= 0:
        return Projection(
            daily_rate=ZERO,
            projected_total=spent,
            projected_remaining=total_budget - spent,
            days_remaining=total_days,
            on_track=True,
        )

    daily_rate = spent / days_elapsed
    days_remaining = total_days - days_elapsed
    projected_total = spent + daily_rate * days_remaining
    return Projection(
        daily_rate=daily_rate,
        projected_total=projected_total,
        projected_remaining=total_budget - projected_total,
        days_remaining=days_remaining,
        on_track=projected_total <= total_budget,
    )


def convert_currency(
    amount: Decimal,
    from_code: str,
    to_code: str,
    rates: Mapping[str, Decimal],
) -> Decimal:
    """
    Convert through a common base: ``amount / rates[from] * rates[to]``.

    Returns ``amount`` unchanged when either code is missing from ``rates``
    or the source rate is not positive.
    """
    source_rate = rates.get(from_code)
    target_rate = rates.get(to_code)
    if source_rate is None or target_rate is None or source_rate <= 0:
        return amount
    return amount / source_rate * target_rate
