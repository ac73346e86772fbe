"""
Tests for the pure calculation engine (budget_modules/ledger/calculation.py).

Validates:
- effective totals over the two-level hierarchy (property-based)
- category, short-film, custom-category and section summaries
- variance thresholds, including the zero-budget degenerate case
- projection short-circuit and linear extrapolation
- fail-soft currency conversion
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from budget_modules.ledger.calculation import (
    FEATURE_FILM_CATEGORIES,
    SHORT_FILM_CATEGORIES,
    calculate_category_variances,
    calculate_item_variances,
    calculate_variance,
    convert_currency,
    effective_total,
    project_remaining,
    summarize,
    summarize_custom_categories,
    summarize_short_film,
    total_for_section,
    totals_by_section,
)
from budget_modules.ledger.models import (
    BudgetCategory,
    BudgetLineItem,
    BudgetVersion,
    CustomCategory,
    TransactionCategory,
    TransactionType,
    VarianceStatus,
)
from tests.conftest import FIXED_NOW, line_item, transaction

amounts = st.decimals(min_value=0, max_value=10_000, places=2, allow_nan=False, allow_infinity=False)
categories = st.sampled_from([c.value for c in BudgetCategory] + ["Catering", ""])


def _family(parent_cost: Decimal, child_costs: list[Decimal]) -> tuple[BudgetLineItem, list[BudgetLineItem]]:
    """A parent with its own (ignored) cost and one child per cost."""
    parent = line_item(name="Parent", cost=str(parent_cost))
    children = [
        line_item(name=f"Child {i}", cost=str(cost), parent_item_id=parent.id)
        for i, cost in enumerate(child_costs)
    ]
    parent = BudgetLineItem(
        id=parent.id,
        name=parent.name,
        quantity=parent.quantity,
        days=parent.days,
        unit_cost=parent.unit_cost,
        child_item_ids=tuple(c.id for c in children),
    )
    return parent, children


# =============================================================================
# Hierarchy
# =============================================================================


class TestEffectiveTotal:
    """A parent shows the sum of its children, never its own cost."""

    def test_leaf_uses_own_cost(self):
        item = line_item(qty="2", days="3", cost="10")
        assert effective_total(item, [item]) == Decimal("60")

    def test_parent_sums_children(self):
        parent, children = _family(Decimal("999"), [Decimal("10"), Decimal("20")])
        assert effective_total(parent, [parent, *children]) == Decimal("30")

    def test_parent_contributes_zero_to_aggregates(self):
        parent, children = _family(Decimal("999"), [Decimal("10")])
        assert parent.total == Decimal("0")
        assert parent.own_cost == Decimal("999")

    def test_missing_child_ignored(self):
        parent, children = _family(Decimal("5"), [Decimal("10"), Decimal("20")])
        assert effective_total(parent, [parent, children[0]]) == Decimal("10")

    @given(parent_cost=amounts, child_costs=st.lists(amounts, min_size=1, max_size=6))
    @settings(max_examples=50)
    def test_parent_equals_sum_of_children(self, parent_cost, child_costs):
        parent, children = _family(parent_cost, child_costs)
        everything = [parent, *children]
        assert effective_total(parent, everything) == sum(
            (effective_total(c, everything) for c in children), Decimal("0"),
        )

    @given(parent_cost=amounts, child_costs=st.lists(amounts, min_size=1, max_size=6))
    @settings(max_examples=50)
    def test_summary_never_double_counts(self, parent_cost, child_costs):
        parent, children = _family(parent_cost, child_costs)
        everything = [parent, *children]
        roots = [i for i in everything if i.parent_item_id is None]
        assert summarize(everything).total_budget == sum(
            (effective_total(r, everything) for r in roots), Decimal("0"),
        )


# =============================================================================
# Summaries
# =============================================================================


class TestSummaries:
    """Category buckets and alternative groupings."""

    def test_buckets_by_category(self):
        items = [
            line_item(cost="100", category=BudgetCategory.ABOVE_THE_LINE.value),
            line_item(name="b", cost="200", category=BudgetCategory.BELOW_THE_LINE.value),
            line_item(name="c", cost="300", category=BudgetCategory.POST_PRODUCTION.value),
            line_item(name="d", cost="400", category="Catering"),
        ]
        summary = summarize(items)
        assert summary.above_the_line_total == Decimal("100")
        assert summary.below_the_line_total == Decimal("200")
        assert summary.post_production_total == Decimal("300")
        assert summary.other_total == Decimal("400")
        assert summary.total_budget == Decimal("1000")
        assert summary.percentage_for(BudgetCategory.OTHER) == Decimal("40")

    def test_empty_summary_percentages_zero(self):
        summary = summarize([])
        assert summary.total_budget == Decimal("0")
        assert summary.percentage_for(BudgetCategory.OTHER) == Decimal("0")

    @given(costs=st.lists(st.tuples(amounts, categories), max_size=10))
    @settings(max_examples=50)
    def test_flat_total_is_sum_of_effective_totals(self, costs):
        items = [line_item(name=str(i), cost=str(c), category=cat) for i, (c, cat) in enumerate(costs)]
        summary = summarize(items)
        assert summary.total_budget == sum((effective_total(i, items) for i in items), Decimal("0"))
        assert summary.total_budget == (
            summary.above_the_line_total + summary.below_the_line_total
            + summary.post_production_total + summary.other_total
        )

    def test_short_film_uses_section_then_subcategory(self):
        items = [
            line_item(cost="100", section="Cast"),
            line_item(name="b", cost="50", subcategory="Crew"),
            line_item(name="c", cost="25", section="Crew", subcategory="Cast"),
            line_item(name="d", cost="5"),
        ]
        summary = summarize_short_film(items)
        assert summary.cast_total == Decimal("100")
        assert summary.crew_total == Decimal("75")
        assert summary.other_total == Decimal("5")
        assert summary.total_budget == Decimal("180")

    def test_custom_categories_child_uses_parent_category(self):
        cats = (CustomCategory(name="Cast"), CustomCategory(name="Crew"), CustomCategory(name="Other"))
        parent = line_item(name="Lead", category="Cast", cost="0")
        child = line_item(name="Overtime", category="Crew", cost="40", parent_item_id=parent.id)
        parent = BudgetLineItem(id=parent.id, name="Lead", category="Cast", child_item_ids=(child.id,))

        summary = summarize_custom_categories([parent, child], cats)
        assert summary.amount_for(cats[0].id) == Decimal("40")
        assert summary.amount_for(cats[1].id) == Decimal("0")

    def test_custom_categories_unmatched_goes_to_last(self):
        cats = SHORT_FILM_CATEGORIES
        summary = summarize_custom_categories([line_item(cost="30", category="Catering")], cats)
        assert summary.amount_for(cats[-1].id) == Decimal("30")
        assert summary.percentage_for(cats[-1].id) == Decimal("100")

    def test_default_categories(self):
        assert [c.name for c in FEATURE_FILM_CATEGORIES] == [c.value for c in BudgetCategory]
        assert [c.name for c in SHORT_FILM_CATEGORIES] == ["Cast", "Crew", "Other"]
        # Shared name, shared deterministic id.
        assert FEATURE_FILM_CATEGORIES[-1].id == SHORT_FILM_CATEGORIES[-1].id

    def test_version_totals_count_expenses_only(self):
        version = BudgetVersion(
            id=uuid4(),
            name="v",
            created_date=FIXED_NOW,
            line_items=(line_item(cost="400"), line_item(name="b", cost="100")),
            transactions=(
                transaction(amount="150"),
                transaction(amount="1000", transaction_type=TransactionType.INCOME),
                transaction(amount="100"),
            ),
        )
        assert version.total_budget == Decimal("500")
        assert version.total_spent == Decimal("250")
        assert version.remaining == Decimal("250")
        assert version.percentage_used == Decimal("50")

    def test_empty_version_percentage_zero(self):
        version = BudgetVersion(id=uuid4(), name="v", created_date=FIXED_NOW)
        assert version.percentage_used == Decimal("0")

    def test_section_totals(self):
        items = [
            line_item(cost="10", section="Camera"),
            line_item(name="b", cost="15", section="Camera"),
            line_item(name="c", cost="7", section="Art"),
            line_item(name="d", cost="99"),
        ]
        assert total_for_section("Camera", items) == Decimal("25")
        assert totals_by_section(items) == {"Camera": Decimal("25"), "Art": Decimal("7")}


# =============================================================================
# Variance
# =============================================================================


class TestVariance:
    """Status thresholds on percentage used."""

    def test_over_budget(self):
        v = calculate_variance(Decimal("100"), Decimal("120"))
        assert v.variance == Decimal("-20")
        assert v.percentage_used == Decimal("120")
        assert v.percentage_remaining == Decimal("-20")
        assert v.status == VarianceStatus.OVER_BUDGET
        assert v.is_over_budget

    @given(actual=st.decimals(min_value=-1_000_000, max_value=1_000_000, allow_nan=False, allow_infinity=False))
    def test_zero_budget_is_always_on_track(self, actual):
        v = calculate_variance(Decimal("0"), actual)
        assert v.percentage_used == Decimal("0")
        assert v.status == VarianceStatus.ON_TRACK

    def test_zero_budget_overspend_is_over_budget(self):
        v = calculate_variance(Decimal("0"), Decimal("25"))
        assert v.status == VarianceStatus.ON_TRACK
        assert v.is_over_budget

    def test_under_budget_not_over(self):
        assert not calculate_variance(Decimal("100"), Decimal("100")).is_over_budget

    @pytest.mark.parametrize(
        ("actual", "status"),
        [
            ("75", VarianceStatus.ON_TRACK),
            ("75.01", VarianceStatus.WARNING),
            ("90", VarianceStatus.WARNING),
            ("90.5", VarianceStatus.NEAR_LIMIT),
            ("100", VarianceStatus.NEAR_LIMIT),
            ("100.01", VarianceStatus.OVER_BUDGET),
        ],
    )
    def test_thresholds(self, actual, status):
        assert calculate_variance(Decimal("100"), Decimal(actual)).status == status

    def test_item_variances_use_linked_transactions(self):
        item = line_item(cost="100")
        other = line_item(name="Other", cost="50")
        txs = [
            transaction(amount="30", line_item_id=item.id),
            transaction(amount="40", line_item_id=item.id),
            transaction(amount="999"),
        ]
        variances = calculate_item_variances([item, other], txs)
        assert variances[item.id].actual == Decimal("70")
        assert variances[other.id].actual == Decimal("0")

    def test_category_variances_map_transaction_categories(self):
        items = [line_item(cost="1000", category=BudgetCategory.BELOW_THE_LINE.value)]
        txs = [
            transaction(amount="100", category=TransactionCategory.PRODUCTION.value),
            transaction(amount="200", category=TransactionCategory.LOCATIONS_LOGISTICS.value),
            transaction(amount="50", category=TransactionCategory.POST_PRODUCTION.value),
        ]
        variances = calculate_category_variances(items, txs)
        assert variances[BudgetCategory.BELOW_THE_LINE].actual == Decimal("300")
        assert variances[BudgetCategory.BELOW_THE_LINE].budgeted == Decimal("1000")
        assert variances[BudgetCategory.POST_PRODUCTION].actual == Decimal("50")
        assert variances[BudgetCategory.POST_PRODUCTION].status == VarianceStatus.ON_TRACK


# =============================================================================
# Projection & currency
# =============================================================================


class TestProjection:
    """Linear burn-rate extrapolation."""

    def test_short_circuit_when_no_days_elapsed(self):
        p = project_remaining(Decimal("1000"), Decimal("200"), 0, 10)
        assert p.daily_rate == Decimal("0")
        assert p.projected_total == Decimal("200")
        assert p.projected_remaining == Decimal("800")
        assert p.days_remaining == 10
        assert p.on_track is True

    def test_short_circuit_when_no_schedule(self):
        p = project_remaining(Decimal("1000"), Decimal("200"), 5, 0)
        assert p.projected_total == Decimal("200")
        assert p.on_track is True

    def test_linear_extrapolation(self):
        p = project_remaining(Decimal("1000"), Decimal("400"), 2, 10)
        assert p.daily_rate == Decimal("200")
        assert p.projected_total == Decimal("2000")
        assert p.projected_remaining == Decimal("-1000")
        assert p.days_remaining == 8
        assert p.on_track is False
        assert p.status_message == "Projected to exceed budget by 1000.00"

    def test_on_track_message(self):
        p = project_remaining(Decimal("1000"), Decimal("100"), 5, 10)
        assert p.on_track
        assert p.status_message == "On track to finish under budget"


class TestConvertCurrency:
    """Conversion through a common base, fail-soft."""

    RATES = {"USD": Decimal("1"), "EUR": Decimal("0.5"), "BAD": Decimal("0")}

    def test_converts_through_base(self):
        assert convert_currency(Decimal("10"), "EUR", "USD", self.RATES) == Decimal("20")
        assert convert_currency(Decimal("10"), "USD", "EUR", self.RATES) == Decimal("5.0")

    @pytest.mark.parametrize(("src", "dst"), [("GBP", "USD"), ("USD", "GBP"), ("BAD", "USD")])
    def test_unknown_or_bad_rate_returns_input(self, src, dst):
        assert convert_currency(Decimal("10"), src, dst, self.RATES) == Decimal("10")
