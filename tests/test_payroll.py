"""
Tests for PayrollManager (budget_modules/payroll/service.py).

Validates:
- item and pay period CRUD with their audit details
- the lock gate and validation rejections
- payment-status workflow (PAID stamps a payment date)
- upcoming / overdue payment windows
- sorting, filtering and summaries
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from budget_kernel.exceptions import PayPeriodNotFoundError, PayrollItemNotFoundError
from budget_kernel.models.audit_entry import AuditAction
from budget_modules.ledger.config import LedgerConfig
from budget_modules.ledger.models import ContactType
from budget_modules.ledger.results import LedgerStatus
from budget_modules.ledger.validation import LedgerErrorKind
from budget_modules.payroll.models import PaymentStatus, PayrollSortOption
from tests.conftest import FIXED_NOW, pay_period, payroll_item


@pytest.fixture
def alex(payroll):
    item = payroll_item(department="Lighting")
    assert payroll.add_item(item).is_success
    return payroll.item(item.id)


@pytest.fixture
def alex_week(payroll, alex):
    period = pay_period()
    assert payroll.add_pay_period(alex.id, period).is_success
    return period


# =============================================================================
# Items
# =============================================================================


class TestItems:
    """Add, update, delete and clear."""

    def test_add_stamps_times_and_audits(self, payroll, audit_trail, deterministic_clock):
        item = payroll_item()
        result = payroll.add_item(item)

        assert result.is_success
        stored = payroll.item(item.id)
        assert stored.created_at == deterministic_clock.now()
        assert stored.updated_at == deterministic_clock.now()
        [entry] = audit_trail.entries_for(item.id)
        assert entry.entity_type == "PayrollLineItem"
        assert entry.detail == "Added Alex Doe (Gaffer)"

    def test_add_duplicate_rejected(self, payroll, alex):
        result = payroll.add_item(payroll_item(person="ALEX DOE", role="gaffer"))
        assert result.status == LedgerStatus.REJECTED
        assert result.error.kind == LedgerErrorKind.DUPLICATE_ENTRY
        assert len(payroll.items) == 1

    def test_add_invalid_rejected(self, payroll):
        result = payroll.add_item(payroll_item(role=""))
        assert result.message == "Role cannot be empty"
        assert payroll.items == ()

    def test_update(self, payroll, alex, audit_trail, deterministic_clock):
        deterministic_clock.advance(3600)
        result = payroll.update_item(replace(alex, total_budgeted_amount=Decimal("6000")))

        assert result.is_success
        updated = payroll.item(alex.id)
        assert updated.total_budgeted_amount == Decimal("6000")
        assert updated.updated_at == deterministic_clock.now()
        assert updated.created_at == alex.created_at
        assert audit_trail.entries_for(alex.id)[0].detail == "Updated Alex Doe"

    def test_update_is_not_its_own_duplicate(self, payroll, alex):
        assert payroll.update_item(replace(alex, notes="rehired")).is_success

    def test_update_unknown(self, payroll):
        with pytest.raises(PayrollItemNotFoundError):
            payroll.update_item(payroll_item())

    def test_delete(self, payroll, alex, audit_trail):
        assert payroll.delete_item(alex.id).is_success
        assert payroll.items == ()
        assert audit_trail.entries_for(alex.id)[0].detail == "Deleted Alex Doe (Gaffer)"

    def test_delete_unknown(self, payroll):
        with pytest.raises(PayrollItemNotFoundError):
            payroll.delete_item(uuid4())

    def test_clear_all(self, payroll, alex, version_manager, audit_trail):
        payroll.add_item(payroll_item(person="Sam", role="Grip"))
        assert payroll.clear_all().is_success
        assert payroll.items == ()
        entry = audit_trail.entries_for(version_manager.selected_version.id)[0]
        assert entry.action == AuditAction.DELETED
        assert entry.detail == "Cleared all payroll items"

    def test_locked_version_rejects(self, payroll, alex, version_manager):
        version_manager.lock_version(version_manager.selected_version.id)
        result = payroll.delete_item(alex.id)
        assert result.error.kind == LedgerErrorKind.BUDGET_LOCKED
        assert payroll.item(alex.id) == alex

    def test_lock_reported_before_invalid_input(self, payroll, alex, version_manager):
        version_manager.lock_version(version_manager.selected_version.id)

        assert payroll.add_item(payroll_item(person="")).error.kind == LedgerErrorKind.BUDGET_LOCKED
        assert payroll.update_item(replace(alex, role="")).error.kind == LedgerErrorKind.BUDGET_LOCKED
        assert (
            payroll.add_pay_period(alex.id, pay_period(name="")).error.kind
            == LedgerErrorKind.BUDGET_LOCKED
        )


# =============================================================================
# Pay periods and payment status
# =============================================================================


class TestPayPeriods:
    """Nested period CRUD and the status workflow."""

    def test_add_period(self, payroll, alex, audit_trail):
        period = pay_period(name="Week 2")
        assert payroll.add_pay_period(alex.id, period).is_success
        assert payroll.item(alex.id).pay_periods == (period,)
        assert audit_trail.entries_for(period.id)[0].detail == "Added Week 2 for Alex Doe"

    def test_add_invalid_period(self, payroll, alex):
        result = payroll.add_pay_period(alex.id, pay_period(gross="100", deductions="200"))
        assert result.error.kind == LedgerErrorKind.NEGATIVE_NET
        assert payroll.item(alex.id).pay_periods == ()

    def test_update_period(self, payroll, alex, alex_week, audit_trail):
        changed = replace(alex_week, gross_amount=Decimal("1200")).with_recomputed_net()
        assert payroll.update_pay_period(alex.id, changed).is_success
        [stored] = payroll.item(alex.id).pay_periods
        assert stored.net_amount == Decimal("1200")
        assert audit_trail.entries_for(alex_week.id)[0].detail == "Updated Week 1 for Alex Doe"

    def test_update_unknown_period(self, payroll, alex):
        with pytest.raises(PayPeriodNotFoundError):
            payroll.update_pay_period(alex.id, pay_period())

    def test_delete_period(self, payroll, alex, alex_week, audit_trail):
        assert payroll.delete_pay_period(alex.id, alex_week.id).is_success
        assert payroll.item(alex.id).pay_periods == ()
        assert audit_trail.entries_for(alex_week.id)[0].detail == "Deleted Week 1 for Alex Doe"

    def test_mark_paid_stamps_date(self, payroll, alex, alex_week, audit_trail, deterministic_clock):
        result = payroll.update_payment_status(alex.id, alex_week.id, PaymentStatus.PAID)

        assert result.is_success
        [paid] = payroll.item(alex.id).pay_periods
        assert paid.status == PaymentStatus.PAID
        assert paid.payment_date == deterministic_clock.now()
        assert payroll.item(alex.id).total_paid == Decimal("1000")
        assert audit_trail.entries_for(alex_week.id)[0].detail == "Week 1 for Alex Doe marked as paid"

    def test_mark_paid_keeps_existing_date(self, payroll, alex):
        scheduled = FIXED_NOW - timedelta(days=2)
        period = pay_period(payment_date=scheduled)
        payroll.add_pay_period(alex.id, period)
        payroll.update_payment_status(alex.id, period.id, PaymentStatus.PAID)
        assert payroll.item(alex.id).pay_period(period.id).payment_date == scheduled

    def test_other_status_detail(self, payroll, alex, alex_week, audit_trail):
        payroll.update_payment_status(alex.id, alex_week.id, PaymentStatus.APPROVED)
        assert payroll.item(alex.id).pay_periods[0].payment_date is None
        assert audit_trail.entries_for(alex_week.id)[0].detail == (
            "Week 1 for Alex Doe updated status to Approved"
        )

    def test_batch_add_uses_fresh_ids(self, payroll, alex):
        sam = payroll_item(person="Sam", role="Grip")
        payroll.add_item(sam)
        template = pay_period(name="Week 3")

        results = payroll.add_pay_period_to_items([alex.id, sam.id], template)

        assert all(r.is_success for r in results)
        ids = {payroll.item(alex.id).pay_periods[0].id, payroll.item(sam.id).pay_periods[0].id}
        assert len(ids) == 2
        assert template.id not in ids

    def test_batch_status_update(self, payroll, alex, alex_week):
        second = pay_period(name="Week 2")
        payroll.add_pay_period(alex.id, second)

        results = payroll.update_payment_statuses([
            (alex.id, alex_week.id, PaymentStatus.APPROVED),
            (alex.id, second.id, PaymentStatus.PAID),
        ])

        assert [r.status for r in results] == [LedgerStatus.APPLIED, LedgerStatus.APPLIED]
        assert [p.status for p in payroll.item(alex.id).pay_periods] == [
            PaymentStatus.APPROVED, PaymentStatus.PAID,
        ]


# =============================================================================
# Due dates
# =============================================================================


class TestDueDates:
    """Upcoming and overdue windows."""

    @pytest.fixture
    def scheduled(self, payroll, alex):
        periods = {
            "overdue": pay_period(name="Overdue", payment_date=FIXED_NOW - timedelta(days=1)),
            "soon": pay_period(name="Soon", payment_date=FIXED_NOW + timedelta(days=3)),
            "later": pay_period(name="Later", payment_date=FIXED_NOW + timedelta(days=30)),
            "undated": pay_period(name="Undated"),
            "paid": pay_period(
                name="Paid", payment_date=FIXED_NOW - timedelta(days=5), status=PaymentStatus.PAID,
            ),
        }
        for period in periods.values():
            payroll.add_pay_period(alex.id, period)
        return periods

    def test_upcoming_default_window(self, payroll, scheduled):
        names = [p.period_name for _, p in payroll.upcoming_payments()]
        assert names == ["Overdue", "Soon"]

    def test_upcoming_custom_window(self, payroll, scheduled):
        names = [p.period_name for _, p in payroll.upcoming_payments(within_days=60)]
        assert names == ["Overdue", "Soon", "Later"]

    def test_overdue(self, payroll, scheduled):
        [(item, period)] = payroll.overdue_payments()
        assert period.period_name == "Overdue"
        assert item.person_name == "Alex Doe"

    def test_naive_payment_dates(self, payroll, alex):
        naive_now = FIXED_NOW.replace(tzinfo=None)
        payroll.add_pay_period(alex.id, pay_period(name="Late", payment_date=naive_now - timedelta(days=2)))
        payroll.add_pay_period(alex.id, pay_period(name="Next", payment_date=naive_now + timedelta(days=2)))

        assert [p.period_name for _, p in payroll.overdue_payments()] == ["Late"]
        assert [p.period_name for _, p in payroll.upcoming_payments()] == ["Late", "Next"]
        assert len(payroll.pay_periods_between(naive_now - timedelta(days=30), naive_now)) == 2

    def test_window_from_config(self, make_version_manager, scheduled):
        manager = make_version_manager(LedgerConfig(upcoming_payment_window_days=60)).start()
        names = [p.period_name for _, p in manager.payroll.upcoming_payments()]
        assert names == ["Overdue", "Soon", "Later"]


# =============================================================================
# Queries and summaries
# =============================================================================


class TestQueries:
    """Sorting, filtering and summaries."""

    @pytest.fixture
    def crew(self, payroll):
        items = [
            payroll_item(person="Casey", role="Lead", budget="9000", department="Cast",
                         contact_type=ContactType.CAST),
            payroll_item(person="Alex", role="Gaffer", budget="5000", department="Lighting"),
            payroll_item(person="Blair", role="Best Boy", budget="3000", department="Lighting",
                         notes="night shoots"),
        ]
        for item in items:
            payroll.add_item(item)
        payroll.add_pay_period(items[1].id, pay_period(gross="2000", status=PaymentStatus.PAID))
        payroll.add_pay_period(items[2].id, pay_period(gross="500"))
        return items

    @pytest.mark.parametrize(
        ("option", "expected"),
        [
            (PayrollSortOption.NAME_ASC, ["Alex", "Blair", "Casey"]),
            (PayrollSortOption.NAME_DESC, ["Casey", "Blair", "Alex"]),
            (PayrollSortOption.BUDGETED_ASC, ["Blair", "Alex", "Casey"]),
            (PayrollSortOption.BUDGETED_DESC, ["Casey", "Alex", "Blair"]),
            (PayrollSortOption.PAID_DESC, ["Alex", "Casey", "Blair"]),
            (PayrollSortOption.REMAINING_ASC, ["Alex", "Blair", "Casey"]),
            (PayrollSortOption.ROLE_ASC, ["Blair", "Alex", "Casey"]),
        ],
    )
    def test_sorts(self, payroll, crew, option, expected):
        assert [i.person_name for i in payroll.sorted_items(option)] == expected

    def test_filters(self, payroll, crew):
        assert [i.person_name for i in payroll.items_for_contact_type(ContactType.CAST)] == ["Casey"]
        assert len(payroll.items_for_department("Lighting")) == 2
        assert [i.person_name for i in payroll.items_matching("NIGHT")] == ["Blair"]
        assert payroll.departments() == ["Cast", "Lighting"]

    def test_items_for_contact(self, payroll):
        contact = uuid4()
        payroll.add_item(payroll_item(linked_contact_id=contact))
        assert len(payroll.items_for_contact(contact)) == 1
        assert payroll.items_for_contact(uuid4()) == []

    def test_summary(self, payroll, crew):
        summary = payroll.calculate_summary()
        assert summary.total_budgeted == Decimal("17000")
        assert summary.total_paid == Decimal("2000")
        assert summary.total_pending == Decimal("500")
        assert summary.cast_total == Decimal("9000")
        assert summary.crew_total == Decimal("8000")
        assert summary.status_breakdown.paid_count == 1
        assert summary.status_breakdown.pending_count == 1
        assert summary.department_breakdown == {"Cast": Decimal("9000"), "Lighting": Decimal("8000")}

    def test_summary_of_subset(self, payroll, crew):
        summary = payroll.calculate_summary(payroll.items_for_contact_type(ContactType.CAST))
        assert summary.total_budgeted == Decimal("9000")

    def test_periods_by_status_and_range(self, payroll, crew):
        assert len(payroll.all_pay_periods()) == 2
        assert len(payroll.pay_periods_with_status(PaymentStatus.PAID)) == 1
        window = payroll.pay_periods_between(FIXED_NOW - timedelta(days=2), FIXED_NOW)
        assert len(window) == 2
        assert payroll.pay_periods_between(FIXED_NOW + timedelta(days=1), FIXED_NOW + timedelta(days=2)) == []

    def test_item_figures(self, payroll, crew):
        alex = payroll.item(crew[1].id)
        assert alex.remaining_balance == Decimal("3000")
        assert alex.percentage_paid == Decimal("40")
