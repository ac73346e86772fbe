"""
Tests for TransactionManager (budget_modules/ledger/transactions.py).

Validates:
- single-transaction add / update / delete stored through VersionManager
- the lock gate runs before transaction validation
- future-dated expenses and remaining-budget ceilings are rejected
- filters and totals
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from budget_kernel.exceptions import TransactionNotFoundError
from budget_kernel.models.audit_entry import AuditAction
from budget_modules.ledger.models import TransactionType
from budget_modules.ledger.results import LedgerStatus
from budget_modules.ledger.validation import LedgerErrorKind
from tests.conftest import FIXED_NOW, transaction


@pytest.fixture
def fuel(transactions):
    tx = transaction("80", category="Locations & Logistics", payee="Gas Co")
    assert transactions.add_transaction(tx).is_success
    return tx


class TestMutations:

    def test_add_persists_and_audits(self, transactions, version_manager, audit_trail):
        tx = transaction("50")
        result = transactions.add_transaction(tx)

        assert result.is_success
        assert version_manager.selected_version.transactions == (tx,)
        [entry] = audit_trail.entries_for(tx.id)
        assert entry.action == AuditAction.CREATED
        assert entry.entity_type == "BudgetTransaction"

    def test_add_survives_reload(self, transactions, version_manager, fuel):
        version_manager.reload()
        assert transactions.transaction(fuel.id) == fuel

    def test_future_expense_rejected(self, transactions):
        result = transactions.add_transaction(transaction(date=FIXED_NOW + timedelta(days=1)))
        assert result.status == LedgerStatus.REJECTED
        assert result.error.kind == LedgerErrorKind.FUTURE_DATE
        assert transactions.transactions == ()

    def test_future_income_accepted(self, transactions):
        tx = transaction(date=FIXED_NOW + timedelta(days=1), transaction_type=TransactionType.INCOME)
        assert transactions.add_transaction(tx).is_success

    def test_ceiling_rejected(self, transactions):
        result = transactions.add_transaction(transaction("500"), budget_remaining=Decimal("100"))
        assert result.error.kind == LedgerErrorKind.TRANSACTION_EXCEEDS_BUDGET
        assert result.error.details["available"] == Decimal("100")

    def test_non_finite_amount_rejected(self, transactions):
        result = transactions.add_transaction(transaction("NaN"))
        assert result.error.kind == LedgerErrorKind.INVALID_AMOUNT

    def test_lock_reported_before_invalid_amount(self, transactions, version_manager):
        version_manager.lock_version(version_manager.selected_version.id)
        result = transactions.add_transaction(transaction("NaN"))
        assert result.error.kind == LedgerErrorKind.BUDGET_LOCKED

    def test_update(self, transactions, fuel, audit_trail):
        result = transactions.update_transaction(replace(fuel, amount=Decimal("95")))

        assert result.is_success
        assert transactions.transaction(fuel.id).amount == Decimal("95")
        latest = audit_trail.entries_for(fuel.id)[0]
        assert latest.action == AuditAction.UPDATED
        assert "(was $80.00)" in latest.detail

    def test_update_revalidates(self, transactions, fuel):
        result = transactions.update_transaction(replace(fuel, date=FIXED_NOW + timedelta(hours=1)))
        assert result.error.kind == LedgerErrorKind.FUTURE_DATE
        assert transactions.transaction(fuel.id) == fuel

    def test_delete(self, transactions, fuel, audit_trail):
        assert transactions.delete_transaction(fuel.id).is_success
        assert transactions.transactions == ()
        assert audit_trail.entries_for(fuel.id)[0].action == AuditAction.DELETED

    def test_delete_on_locked_version(self, transactions, version_manager, fuel):
        version_manager.lock_version(version_manager.selected_version.id)
        result = transactions.delete_transaction(fuel.id)
        assert result.error.kind == LedgerErrorKind.BUDGET_LOCKED
        assert transactions.transactions == (fuel,)

    def test_unknown_id(self, transactions):
        with pytest.raises(TransactionNotFoundError):
            transactions.update_transaction(transaction())
        with pytest.raises(TransactionNotFoundError):
            transactions.delete_transaction(uuid4())


class TestQueries:

    @pytest.fixture
    def ledger(self, transactions):
        item_id = uuid4()
        records = [
            transaction("100", category="Development", line_item_id=item_id,
                        date=FIXED_NOW - timedelta(days=10)),
            transaction("40", category="Development", line_item_id=item_id,
                        transaction_type=TransactionType.REFUND),
            transaction("25", category="Post-Production", line_item_id=item_id),
            transaction("300", category="Development", transaction_type=TransactionType.INCOME),
        ]
        for tx in records:
            assert transactions.add_transaction(tx).is_success
        return item_id

    def test_total_by_category_sums_every_type(self, transactions, ledger):
        assert transactions.total_by_category() == {
            "Development": Decimal("440"),
            "Post-Production": Decimal("25"),
        }

    def test_total_spent_counts_expenses_only(self, transactions, ledger):
        assert transactions.total_spent(ledger) == Decimal("125")
        assert transactions.total_spent(uuid4()) == Decimal("0")

    def test_totals(self, transactions, ledger):
        assert transactions.total_amount == Decimal("465")
        assert transactions.total_expenses == Decimal("125")

    def test_filters(self, transactions, ledger):
        assert len(transactions.for_category("Development")) == 3
        assert len(transactions.for_line_item(ledger)) == 3
        assert [t.amount for t in transactions.of_type(TransactionType.INCOME)] == [Decimal("300")]

    def test_between_accepts_naive_bounds(self, transactions, ledger):
        start = (FIXED_NOW - timedelta(days=2)).replace(tzinfo=None)
        found = transactions.between(start, FIXED_NOW.replace(tzinfo=None))
        assert len(found) == 3
