"""Tests for line-item and transaction audit details (budget_modules/ledger/audit.py)."""

import json
from dataclasses import replace
from decimal import Decimal

import pytest

from budget_kernel.models.audit_entry import AuditAction
from budget_modules.ledger.audit import (
    diff_records,
    format_money,
    line_item_detail,
    record_line_item_change,
    record_transaction_change,
    transaction_detail,
)
from tests.conftest import line_item, transaction


class TestFormatMoney:
    @pytest.mark.parametrize(
        ("amount", "currency", "expected"),
        [
            ("1234.5", "USD", "$1,234.50"),
            ("0", "USD", "$0.00"),
            ("2.345", "USD", "$2.35"),
            ("1500", "JPY", "¥1,500"),
            ("12", "GBP", "£12.00"),
        ],
    )
    def test_format(self, amount, currency, expected):
        assert format_money(Decimal(amount), currency) == expected


class TestDetails:
    """Readable one-line descriptions of a change."""

    def test_created_has_no_diff(self):
        assert line_item_detail(AuditAction.CREATED, line_item(name="Dolly")) == "Created line item 'Dolly'"

    def test_rename_and_rate_change(self):
        before = line_item(name="Dolly", cost="100")
        after = replace(before, name="Dolly Track", unit_cost=Decimal("125"))
        assert line_item_detail(AuditAction.UPDATED, after, before) == (
            "Updated line item 'Dolly Track' - name: 'Dolly' -> 'Dolly Track', "
            "rate: $100.00 -> $125.00, total: $100.00 -> $125.00"
        )

    def test_days_change(self):
        before = line_item(days="2", cost="50")
        after = replace(before, days=Decimal("3"))
        assert line_item_detail(AuditAction.UPDATED, after, before).endswith(
            "days: 2 -> 3, total: $100.00 -> $150.00"
        )

    def test_transaction_amount_change(self):
        before = transaction(amount="80")
        after = replace(before, amount=Decimal("95.5"))
        assert transaction_detail(AuditAction.UPDATED, after, before) == (
            "Updated transaction: $95.50 (was $80.00)"
        )
        assert transaction_detail(AuditAction.DELETED, before) == "Deleted transaction: $80.00"


class TestDiffRecords:
    """Pairing old and new collections by id."""

    def test_created_updated_deleted(self):
        keep, change, drop = line_item(name="a"), line_item(name="b"), line_item(name="c")
        changed = replace(change, notes="new")
        added = line_item(name="d")

        diff = diff_records([keep, change, drop], [keep, changed, added])

        assert diff == [
            (AuditAction.UPDATED, changed, change),
            (AuditAction.CREATED, added, None),
            (AuditAction.DELETED, drop, None),
        ]

    def test_identical_collections(self):
        items = [line_item(), line_item(name="x")]
        assert diff_records(items, list(items)) == []


class TestRecordHelpers:
    """Appending through the trail."""

    def test_record_line_item_change_snapshots(self, audit_trail):
        before = line_item(qty="1")
        after = replace(before, quantity=Decimal("2"))

        entry = record_line_item_change(audit_trail, AuditAction.UPDATED, after, before)

        assert entry.entity_type == "BudgetLineItem"
        assert entry.entity_id == after.id
        assert "qty: 1 -> 2" in entry.detail
        assert json.loads(entry.previous_value)["quantity"] == "1"
        assert json.loads(entry.new_value)["quantity"] == "2"

    def test_record_transaction_change(self, audit_trail):
        tx = transaction(amount="10")
        entry = record_transaction_change(audit_trail, AuditAction.CREATED, tx, currency="EUR")
        assert entry.detail == "Created transaction: €10.00"
        assert audit_trail.entries_for(tx.id) == [entry]
