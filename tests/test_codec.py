"""
Tests for the ledger JSON codec (budget_modules/ledger/codec.py).

Validates:
- camelCase keys of the legacy wire format
- Decimal written as strings, accepted as strings or numbers
- legacy numeric dates (seconds since 2001-01-01 UTC)
- decode failures surface as LegacyDataDecodeError naming the collection
"""

import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from budget_kernel.exceptions import LegacyDataDecodeError, MigrationError
from budget_modules.ledger.codec import (
    LEGACY_EPOCH,
    decode_line_items,
    decode_payroll_items,
    decode_transactions,
    decode_versions,
    encode_line_items,
    encode_payroll_items,
    encode_transactions,
    encode_versions,
)
from budget_modules.ledger.models import BudgetVersion, ContactType
from budget_modules.payroll.models import PaymentMethod, PaymentStatus
from tests.conftest import FIXED_NOW, line_item, pay_period, payroll_item, transaction


# =============================================================================
# Encoding
# =============================================================================


class TestEncoding:
    """Wire layout of the JSON columns."""

    def test_line_item_keys_are_camel_case(self):
        parent_id = uuid4()
        item = line_item(qty="2", cost="12.50", parent_item_id=parent_id,
                         linked_contact_type=ContactType.CAST)
        [row] = json.loads(encode_line_items([item]))

        assert row["unitCost"] == "12.50"
        assert row["quantity"] == "2"
        assert row["parentItemID"] == str(parent_id)
        assert row["linkedContactType"] == "Cast"
        assert row["childItemIDs"] is None
        assert "unit_cost" not in row

    def test_encoding_is_deterministic(self):
        items = [line_item(), line_item(name="Other")]
        assert encode_line_items(items) == encode_line_items(items)

    def test_transaction_dates_are_iso(self):
        [row] = json.loads(encode_transactions([transaction()]))
        assert row["date"] == (FIXED_NOW - timedelta(days=1)).isoformat()
        assert row["transactionType"] == "Expense"

    def test_payroll_item_nests_periods(self):
        period = pay_period(status=PaymentStatus.PAID, payment_method=PaymentMethod.DIRECT_DEPOSIT)
        [row] = json.loads(encode_payroll_items([payroll_item(pay_periods=(period,))]))
        [p] = row["payPeriods"]
        assert p["status"] == "Paid"
        assert p["paymentMethod"] == "Direct Deposit"
        assert p["netAmount"] == "1000"


# =============================================================================
# Decoding
# =============================================================================


class TestDecoding:
    """Both generations of the format decode with the same code."""

    def test_line_items_survive_encoding(self):
        child = line_item(name="Child")
        parent = line_item(name="Parent", child_item_ids=(child.id,), is_linked_to_rate_card=True,
                           rate_card_id=uuid4())
        assert decode_line_items(encode_line_items([parent, child])) == (parent, child)

    def test_payroll_items_survive_encoding(self):
        item = payroll_item(
            pay_periods=(pay_period(deductions="100"), pay_period(name="Week 2", net_amount=Decimal("5"))),
            created_at=FIXED_NOW,
            contact_type=ContactType.VENDOR,
        )
        [decoded] = decode_payroll_items(encode_payroll_items([item]))
        assert decoded == item
        assert decoded.pay_periods[0].net_amount == Decimal("900")
        assert decoded.pay_periods[1].net_amount == Decimal("5")

    def test_empty_and_missing_text(self):
        assert decode_line_items(None) == ()
        assert decode_line_items("") == ()
        assert decode_transactions("[]") == ()

    def test_numeric_amounts_and_legacy_dates(self):
        tx_id = uuid4()
        text = json.dumps([{"id": str(tx_id), "amount": 12.5, "date": 86400}])
        [tx] = decode_transactions(text)
        assert tx.amount == Decimal("12.5")
        assert tx.date == LEGACY_EPOCH + timedelta(days=1)
        assert tx.date == datetime(2001, 1, 2, tzinfo=UTC)

    def test_optional_fields_default(self):
        text = json.dumps([{"id": str(uuid4()), "name": "Bare"}])
        [item] = decode_line_items(text)
        assert item.quantity == Decimal("0")
        assert item.category == "Below the Line"
        assert item.section is None
        assert item.child_item_ids == ()

    @pytest.mark.parametrize(
        "text",
        [
            "{not json",
            json.dumps({"id": "x"}),
            json.dumps([{"name": "missing id"}]),
            json.dumps([{"id": "not-a-uuid", "name": "x"}]),
            json.dumps([{"id": str(uuid4()), "name": "x", "quantity": "lots"}]),
        ],
    )
    def test_malformed_raises_decode_error(self, text):
        with pytest.raises(LegacyDataDecodeError) as exc_info:
            decode_line_items(text)
        assert exc_info.value.key == "lineItems"
        assert isinstance(exc_info.value, MigrationError)


class TestVersionsBlob:
    """The legacy flat store: an array of full version snapshots."""

    def test_versions_survive_encoding(self):
        version = BudgetVersion(
            id=uuid4(),
            name="Budget v1.0",
            created_date=FIXED_NOW,
            line_items=(line_item(),),
            transactions=(transaction(),),
            payroll_items=(payroll_item(pay_periods=(pay_period(),)),),
            is_locked=True,
            locked_at=FIXED_NOW,
            locked_by="alice",
            currency="EUR",
            notes="final",
        )
        assert decode_versions(encode_versions([version])) == (version,)

    def test_legacy_numeric_created_date(self):
        text = json.dumps([{"id": str(uuid4()), "name": "Old", "createdDate": 0}])
        [version] = decode_versions(text)
        assert version.created_date == LEGACY_EPOCH
        assert version.line_items == ()
        assert version.currency == "USD"

    def test_missing_created_date_names_key(self):
        text = json.dumps([{"id": str(uuid4()), "name": "Old"}])
        with pytest.raises(LegacyDataDecodeError) as exc_info:
            decode_versions(text, key="budgetVersions")
        assert exc_info.value.key == "budgetVersions"
        assert "createdDate" in str(exc_info.value)
