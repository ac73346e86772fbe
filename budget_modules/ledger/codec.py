"""
Ledger JSON Codec (``budget_modules.ledger.codec``).

Responsibility
--------------
Encodes a version's three nested collections (line items, transactions,
payroll items) to JSON text for the relational ``*_json`` columns, and
decodes both those columns and the legacy flat-store blob back into frozen
domain objects.  Custom categories and saved templates, which live in the
key-value store, use the same helpers.

Architecture position
---------------------
**Modules layer** -- pure functions, no I/O.  Used by ``BudgetVersionModel``,
``MigrationManager``, ``CategoryManager`` and ``TemplateManager``.

Invariants enforced
-------------------
* Field names use the camelCase keys of the legacy wire format, so a blob
  written by either generation decodes with the same code.
* Decimal values are written as strings; decoding accepts strings or JSON
  numbers.
* Timestamps are written as ISO-8601.  Decoding also accepts a JSON number,
  read as seconds since 2001-01-01T00:00:00Z (the legacy store's epoch).
* Each collection is encoded independently; one failing does not affect
  the others.

Failure modes
-------------
* Malformed text or a record missing a required key raises
  ``LegacyDataDecodeError`` naming the collection.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from budget_kernel.exceptions import LegacyDataDecodeError
from budget_kernel.utils.serialization import canonicalize_json, from_json, parse_datetime
from budget_modules.ledger.models import (
    ZERO,
    BudgetLineItem,
    BudgetTransaction,
    BudgetVersion,
    ContactType,
    CustomCategory,
    CustomTemplate,
    TransactionType,
)
from budget_modules.payroll.models import (
    PaymentMethod,
    PaymentStatus,
    PayrollLineItem,
    PayrollPayPeriod,
)

LEGACY_EPOCH = datetime(2001, 1, 1, tzinfo=UTC)


# =============================================================================
# Scalar helpers
# =============================================================================


def _decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    if value is None:
        return default
    return Decimal(str(value))


def _uuid(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    return UUID(str(value))


def _datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return LEGACY_EPOCH + timedelta(seconds=value)
    return parse_datetime(value)


def _required_datetime(value: Any, key: str) -> datetime:
    parsed = _datetime(value)
    if parsed is None:
        raise KeyError(key)
    return parsed


# =============================================================================
# Line items
# =============================================================================


def line_item_to_dict(item: BudgetLineItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "account": item.account,
        "category": item.category,
        "subcategory": item.subcategory,
        "section": item.section,
        "quantity": item.quantity,
        "days": item.days,
        "unitCost": item.unit_cost,
        "notes": item.notes,
        "isLinkedToRateCard": item.is_linked_to_rate_card,
        "rateCardID": item.rate_card_id,
        "linkedContactID": item.linked_contact_id,
        "linkedContactType": item.linked_contact_type,
        "parentItemID": item.parent_item_id,
        "childItemIDs": list(item.child_item_ids) or None,
    }


def line_item_from_dict(data: dict[str, Any]) -> BudgetLineItem:
    contact_type = data.get("linkedContactType")
    return BudgetLineItem(
        id=UUID(str(data["id"])),
        name=data["name"],
        account=data.get("account", ""),
        category=data.get("category", "Below the Line"),
        subcategory=data.get("subcategory", ""),
        section=data.get("section"),
        quantity=_decimal(data.get("quantity")),
        days=_decimal(data.get("days")),
        unit_cost=_decimal(data.get("unitCost")),
        notes=data.get("notes", ""),
        is_linked_to_rate_card=bool(data.get("isLinkedToRateCard", False)),
        rate_card_id=_uuid(data.get("rateCardID")),
        linked_contact_id=_uuid(data.get("linkedContactID")),
        linked_contact_type=ContactType(contact_type) if contact_type else None,
        parent_item_id=_uuid(data.get("parentItemID")),
        child_item_ids=tuple(UUID(str(v)) for v in data.get("childItemIDs") or ()),
    )


# =============================================================================
# Transactions
# =============================================================================


def transaction_to_dict(transaction: BudgetTransaction) -> dict[str, Any]:
    return {
        "id": transaction.id,
        "date": transaction.date,
        "amount": transaction.amount,
        "category": transaction.category,
        "department": transaction.department,
        "transactionType": transaction.transaction_type,
        "description": transaction.description,
        "payee": transaction.payee,
        "notes": transaction.notes,
        "lineItemID": transaction.line_item_id,
        "vendorID": transaction.vendor_id,
    }


def transaction_from_dict(data: dict[str, Any]) -> BudgetTransaction:
    return BudgetTransaction(
        id=UUID(str(data["id"])),
        date=_datetime(data.get("date")),
        amount=_decimal(data["amount"]),
        category=data.get("category", "Other"),
        department=data.get("department") or "",
        transaction_type=TransactionType(data.get("transactionType", "Expense")),
        description=data.get("description", ""),
        payee=data.get("payee", ""),
        notes=data.get("notes", ""),
        line_item_id=_uuid(data.get("lineItemID")),
        vendor_id=_uuid(data.get("vendorID")),
    )


# =============================================================================
# Payroll
# =============================================================================


def pay_period_to_dict(period: PayrollPayPeriod) -> dict[str, Any]:
    return {
        "id": period.id,
        "periodName": period.period_name,
        "startDate": period.start_date,
        "endDate": period.end_date,
        "grossAmount": period.gross_amount,
        "deductions": period.deductions,
        "netAmount": period.net_amount,
        "status": period.status,
        "paymentDate": period.payment_date,
        "paymentMethod": period.payment_method,
        "notes": period.notes,
    }


def pay_period_from_dict(data: dict[str, Any]) -> PayrollPayPeriod:
    method = data.get("paymentMethod")
    net = data.get("netAmount")
    return PayrollPayPeriod(
        id=UUID(str(data["id"])),
        period_name=data["periodName"],
        start_date=_required_datetime(data.get("startDate"), "startDate"),
        end_date=_required_datetime(data.get("endDate"), "endDate"),
        gross_amount=_decimal(data["grossAmount"]),
        deductions=_decimal(data.get("deductions")),
        net_amount=None if net is None else _decimal(net),
        status=PaymentStatus(data.get("status", "Pending")),
        payment_date=_datetime(data.get("paymentDate")),
        payment_method=PaymentMethod(method) if method else None,
        notes=data.get("notes", ""),
    )


def payroll_item_to_dict(item: PayrollLineItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "personName": item.person_name,
        "contactID": item.linked_contact_id,
        "role": item.role,
        "department": item.department,
        "contactType": item.contact_type,
        "totalBudgetedAmount": item.total_budgeted_amount,
        "ratePerPeriod": item.rate_per_period,
        "payPeriods": [pay_period_to_dict(p) for p in item.pay_periods],
        "notes": item.notes,
        "createdAt": item.created_at,
        "updatedAt": item.updated_at,
    }


def payroll_item_from_dict(data: dict[str, Any]) -> PayrollLineItem:
    return PayrollLineItem(
        id=UUID(str(data["id"])),
        person_name=data["personName"],
        linked_contact_id=_uuid(data.get("contactID")),
        role=data["role"],
        department=data.get("department", ""),
        contact_type=ContactType(data.get("contactType", "Crew")),
        total_budgeted_amount=_decimal(data.get("totalBudgetedAmount")),
        rate_per_period=_decimal(data.get("ratePerPeriod")),
        pay_periods=tuple(pay_period_from_dict(p) for p in data.get("payPeriods") or ()),
        notes=data.get("notes", ""),
        created_at=_datetime(data.get("createdAt")),
        updated_at=_datetime(data.get("updatedAt")),
    )


# =============================================================================
# Custom categories and templates
# =============================================================================


def custom_category_to_dict(category: CustomCategory) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "sortOrder": category.sort_order,
        "subcategories": list(category.subcategories),
    }


def custom_category_from_dict(data: dict[str, Any]) -> CustomCategory:
    return CustomCategory(
        id=UUID(str(data["id"])),
        name=data["name"],
        sort_order=int(data.get("sortOrder", 0)),
        subcategories=tuple(data.get("subcategories") or ()),
    )


def custom_template_to_dict(template: CustomTemplate) -> dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "createdAt": template.created_at,
        "modifiedAt": template.modified_at,
        "categories": [custom_category_to_dict(c) for c in template.categories],
        "lineItems": [line_item_to_dict(i) for i in template.line_items],
    }


def custom_template_from_dict(data: dict[str, Any]) -> CustomTemplate:
    return CustomTemplate(
        id=UUID(str(data["id"])),
        name=data["name"],
        description=data.get("description", ""),
        created_at=_required_datetime(data.get("createdAt"), "createdAt"),
        modified_at=_required_datetime(data.get("modifiedAt"), "modifiedAt"),
        categories=tuple(custom_category_from_dict(c) for c in data.get("categories") or ()),
        line_items=tuple(line_item_from_dict(i) for i in data.get("lineItems") or ()),
    )


# =============================================================================
# Collections
# =============================================================================


def _encode(records: Iterable[Any], to_dict: Callable[[Any], dict[str, Any]]) -> str:
    return canonicalize_json([to_dict(r) for r in records])


def _decode(text: str | None, from_dict: Callable[[dict[str, Any]], Any], name: str) -> tuple:
    try:
        rows = from_json(text, default=[])
        if not isinstance(rows, list):
            raise ValueError(f"expected a JSON array, got {type(rows).__name__}")
        return tuple(from_dict(row) for row in rows)
    except (ValueError, KeyError, TypeError, ArithmeticError) as exc:
        raise LegacyDataDecodeError(name, str(exc)) from exc


def encode_line_items(items: Iterable[BudgetLineItem]) -> str:
    return _encode(items, line_item_to_dict)


def decode_line_items(text: str | None) -> tuple[BudgetLineItem, ...]:
    return _decode(text, line_item_from_dict, "lineItems")


def encode_transactions(transactions: Iterable[BudgetTransaction]) -> str:
    return _encode(transactions, transaction_to_dict)


def decode_transactions(text: str | None) -> tuple[BudgetTransaction, ...]:
    return _decode(text, transaction_from_dict, "transactions")


def encode_payroll_items(items: Iterable[PayrollLineItem]) -> str:
    return _encode(items, payroll_item_to_dict)


def decode_payroll_items(text: str | None) -> tuple[PayrollLineItem, ...]:
    return _decode(text, payroll_item_from_dict, "payrollItems")


# =============================================================================
# Whole versions (legacy flat store)
# =============================================================================


def version_to_dict(version: BudgetVersion) -> dict[str, Any]:
    return {
        "id": version.id,
        "name": version.name,
        "createdDate": version.created_date,
        "lineItems": [line_item_to_dict(i) for i in version.line_items],
        "transactions": [transaction_to_dict(t) for t in version.transactions],
        "payrollItems": [payroll_item_to_dict(p) for p in version.payroll_items],
        "isLocked": version.is_locked,
        "lockedAt": version.locked_at,
        "lockedBy": version.locked_by,
        "currency": version.currency,
        "notes": version.notes,
    }


def version_from_dict(data: dict[str, Any]) -> BudgetVersion:
    return BudgetVersion(
        id=UUID(str(data["id"])),
        name=data["name"],
        created_date=_required_datetime(data.get("createdDate"), "createdDate"),
        line_items=tuple(line_item_from_dict(i) for i in data.get("lineItems") or ()),
        transactions=tuple(transaction_from_dict(t) for t in data.get("transactions") or ()),
        payroll_items=tuple(payroll_item_from_dict(p) for p in data.get("payrollItems") or ()),
        is_locked=bool(data.get("isLocked", False)),
        locked_at=_datetime(data.get("lockedAt")),
        locked_by=data.get("lockedBy"),
        currency=data.get("currency", "USD"),
        notes=data.get("notes", ""),
    )


def encode_versions(versions: Iterable[BudgetVersion]) -> str:
    """Serialize full version snapshots in the legacy flat-store layout."""
    return _encode(versions, version_to_dict)


def decode_versions(text: str | None, key: str = "budgetVersions") -> tuple[BudgetVersion, ...]:
    """Decode a legacy flat-store blob; raises ``LegacyDataDecodeError``."""
    return _decode(text, version_from_dict, key)


def encode_custom_categories(categories: Iterable[CustomCategory]) -> str:
    return _encode(categories, custom_category_to_dict)


def decode_custom_categories(text: str | None, key: str = "customCategories") -> tuple[CustomCategory, ...]:
    return _decode(text, custom_category_from_dict, key)


def encode_custom_templates(templates: Iterable[CustomTemplate]) -> str:
    return _encode(templates, custom_template_to_dict)


def decode_custom_templates(text: str | None, key: str = "customTemplates") -> tuple[CustomTemplate, ...]:
    return _decode(text, custom_template_from_dict, key)
