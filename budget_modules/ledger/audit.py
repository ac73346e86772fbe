"""
Line-item and transaction audit details (``budget_modules.ledger.audit``).

Builds the human-readable detail strings and before/after snapshots for
per-record ledger changes, then appends them through ``AuditTrail``.  Kept
in the modules layer so the kernel trail stays ignorant of ledger types.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from budget_kernel.domain.currency import CurrencyRegistry
from budget_kernel.models.audit_entry import AuditAction
from budget_kernel.services.audit_trail import AuditEntry, AuditTrail
from budget_kernel.utils.serialization import canonicalize_json
from budget_modules.ledger.codec import line_item_to_dict
from budget_modules.ledger.models import BudgetLineItem, BudgetTransaction
from budget_modules.ledger.results import AuditRecord

_ACTION_LABELS = {
    AuditAction.CREATED: "Created",
    AuditAction.UPDATED: "Updated",
    AuditAction.DELETED: "Deleted",
}

_R = TypeVar("_R", BudgetLineItem, BudgetTransaction)


def format_money(amount: Decimal, currency: str = "USD") -> str:
    """``$1,234.50`` style rendering using the currency's minor units."""
    info = CurrencyRegistry.get_info(currency)
    rounded = info.round(amount) if info else amount
    return f"{CurrencyRegistry.symbol(currency)}{rounded:,}"


def _label(action: AuditAction) -> str:
    return _ACTION_LABELS.get(action, action.value.replace("_", " ").title())


def line_item_detail(
    action: AuditAction,
    item: BudgetLineItem,
    previous: BudgetLineItem | None = None,
    currency: str = "USD",
) -> str:
    detail = f"{_label(action)} line item '{item.name}'"
    if previous is None:
        return detail

    changes: list[str] = []
    if previous.name != item.name:
        changes.append(f"name: '{previous.name}' -> '{item.name}'")
    if previous.quantity != item.quantity:
        changes.append(f"qty: {previous.quantity} -> {item.quantity}")
    if previous.days != item.days:
        changes.append(f"days: {previous.days} -> {item.days}")
    if previous.unit_cost != item.unit_cost:
        changes.append(
            f"rate: {format_money(previous.unit_cost, currency)} -> "
            f"{format_money(item.unit_cost, currency)}"
        )
    if previous.total != item.total:
        changes.append(
            f"total: {format_money(previous.total, currency)} -> "
            f"{format_money(item.total, currency)}"
        )
    if changes:
        detail += " - " + ", ".join(changes)
    return detail


def transaction_detail(
    action: AuditAction,
    transaction: BudgetTransaction,
    previous: BudgetTransaction | None = None,
    currency: str = "USD",
) -> str:
    detail = f"{_label(action)} transaction: {format_money(transaction.amount, currency)}"
    if previous is not None and previous.amount != transaction.amount:
        detail += f" (was {format_money(previous.amount, currency)})"
    return detail


def line_item_record(
    action: AuditAction,
    item: BudgetLineItem,
    previous: BudgetLineItem | None = None,
    currency: str = "USD",
) -> AuditRecord:
    """Audit record with a diff detail and JSON before/after snapshots."""
    return AuditRecord(
        action,
        "BudgetLineItem",
        item.id,
        line_item_detail(action, item, previous, currency),
        previous_value=canonicalize_json(line_item_to_dict(previous)) if previous else None,
        new_value=canonicalize_json(line_item_to_dict(item)),
    )


def transaction_record(
    action: AuditAction,
    transaction: BudgetTransaction,
    previous: BudgetTransaction | None = None,
    currency: str = "USD",
) -> AuditRecord:
    return AuditRecord(
        action,
        "BudgetTransaction",
        transaction.id,
        transaction_detail(action, transaction, previous, currency),
    )


def append_record(
    trail: AuditTrail,
    record: AuditRecord,
    *,
    actor: str | None = None,
    session: Session | None = None,
) -> AuditEntry:
    return trail.record_change(
        record.action,
        record.entity_type,
        record.entity_id,
        record.detail,
        previous_value=record.previous_value,
        new_value=record.new_value,
        actor=actor,
        session=session,
    )


def record_line_item_change(
    trail: AuditTrail,
    action: AuditAction,
    item: BudgetLineItem,
    previous: BudgetLineItem | None = None,
    *,
    currency: str = "USD",
    session: Session | None = None,
) -> AuditEntry:
    """Append one line-item entry, e.g. from an item editor."""
    return append_record(trail, line_item_record(action, item, previous, currency), session=session)


def record_transaction_change(
    trail: AuditTrail,
    action: AuditAction,
    transaction: BudgetTransaction,
    previous: BudgetTransaction | None = None,
    *,
    currency: str = "USD",
    session: Session | None = None,
) -> AuditEntry:
    return append_record(
        trail, transaction_record(action, transaction, previous, currency), session=session,
    )


def diff_records(
    old: Iterable[_R],
    new: Iterable[_R],
) -> list[tuple[AuditAction, _R, _R | None]]:
    """
    Pair up two collections by id.

    Returns ``(action, record, previous)`` triples: CREATED for ids only in
    ``new``, UPDATED for ids in both whose value changed, DELETED (with the
    old record) for ids only in ``old``.  Unchanged records are omitted.
    """
    old_by_id: dict[UUID, _R] = {r.id: r for r in old}
    changes: list[tuple[AuditAction, _R, _R | None]] = []
    seen: set[UUID] = set()
    for record in new:
        seen.add(record.id)
        before = old_by_id.get(record.id)
        if before is None:
            changes.append((AuditAction.CREATED, record, None))
        elif before != record:
            changes.append((AuditAction.UPDATED, record, before))
    for record_id, record in old_by_id.items():
        if record_id not in seen:
            changes.append((AuditAction.DELETED, record, None))
    return changes
