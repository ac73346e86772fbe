"""
Payroll Manager (``budget_modules.payroll.service``).

Responsibility
--------------
CRUD over the selected version's payroll line items and their nested pay
periods, the payment-status workflow, and the query, sort and summary
surface used by payroll views.

Architecture position
---------------------
**Modules layer** -- service.  Owned by ``VersionManager`` (reachable as
``version_manager.payroll``).  It never writes to the store itself: every
mutation computes the new payroll collection and hands it, together with its
audit records, to ``VersionManager.update_payroll_items`` so the lock gate,
the write and the audit entry share one transaction.

Invariants enforced
-------------------
* A locked version rejects every payroll mutation with ``BUDGET_LOCKED``.
* Items are validated (name, role, budget, duplicate name+role) and periods
  are validated (name, date range, non-negative amounts) before any write.
* Every successful mutation bumps the item's ``updated_at`` and appends one
  audit entry.
* Marking a period ``PAID`` without a payment date stamps the current time.

Failure modes
-------------
* Unknown item or period ids raise ``PayrollItemNotFoundError`` /
  ``PayPeriodNotFoundError``.
* Validation failures return a ``REJECTED`` ``LedgerResult``.
* Store failures return ``PERSISTENCE_FAILED``; the in-memory payroll is
  unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from budget_kernel.domain.clock import Clock, SystemClock, as_utc
from budget_kernel.exceptions import PayPeriodNotFoundError, PayrollItemNotFoundError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.audit_entry import AuditAction
from budget_modules.ledger.models import ContactType
from budget_modules.ledger.results import AuditRecord, LedgerResult
from budget_modules.ledger.validation import ValidationResult, can_modify
from budget_modules.payroll.models import (
    PaymentStatus,
    PayrollLineItem,
    PayrollPayPeriod,
    PayrollSortOption,
    PayrollSummary,
)
from budget_modules.payroll.validation import validate_pay_period, validate_payroll_item

if TYPE_CHECKING:
    from budget_modules.ledger.service import VersionManager

logger = get_logger("modules.payroll.service")

ITEM_ENTITY = "PayrollLineItem"
PERIOD_ENTITY = "PayrollPayPeriod"

_SORT_KEYS = {
    PayrollSortOption.NAME_ASC: (lambda i: i.person_name, False),
    PayrollSortOption.NAME_DESC: (lambda i: i.person_name, True),
    PayrollSortOption.BUDGETED_ASC: (lambda i: i.total_budgeted_amount, False),
    PayrollSortOption.BUDGETED_DESC: (lambda i: i.total_budgeted_amount, True),
    PayrollSortOption.PAID_ASC: (lambda i: i.total_paid, False),
    PayrollSortOption.PAID_DESC: (lambda i: i.total_paid, True),
    PayrollSortOption.REMAINING_ASC: (lambda i: i.remaining_balance, False),
    PayrollSortOption.REMAINING_DESC: (lambda i: i.remaining_balance, True),
    PayrollSortOption.DEPARTMENT_ASC: (lambda i: i.department, False),
    PayrollSortOption.ROLE_ASC: (lambda i: i.role, False),
}


class PayrollManager:
    """
    Payroll operations over ``owner.selected_version``.

    Contract:
        Mutators return ``LedgerResult``; queries return plain lists.
    """

    def __init__(
        self,
        owner: VersionManager,
        clock: Clock | None = None,
        upcoming_window_days: int = 7,
    ):
        self._owner = owner
        self._clock = clock or SystemClock()
        self._upcoming_window_days = upcoming_window_days

    # =========================================================================
    # Lookups
    # =========================================================================

    @property
    def items(self) -> tuple[PayrollLineItem, ...]:
        return self._owner.selected_version.payroll_items

    def item(self, item_id: UUID) -> PayrollLineItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise PayrollItemNotFoundError(str(item_id))

    def _period(self, item: PayrollLineItem, period_id: UUID) -> PayrollPayPeriod:
        period = item.pay_period(period_id)
        if period is None:
            raise PayPeriodNotFoundError(str(item.id), str(period_id))
        return period

    def _replace_item(self, updated: PayrollLineItem) -> tuple[PayrollLineItem, ...]:
        return tuple(updated if i.id == updated.id else i for i in self.items)

    def _gate(self, event: str, validate: Callable[[], ValidationResult]) -> LedgerResult | None:
        """Lock check, then ``validate``.  Returns the rejection, or None to proceed."""
        version = self._owner.selected_version
        check = can_modify(version)
        if check:
            check = validate()
        if check:
            return None
        logger.info(event, extra={"kind": check.kind.value})
        return LedgerResult.rejected(check, version)

    def _commit(
        self,
        items: tuple[PayrollLineItem, ...],
        operation: str,
        record: AuditRecord,
    ) -> LedgerResult:
        result = self._owner.update_payroll_items(items, audit_records=[record], operation=operation)
        if result.is_success:
            logger.info(
                operation,
                extra={"entity_type": record.entity_type, "entity_id": str(record.entity_id)},
            )
        return result

    # =========================================================================
    # Payroll line items
    # =========================================================================

    def add_item(self, item: PayrollLineItem) -> LedgerResult:
        """Append a new payroll record to the selected version."""
        rejected = self._gate("payroll_item_rejected", lambda: validate_payroll_item(item, self.items))
        if rejected is not None:
            return rejected

        now = self._clock.now()
        item = replace(item, created_at=item.created_at or now, updated_at=now)
        return self._commit(
            self.items + (item,),
            "payroll_item_added",
            AuditRecord(
                AuditAction.CREATED, ITEM_ENTITY, item.id,
                f"Added {item.person_name} ({item.role})",
            ),
        )

    def update_item(self, item: PayrollLineItem) -> LedgerResult:
        self.item(item.id)
        rejected = self._gate("payroll_item_rejected", lambda: validate_payroll_item(item, self.items))
        if rejected is not None:
            return rejected

        item = replace(item, updated_at=self._clock.now())
        return self._commit(
            self._replace_item(item),
            "payroll_item_updated",
            AuditRecord(AuditAction.UPDATED, ITEM_ENTITY, item.id, f"Updated {item.person_name}"),
        )

    def delete_item(self, item_id: UUID) -> LedgerResult:
        item = self.item(item_id)
        return self._commit(
            tuple(i for i in self.items if i.id != item_id),
            "payroll_item_deleted",
            AuditRecord(
                AuditAction.DELETED, ITEM_ENTITY, item.id,
                f"Deleted {item.person_name} ({item.role})",
            ),
        )

    def clear_all(self) -> LedgerResult:
        version = self._owner.selected_version
        return self._commit(
            (),
            "payroll_cleared",
            AuditRecord(AuditAction.DELETED, ITEM_ENTITY, version.id, "Cleared all payroll items"),
        )

    # =========================================================================
    # Pay periods
    # =========================================================================

    def add_pay_period(self, item_id: UUID, period: PayrollPayPeriod) -> LedgerResult:
        item = self.item(item_id)
        rejected = self._gate("pay_period_rejected", lambda: validate_pay_period(period))
        if rejected is not None:
            return rejected

        updated = replace(
            item,
            pay_periods=item.pay_periods + (period,),
            updated_at=self._clock.now(),
        )
        return self._commit(
            self._replace_item(updated),
            "pay_period_added",
            AuditRecord(
                AuditAction.CREATED, PERIOD_ENTITY, period.id,
                f"Added {period.period_name} for {item.person_name}",
            ),
        )

    def update_pay_period(self, item_id: UUID, period: PayrollPayPeriod) -> LedgerResult:
        item = self.item(item_id)
        self._period(item, period.id)
        rejected = self._gate("pay_period_rejected", lambda: validate_pay_period(period))
        if rejected is not None:
            return rejected

        updated = replace(
            item,
            pay_periods=tuple(period if p.id == period.id else p for p in item.pay_periods),
            updated_at=self._clock.now(),
        )
        return self._commit(
            self._replace_item(updated),
            "pay_period_updated",
            AuditRecord(
                AuditAction.UPDATED, PERIOD_ENTITY, period.id,
                f"Updated {period.period_name} for {item.person_name}",
            ),
        )

    def delete_pay_period(self, item_id: UUID, period_id: UUID) -> LedgerResult:
        item = self.item(item_id)
        period = self._period(item, period_id)
        updated = replace(
            item,
            pay_periods=tuple(p for p in item.pay_periods if p.id != period_id),
            updated_at=self._clock.now(),
        )
        return self._commit(
            self._replace_item(updated),
            "pay_period_deleted",
            AuditRecord(
                AuditAction.DELETED, PERIOD_ENTITY, period_id,
                f"Deleted {period.period_name} for {item.person_name}",
            ),
        )

    def update_payment_status(
        self,
        item_id: UUID,
        period_id: UUID,
        status: PaymentStatus,
    ) -> LedgerResult:
        item = self.item(item_id)
        period = self._period(item, period_id)
        now = self._clock.now()

        changed = replace(period, status=status)
        if status == PaymentStatus.PAID and changed.payment_date is None:
            changed = replace(changed, payment_date=now)
        updated = replace(
            item,
            pay_periods=tuple(changed if p.id == period_id else p for p in item.pay_periods),
            updated_at=now,
        )

        if status == PaymentStatus.PAID:
            description = "marked as paid"
        else:
            description = f"updated status to {status.value}"
        return self._commit(
            self._replace_item(updated),
            "payment_status_updated",
            AuditRecord(
                AuditAction.UPDATED, PERIOD_ENTITY, period_id,
                f"{period.period_name} for {item.person_name} {description}",
            ),
        )

    # =========================================================================
    # Batch fan-outs (best effort, not atomic across items)
    # =========================================================================

    def add_pay_period_to_items(
        self,
        item_ids: Iterable[UUID],
        period: PayrollPayPeriod,
    ) -> list[LedgerResult]:
        """Add a copy of ``period`` (fresh id per item) to each item."""
        return [
            self.add_pay_period(item_id, replace(period, id=uuid4()))
            for item_id in item_ids
        ]

    def update_payment_statuses(
        self,
        updates: Iterable[tuple[UUID, UUID, PaymentStatus]],
    ) -> list[LedgerResult]:
        return [
            self.update_payment_status(item_id, period_id, status)
            for item_id, period_id, status in updates
        ]

    # =========================================================================
    # Queries
    # =========================================================================

    def items_for_contact_type(self, contact_type: ContactType) -> list[PayrollLineItem]:
        return [i for i in self.items if i.contact_type == contact_type]

    def items_for_department(self, department: str) -> list[PayrollLineItem]:
        return [i for i in self.items if i.department == department]

    def items_matching(self, search_text: str) -> list[PayrollLineItem]:
        return [i for i in self.items if i.matches(search_text)]

    def items_for_contact(self, contact_id: UUID) -> list[PayrollLineItem]:
        return [i for i in self.items if i.linked_contact_id == contact_id]

    def departments(self) -> list[str]:
        return sorted({i.department for i in self.items})

    def sorted_items(self, option: PayrollSortOption) -> list[PayrollLineItem]:
        key, reverse = _SORT_KEYS[option]
        return sorted(self.items, key=key, reverse=reverse)

    def calculate_summary(self, items: Iterable[PayrollLineItem] | None = None) -> PayrollSummary:
        """Summary over ``items``, or over every item of the selected version."""
        return PayrollSummary.from_items(self.items if items is None else items)

    def all_pay_periods(self) -> list[PayrollPayPeriod]:
        return [p for item in self.items for p in item.pay_periods]

    def pay_periods_with_status(self, status: PaymentStatus) -> list[PayrollPayPeriod]:
        return [p for p in self.all_pay_periods() if p.status == status]

    def pay_periods_between(self, start: datetime, end: datetime) -> list[PayrollPayPeriod]:
        """Periods whose start or end date falls inside ``[start, end]``."""
        start, end = as_utc(start), as_utc(end)
        return [
            p for p in self.all_pay_periods()
            if start <= p.start_date <= end or start <= p.end_date <= end
        ]

    def upcoming_payments(
        self,
        within_days: int | None = None,
    ) -> list[tuple[PayrollLineItem, PayrollPayPeriod]]:
        """
        Unpaid periods whose payment date is on or before ``now + within_days``.

        Sorted by payment date ascending.  Periods without a payment date sort
        last.
        """
        days = self._upcoming_window_days if within_days is None else within_days
        horizon = self._clock.now() + timedelta(days=days)
        upcoming = [
            (item, period)
            for item in self.items
            for period in item.pay_periods
            if period.status != PaymentStatus.PAID
            and period.payment_date is not None
            and period.payment_date <= horizon
        ]
        return sorted(upcoming, key=lambda pair: (pair[1].payment_date is None, pair[1].payment_date or horizon))

    def overdue_payments(self) -> list[tuple[PayrollLineItem, PayrollPayPeriod]]:
        """
        Unpaid periods whose payment date is in the past.

        Sorted by payment date ascending.  A missing date would sort first,
        though ``is_past_due`` already excludes periods without one.
        """
        now = self._clock.now()
        overdue = [
            (item, period)
            for item in self.items
            for period in item.pay_periods
            if period.is_past_due(now)
        ]
        return sorted(overdue, key=lambda pair: (pair[1].payment_date is not None, pair[1].payment_date or now))
