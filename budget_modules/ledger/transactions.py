"""
Transaction Manager (``budget_modules.ledger.transactions``).

Responsibility
--------------
Single-record add / update / delete over the selected version's
transactions, plus the filters and totals that spend views read.

Architecture position
---------------------
**Modules layer** -- service.  Owned by ``VersionManager`` (reachable as
``version_manager.transactions``).  Like ``PayrollManager`` it never writes
to the store itself: each mutation builds the new transaction tuple and hands
it to ``VersionManager.update_transactions``, which writes the version and
one audit entry per changed transaction in the same database transaction.

Invariants enforced
-------------------
* A locked version is reported as ``BUDGET_LOCKED`` before any other
  validation failure.
* Every add and update passes ``validate_transaction`` (finite amount, no
  future-dated expense, optional remaining-budget ceiling).
* Totals are expense-only where named so (``total_expenses``,
  ``total_spent``); ``total_amount`` and ``total_by_category`` sum every type.

Failure modes
-------------
* Unknown transaction ids raise ``TransactionNotFoundError``.
* Validation failures return a ``REJECTED`` ``LedgerResult``.
* Store failures return ``PERSISTENCE_FAILED``; the in-memory version is
  unchanged.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from budget_kernel.domain.clock import Clock, SystemClock, as_utc
from budget_kernel.exceptions import TransactionNotFoundError
from budget_kernel.logging_config import get_logger
from budget_modules.ledger.models import ZERO, BudgetTransaction, TransactionType
from budget_modules.ledger.results import LedgerResult
from budget_modules.ledger.validation import ValidationResult, can_modify, validate_transaction

if TYPE_CHECKING:
    from budget_modules.ledger.service import VersionManager

logger = get_logger("modules.ledger.transactions")


class TransactionManager:
    """
    Transaction operations over ``owner.selected_version``.

    Contract:
        Mutators return ``LedgerResult``; queries return plain lists.
    """

    def __init__(self, owner: VersionManager, clock: Clock | None = None):
        self._owner = owner
        self._clock = clock or SystemClock()

    # =========================================================================
    # Lookups
    # =========================================================================

    @property
    def transactions(self) -> tuple[BudgetTransaction, ...]:
        return self._owner.selected_version.transactions

    def transaction(self, transaction_id: UUID) -> BudgetTransaction:
        for tx in self.transactions:
            if tx.id == transaction_id:
                return tx
        raise TransactionNotFoundError(str(transaction_id))

    # =========================================================================
    # Mutations
    # =========================================================================

    def _gate(self, validate: Callable[[], ValidationResult]) -> LedgerResult | None:
        version = self._owner.selected_version
        check = can_modify(version)
        if check:
            check = validate()
        if check:
            return None
        logger.info("transaction_rejected", extra={"kind": check.kind.value})
        return LedgerResult.rejected(check, version)

    def add_transaction(
        self,
        transaction: BudgetTransaction,
        budget_remaining: Decimal | None = None,
    ) -> LedgerResult:
        """Validate and append ``transaction`` to the selected version."""
        rejection = self._gate(
            lambda: validate_transaction(transaction, budget_remaining, self._clock),
        )
        if rejection is not None:
            return rejection
        result = self._owner.update_transactions((*self.transactions, transaction))
        if result.is_success:
            logger.info(
                "transaction_added",
                extra={"transaction_id": str(transaction.id), "amount": transaction.amount},
            )
        return result

    def update_transaction(
        self,
        transaction: BudgetTransaction,
        budget_remaining: Decimal | None = None,
    ) -> LedgerResult:
        """Replace the stored transaction that has ``transaction.id``."""
        self.transaction(transaction.id)
        rejection = self._gate(
            lambda: validate_transaction(transaction, budget_remaining, self._clock),
        )
        if rejection is not None:
            return rejection
        result = self._owner.update_transactions(
            transaction if tx.id == transaction.id else tx for tx in self.transactions
        )
        if result.is_success:
            logger.info("transaction_updated", extra={"transaction_id": str(transaction.id)})
        return result

    def delete_transaction(self, transaction_id: UUID) -> LedgerResult:
        self.transaction(transaction_id)
        result = self._owner.update_transactions(
            tx for tx in self.transactions if tx.id != transaction_id
        )
        if result.is_success:
            logger.info("transaction_deleted", extra={"transaction_id": str(transaction_id)})
        return result

    # =========================================================================
    # Filters
    # =========================================================================

    def for_category(self, category: str) -> list[BudgetTransaction]:
        return [tx for tx in self.transactions if tx.category == category]

    def for_line_item(self, line_item_id: UUID) -> list[BudgetTransaction]:
        return [tx for tx in self.transactions if tx.line_item_id == line_item_id]

    def of_type(self, transaction_type: TransactionType) -> list[BudgetTransaction]:
        return [tx for tx in self.transactions if tx.transaction_type == transaction_type]

    def between(self, start: datetime, end: datetime) -> list[BudgetTransaction]:
        """Dated transactions with ``start <= date <= end``."""
        start, end = as_utc(start), as_utc(end)
        return [
            tx for tx in self.transactions
            if tx.date is not None and start <= tx.date <= end
        ]

    # =========================================================================
    # Totals
    # =========================================================================

    @property
    def total_amount(self) -> Decimal:
        return sum((tx.amount for tx in self.transactions), ZERO)

    @property
    def total_expenses(self) -> Decimal:
        return sum((tx.amount for tx in self.of_type(TransactionType.EXPENSE)), ZERO)

    def total_by_category(self) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = {}
        for tx in self.transactions:
            totals[tx.category] = totals.get(tx.category, ZERO) + tx.amount
        return totals

    def total_spent(self, line_item_id: UUID) -> Decimal:
        """Expenses recorded against one line item."""
        return sum(
            (tx.amount for tx in self.for_line_item(line_item_id) if tx.is_expense),
            ZERO,
        )
