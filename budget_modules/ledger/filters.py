"""
Search and sort filters over line items and transactions.

Plain value objects: build one, call ``apply`` with a collection, get a new
sorted list back.  Nothing here touches the store.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from budget_modules.ledger.models import (
    BudgetCategory,
    BudgetLineItem,
    BudgetTransaction,
    TransactionType,
)


class LineItemSort(str, Enum):
    NAME = "name"
    AMOUNT = "amount"
    CATEGORY = "category"
    SECTION = "section"
    ACCOUNT = "account"


class TransactionSort(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    CATEGORY = "category"
    PAYEE = "payee"


@dataclass(frozen=True)
class LineItemFilter:
    """Filter for budget line items; amounts compare against ``item.total``."""

    search_text: str = ""
    category: BudgetCategory | None = None
    section: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    only_linked: bool = False
    sort_by: LineItemSort = LineItemSort.NAME
    ascending: bool = True

    @property
    def has_active_filters(self) -> bool:
        return bool(
            self.search_text
            or self.category is not None
            or self.section is not None
            or self.min_amount is not None
            or self.max_amount is not None
            or self.only_linked
        )

    def _matches(self, item: BudgetLineItem) -> bool:
        if self.search_text:
            query = self.search_text.lower()
            haystack = (item.name, item.subcategory, item.account, item.notes, item.section or "")
            if not any(query in field.lower() for field in haystack):
                return False
        if self.category is not None and item.category != self.category.value:
            return False
        if self.section is not None and item.section != self.section:
            return False
        if self.min_amount is not None and item.total < self.min_amount:
            return False
        if self.max_amount is not None and item.total > self.max_amount:
            return False
        if self.only_linked and not (item.is_linked_to_rate_card or item.linked_contact_id is not None):
            return False
        return True

    def apply(self, items: Iterable[BudgetLineItem]) -> list[BudgetLineItem]:
        keys = {
            LineItemSort.NAME: lambda i: i.name,
            LineItemSort.AMOUNT: lambda i: i.total,
            LineItemSort.CATEGORY: lambda i: i.category,
            LineItemSort.SECTION: lambda i: i.section or "",
            LineItemSort.ACCOUNT: lambda i: i.account,
        }
        matched = [item for item in items if self._matches(item)]
        return sorted(matched, key=keys[self.sort_by], reverse=not self.ascending)


@dataclass(frozen=True)
class TransactionFilter:
    """Filter for transactions; newest first by default."""

    search_text: str = ""
    transaction_type: TransactionType | None = None
    category: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    sort_by: TransactionSort = TransactionSort.DATE
    ascending: bool = False

    def _matches(self, t: BudgetTransaction) -> bool:
        if self.search_text:
            query = self.search_text.lower()
            if not any(query in field.lower() for field in (t.description, t.payee, t.notes)):
                return False
        if self.transaction_type is not None and t.transaction_type != self.transaction_type:
            return False
        if self.category is not None and t.category != self.category:
            return False
        if self.start is not None and (t.date is None or t.date < self.start):
            return False
        if self.end is not None and (t.date is None or t.date > self.end):
            return False
        if self.min_amount is not None and t.amount < self.min_amount:
            return False
        if self.max_amount is not None and t.amount > self.max_amount:
            return False
        return True

    def apply(self, transactions: Iterable[BudgetTransaction]) -> list[BudgetTransaction]:
        keys = {
            TransactionSort.DATE: lambda t: (t.date is not None, t.date.timestamp() if t.date else 0.0),
            TransactionSort.AMOUNT: lambda t: t.amount,
            TransactionSort.CATEGORY: lambda t: t.category,
            TransactionSort.PAYEE: lambda t: t.payee,
        }
        matched = [t for t in transactions if self._matches(t)]
        return sorted(matched, key=keys[self.sort_by], reverse=not self.ascending)
