"""
Category Manager (``budget_modules.ledger.categories``).

Responsibility
--------------
The user's custom budget categories: load (seeding the feature-film defaults
on first use), add, update, delete, reorder, reset to a template's defaults,
and the current category selection used to filter line items.

Architecture position
---------------------
**Modules layer** -- service.  The list is stored as one JSON document under
``LedgerConfig.custom_categories_key`` in the key-value store; every change
rewrites it and appends its audit entry in the same transaction.

Invariants enforced
-------------------
* ``categories`` is ordered by ``sort_order`` and the orders are 0..n-1
  after every add, delete, reorder or reset.
* The selection is never left pointing at a deleted category.
* The in-memory list is replaced only after the write commits.

Failure modes
-------------
* Unknown category ids raise ``CategoryNotFoundError``.
* A corrupt stored document raises ``LegacyDataDecodeError`` from ``load``.
* Store failures raise ``PersistenceError`` after rollback.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import session_scope
from budget_kernel.exceptions import CategoryNotFoundError, PersistenceError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.audit_entry import AuditAction
from budget_kernel.services.audit_trail import AuditTrail
from budget_kernel.services.key_value_store import KeyValueStore
from budget_modules.ledger.audit import append_record
from budget_modules.ledger.calculation import FEATURE_FILM_CATEGORIES, SHORT_FILM_CATEGORIES
from budget_modules.ledger.codec import decode_custom_categories, encode_custom_categories
from budget_modules.ledger.config import LedgerConfig
from budget_modules.ledger.models import BudgetLineItem, BudgetTemplateType, CustomCategory
from budget_modules.ledger.results import AuditRecord

logger = get_logger("modules.ledger.categories")

CATEGORY_ENTITY = "CustomCategory"


def default_categories(template_type: BudgetTemplateType) -> tuple[CustomCategory, ...]:
    """Fresh copies of a template's default categories."""
    source = SHORT_FILM_CATEGORIES if template_type == BudgetTemplateType.SHORT_FILM else FEATURE_FILM_CATEGORIES
    return tuple(replace(c, id=uuid4()) for c in source)


def _renumber(categories: Iterable[CustomCategory]) -> list[CustomCategory]:
    return [
        c if c.sort_order == i else replace(c, sort_order=i)
        for i, c in enumerate(categories)
    ]


class CategoryManager:
    """
    Persisted custom categories plus the current selection.

    Contract:
        Constructed ready to use; ``load`` re-reads the store.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        key_value_store: KeyValueStore,
        audit_trail: AuditTrail,
        config: LedgerConfig | None = None,
    ):
        self._session_factory = session_factory
        self._store = key_value_store
        self._audit = audit_trail
        self._key = (config or LedgerConfig.with_defaults()).custom_categories_key
        self._categories: list[CustomCategory] = []
        self._selected_id: UUID | None = None
        self._lock = threading.RLock()
        self.load()

    # =========================================================================
    # Loading and persistence
    # =========================================================================

    def load(self) -> None:
        """Read the stored list; the first load seeds the feature-film defaults."""
        with self._lock:
            text = self._store.get(self._key)
            if text is None:
                self._save(list(default_categories(BudgetTemplateType.FEATURE_FILM)), "seed_categories")
            else:
                stored = decode_custom_categories(text, self._key)
                self._categories = sorted(stored, key=lambda c: c.sort_order)
            if self._selected_id not in {c.id for c in self._categories}:
                self._selected_id = self._categories[0].id if self._categories else None
        logger.info("custom_categories_loaded", extra={"count": len(self._categories)})

    def _save(
        self,
        categories: list[CustomCategory],
        operation: str,
        record: AuditRecord | None = None,
    ) -> None:
        try:
            with self._audit.writer(), session_scope(self._session_factory) as session:
                self._store.set(self._key, encode_custom_categories(categories), session=session)
                if record is not None:
                    append_record(self._audit, record, session=session)
        except SQLAlchemyError as exc:
            logger.error(
                "persistence_failed",
                extra={"operation": operation, "error": str(exc)},
                exc_info=True,
            )
            raise PersistenceError(operation, str(exc)) from exc
        self._categories = categories
        logger.debug("custom_categories_saved", extra={"operation": operation, "count": len(categories)})

    # =========================================================================
    # Lookups and selection
    # =========================================================================

    @property
    def categories(self) -> tuple[CustomCategory, ...]:
        return tuple(self._categories)

    def category(self, category_id: UUID) -> CustomCategory:
        for category in self._categories:
            if category.id == category_id:
                return category
        raise CategoryNotFoundError(str(category_id))

    def category_named(self, name: str) -> CustomCategory | None:
        for category in self._categories:
            if category.name == name:
                return category
        return None

    @property
    def selected_category(self) -> CustomCategory | None:
        if self._selected_id is None:
            return None
        return self.category(self._selected_id)

    def select_category(self, category_id: UUID | None) -> CustomCategory | None:
        if category_id is not None:
            self.category(category_id)
        self._selected_id = category_id
        return self.selected_category

    # =========================================================================
    # CRUD
    # =========================================================================

    def add_category(self, category: CustomCategory) -> CustomCategory:
        """Append ``category`` after the existing ones."""
        with self._lock:
            added = replace(category, sort_order=len(self._categories))
            self._save(
                [*self._categories, added],
                "add_category",
                AuditRecord(AuditAction.CREATED, CATEGORY_ENTITY, added.id, f"Created category '{added.name}'"),
            )
        logger.info("category_added", extra={"category_id": str(added.id)})
        return added

    def update_category(self, category: CustomCategory) -> CustomCategory:
        with self._lock:
            self.category(category.id)
            self._save(
                [category if c.id == category.id else c for c in self._categories],
                "update_category",
                AuditRecord(AuditAction.UPDATED, CATEGORY_ENTITY, category.id, f"Updated category '{category.name}'"),
            )
        logger.info("category_updated", extra={"category_id": str(category.id)})
        return category

    def delete_category(self, category_id: UUID) -> None:
        """Remove a category and close the gap in the sort order."""
        with self._lock:
            deleted = self.category(category_id)
            self._save(
                _renumber(c for c in self._categories if c.id != category_id),
                "delete_category",
                AuditRecord(AuditAction.DELETED, CATEGORY_ENTITY, category_id, f"Deleted category '{deleted.name}'"),
            )
            if self._selected_id == category_id:
                self._selected_id = self._categories[0].id if self._categories else None
        logger.info("category_deleted", extra={"category_id": str(category_id)})

    def reorder_categories(self, sources: Iterable[int], destination: int) -> tuple[CustomCategory, ...]:
        """
        Move the categories at ``sources`` so they sit before ``destination``.

        Offsets refer to the list before the move, so moving index 0 to the
        end is ``reorder_categories([0], len(categories))``.
        """
        with self._lock:
            moving_at = sorted(set(sources))
            if any(i < 0 or i >= len(self._categories) for i in moving_at):
                raise IndexError(f"category offsets out of range: {moving_at}")
            moving = [self._categories[i] for i in moving_at]
            kept = [c for i, c in enumerate(self._categories) if i not in moving_at]
            insert_at = destination - sum(1 for i in moving_at if i < destination)
            kept[insert_at:insert_at] = moving
            self._save(_renumber(kept), "reorder_categories")
        logger.debug("categories_reordered", extra={"count": len(moving)})
        return self.categories

    def load_defaults(self, template_type: BudgetTemplateType) -> tuple[CustomCategory, ...]:
        """Replace every category with the defaults for ``template_type``."""
        return self.replace_categories(default_categories(template_type))

    def replace_categories(self, categories: Iterable[CustomCategory]) -> tuple[CustomCategory, ...]:
        with self._lock:
            self._save(_renumber(sorted(categories, key=lambda c: c.sort_order)), "replace_categories")
            self._selected_id = self._categories[0].id if self._categories else None
        logger.info("categories_replaced", extra={"count": len(self._categories)})
        return self.categories

    # =========================================================================
    # Line-item helpers
    # =========================================================================

    @staticmethod
    def item_count(category: CustomCategory, items: Iterable[BudgetLineItem]) -> int:
        return sum(1 for item in items if item.category == category.name)

    def filter_items(self, items: Iterable[BudgetLineItem], search_text: str = "") -> list[BudgetLineItem]:
        """Items in the selected category whose name or subcategory matches ``search_text``."""
        items = list(items)
        category = self.selected_category
        if category is None:
            return items
        matched = [item for item in items if item.category == category.name]
        needle = search_text.strip().lower()
        if not needle:
            return matched
        return [
            item for item in matched
            if needle in item.name.lower() or needle in item.subcategory.lower()
        ]
