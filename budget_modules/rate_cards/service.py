"""
Rate Card Manager (``budget_modules.rate_cards.service``).

Responsibility
--------------
CRUD over shared rate cards and the explicit link / unlink / propagate
operations that copy a card's rate into budget line items.

Architecture position
---------------------
**Modules layer** -- service.  Persists ``RateCardModel`` rows and appends
audit entries through ``AuditTrail`` in the same transaction.  Line-item
operations are pure: they return new ``BudgetLineItem`` values and the
caller stores them via ``VersionManager.update_line_items``.

Invariants enforced
-------------------
* Linking COPIES the card's current rate into ``unit_cost``; it is not a
  live reference.
* Changing a card's rate never touches any line item until
  ``update_linked_items`` is called explicitly.
* Unlinking keeps the last copied ``unit_cost``.

Failure modes
-------------
* Unknown card ids raise ``RateCardNotFoundError``.
* Store failures raise ``PersistenceError`` after rollback; the cached card
  list is unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import session_scope
from budget_kernel.exceptions import PersistenceError, RateCardNotFoundError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.audit_entry import AuditAction
from budget_kernel.services.audit_trail import AuditTrail
from budget_modules.ledger.audit import format_money
from budget_modules.ledger.models import BudgetLineItem
from budget_modules.rate_cards.models import RateCard
from budget_modules.rate_cards.orm import RateCardModel

logger = get_logger("modules.rate_cards.service")

RATE_CARD_ENTITY = "RateCard"


class RateCardManager:
    """
    Shared unit rates and their propagation into line items.

    Contract:
        ``rate_cards()`` is ordered by category then name, like the store.
    """

    def __init__(self, session_factory: sessionmaker[Session], audit_trail: AuditTrail):
        self._session_factory = session_factory
        self._audit = audit_trail
        self._cards: list[RateCard] = []
        self.load()

    def load(self) -> None:
        stmt = select(RateCardModel).order_by(RateCardModel.category, RateCardModel.name)
        with session_scope(self._session_factory) as session:
            self._cards = [row.to_dto() for row in session.scalars(stmt)]
        logger.info("rate_cards_loaded", extra={"count": len(self._cards)})

    def _write(
        self,
        operation: str,
        card_id: UUID,
        apply: Callable[[Session], None],
        action: AuditAction,
        detail: str,
    ) -> None:
        try:
            with self._audit.writer(), session_scope(self._session_factory) as session:
                apply(session)
                self._audit.record_change(action, RATE_CARD_ENTITY, card_id, detail, session=session)
        except SQLAlchemyError as exc:
            logger.error(
                "persistence_failed",
                extra={"operation": operation, "rate_card_id": str(card_id), "error": str(exc)},
                exc_info=True,
            )
            raise PersistenceError(operation, str(exc)) from exc
        self.load()

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_rate_card(
        self,
        name: str,
        category: str,
        unit: str,
        rate: Decimal,
        notes: str = "",
    ) -> RateCard:
        card = RateCard(name=name, category=category, default_unit=unit, default_rate=rate, notes=notes)

        def insert(session: Session) -> None:
            session.add(RateCardModel.from_dto(card))
            session.flush()

        self._write(
            "create_rate_card", card.id, insert, AuditAction.CREATED,
            f"Created rate card '{name}' at {format_money(rate)}/{unit}",
        )
        logger.info("rate_card_created", extra={"rate_card_id": str(card.id), "rate": rate})
        return card

    def update_rate_card(
        self,
        card_id: UUID,
        *,
        name: str | None = None,
        category: str | None = None,
        unit: str | None = None,
        rate: Decimal | None = None,
        notes: str | None = None,
    ) -> RateCard:
        """Change only the fields given.  Linked items are NOT updated."""
        current = self.rate_card(card_id)
        updated = replace(
            current,
            name=current.name if name is None else name,
            category=current.category if category is None else category,
            default_unit=current.default_unit if unit is None else unit,
            default_rate=current.default_rate if rate is None else rate,
            notes=current.notes if notes is None else notes,
        )

        def apply(session: Session) -> None:
            model = session.get(RateCardModel, card_id)
            if model is None:
                raise RateCardNotFoundError(str(card_id))
            model.name = updated.name
            model.category = updated.category
            model.default_unit = updated.default_unit
            model.default_rate = updated.default_rate
            model.notes = updated.notes
            session.flush()

        self._write(
            "update_rate_card", card_id, apply, AuditAction.UPDATED,
            f"Updated rate card '{updated.display_name}'",
        )
        logger.info("rate_card_updated", extra={"rate_card_id": str(card_id)})
        return updated

    def delete_rate_card(self, card_id: UUID) -> None:
        card = self.rate_card(card_id)

        def remove(session: Session) -> None:
            model = session.get(RateCardModel, card_id)
            if model is not None:
                session.delete(model)
                session.flush()

        self._write(
            "delete_rate_card", card_id, remove, AuditAction.DELETED,
            f"Deleted rate card '{card.display_name}'",
        )
        logger.info("rate_card_deleted", extra={"rate_card_id": str(card_id)})

    # =========================================================================
    # Lookups
    # =========================================================================

    def rate_cards(self) -> list[RateCard]:
        return list(self._cards)

    def rate_card(self, card_id: UUID) -> RateCard:
        for card in self._cards:
            if card.id == card_id:
                return card
        raise RateCardNotFoundError(str(card_id))

    def rate_cards_for_category(self, category: str) -> list[RateCard]:
        return sorted((c for c in self._cards if c.category == category), key=lambda c: c.name)

    def rate_for(self, card_id: UUID | None) -> Decimal | None:
        """The card's current rate, or None for a missing id or unknown card."""
        if card_id is None:
            return None
        for card in self._cards:
            if card.id == card_id:
                return card.default_rate
        return None

    # =========================================================================
    # Linking
    # =========================================================================

    def link_item_to_rate_card(self, item: BudgetLineItem, card_id: UUID) -> BudgetLineItem:
        """Return ``item`` linked to the card with the card's rate copied in."""
        card = self.rate_card(card_id)
        logger.debug(
            "line_item_linked",
            extra={"item_id": str(item.id), "rate_card_id": str(card.id)},
        )
        return replace(
            item,
            is_linked_to_rate_card=True,
            rate_card_id=card.id,
            unit_cost=card.default_rate,
        )

    def unlink_item(self, item: BudgetLineItem) -> BudgetLineItem:
        logger.debug("line_item_unlinked", extra={"item_id": str(item.id)})
        return replace(item, is_linked_to_rate_card=False, rate_card_id=None)

    def update_linked_items(
        self,
        card_id: UUID,
        items: Iterable[BudgetLineItem],
    ) -> tuple[BudgetLineItem, ...]:
        """Overwrite ``unit_cost`` on every item linked to the card."""
        card = self.rate_card(card_id)
        updated = tuple(
            replace(item, unit_cost=card.default_rate)
            if item.is_linked_to_rate_card and item.rate_card_id == card_id
            else item
            for item in items
        )
        logger.info(
            "linked_items_updated",
            extra={
                "rate_card_id": str(card_id),
                "count": sum(1 for item in updated if item.rate_card_id == card_id),
            },
        )
        return updated
