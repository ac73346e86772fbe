"""
Rate Card ORM Models (``budget_modules.rate_cards.orm``).

Responsibility
--------------
SQLAlchemy persistence for rate cards.  Maps the frozen ``RateCard``
dataclass to the ``budget_rate_cards`` table.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``budget_kernel.db.base`` and
sibling ``models.py``.  MUST NOT be imported by ``budget_kernel``.
"""

from decimal import Decimal

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TrackedBase


class RateCardModel(TrackedBase):
    """
    ORM model for rate cards.

    Guarantees:
        - default_rate uses Decimal (Numeric(38,9) via type_annotation_map).
        - default_unit is free text; ``RateUnit`` lists the common values.
    """

    __tablename__ = "budget_rate_cards"

    __table_args__ = (
        Index("idx_budget_rate_cards_category", "category"),
        Index("idx_budget_rate_cards_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="")
    default_unit: Mapped[str] = mapped_column(String(50), default="day")
    default_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str] = mapped_column(Text, default="")

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from budget_modules.rate_cards.models import RateCard

        return RateCard(
            id=self.id,
            name=self.name,
            category=self.category,
            default_unit=self.default_unit,
            default_rate=self.default_rate,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, created_by: str = "system") -> "RateCardModel":
        """Create ORM model from frozen dataclass."""
        return cls(
            id=dto.id,
            name=dto.name,
            category=dto.category,
            default_unit=dto.default_unit,
            default_rate=dto.default_rate,
            notes=dto.notes,
            created_by=created_by,
        )

    def __repr__(self) -> str:
        return f"<RateCardModel {self.name}: {self.default_rate}/{self.default_unit}>"
