"""Rate card value objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from budget_modules.ledger.models import ZERO


class RateUnit(str, Enum):
    """Common billing units.  Rate cards also accept free-text units."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    FLAT = "flat"
    EACH = "each"


@dataclass(frozen=True)
class RateCard:
    """A shared, reusable unit price that line items link to and copy from."""

    name: str
    category: str = ""
    default_unit: str = RateUnit.DAY.value
    default_rate: Decimal = ZERO
    notes: str = ""
    id: UUID = field(default_factory=uuid4)

    @property
    def display_name(self) -> str:
        return self.name or "Unnamed Rate"
