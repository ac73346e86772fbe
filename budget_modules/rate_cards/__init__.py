"""Rate Cards Module (``budget_modules.rate_cards``): shared unit rates."""

from budget_modules.rate_cards.models import RateCard, RateUnit

__all__ = ["RateCard", "RateUnit"]
