"""Dynamic group pricing for cleanup campaigns.

Prices are whole rupees. The default curve decays linearly from the base
price (first participant) to the floor price (at `max_participants`), rounded
half-up, and stays at the floor beyond that:

    calculate_price(1)  -> 649
    calculate_price(2)  -> 620
    calculate_price(10) -> 388
    calculate_price(20) -> 99
    calculate_price(25) -> 99
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from fractions import Fraction
from typing import Any

from .errors import InvalidInput

BASE_PRICE = 649
FLOOR_PRICE = 99
MAX_PARTICIPANTS = 20

_PAISE_PER_RUPEE = 100


@dataclass(frozen=True, slots=True)
class PricingEngine:
    base_price: int = BASE_PRICE
    floor_price: int = FLOOR_PRICE
    max_participants: int = MAX_PARTICIPANTS

    def __post_init__(self) -> None:
        if int(self.floor_price) < 0:
            raise ValueError("floor_price must be >= 0")
        if int(self.base_price) < int(self.floor_price):
            raise ValueError("base_price must be >= floor_price")
        if int(self.max_participants) < 2:
            raise ValueError("max_participants must be >= 2")

    @classmethod
    def from_settings(cls, settings: Any) -> "PricingEngine":
        return cls(
            base_price=int(settings.cleanup_base_price),
            floor_price=int(settings.cleanup_floor_price),
            max_participants=int(settings.cleanup_max_participants),
        )

    def calculate_price(self, participant_index: int) -> int:
        """Price charged to the Nth participant (1-based)."""
        n = _require_count(participant_index, name="participant_index")
        if n >= self.max_participants:
            return self.floor_price

        # Exact rational arithmetic; round half-up like the checkout UI does.
        discount = Fraction((self.base_price - self.floor_price) * (n - 1), self.max_participants - 1)
        rounded = math.floor(Fraction(self.base_price) - discount + Fraction(1, 2))
        return max(self.floor_price, int(rounded))

    def calculate_next_price(self, current_participant_count: int) -> int:
        """Price for the participant about to join a campaign of this size."""
        n = _require_count(current_participant_count, name="current_participant_count")
        return self.calculate_price(n + 1)

    def is_valid_price(self, price: Any) -> bool:
        if isinstance(price, bool) or not isinstance(price, int):
            return False
        return self.floor_price <= price <= self.base_price


def _require_count(value: Any, *, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(message=f"{name} must be an integer", field=name)
    if value < 1:
        raise InvalidInput(message=f"{name} must be >= 1 (got {value})", field=name)
    return value


def _to_decimal(amount: Any) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidInput(message="amount must be a number", field="amount")
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, float):
        # str() gives the shortest repr, so 6.49 converts as 6.49 rather than 6.4900000000000002131...
        return Decimal(str(amount))
    try:
        return Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidInput(message="amount must be a number", field="amount", cause=e) from e


def rupees_to_paise(amount: Any) -> int:
    """Convert a rupee amount to integer paise, rounding half-up."""
    d = _to_decimal(amount)
    if not d.is_finite() or d < 0:
        raise InvalidInput(message="amount must be a finite, non-negative number", field="amount")
    return int((d * _PAISE_PER_RUPEE).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def paise_to_rupees(paise: int) -> Decimal:
    if isinstance(paise, bool) or not isinstance(paise, int):
        raise InvalidInput(message="paise must be an integer", field="paise")
    return Decimal(paise) / _PAISE_PER_RUPEE
