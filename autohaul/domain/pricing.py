"""
Upfront / remainder payment split  (Strategy Pattern)
=====================================================

A shipment's estimated total is collected in two parts: an upfront charge
at booking and a delivery-contingent remainder.

Amounts are integer cents, so the split is exact:

    upfront   = floor(total x upfront_percent / 100)
    remainder = total - upfront

Rounding always lands on the remainder, so the customer is never
overcharged at booking time.  Complexity: O(1).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")

# Largest total the shipments.estimated_price_cents column (INTEGER) can hold
MAX_TOTAL_CENTS = 2**31 - 1


def to_cents(amount: Union[Decimal, float, int, str]) -> int:
    """Convert a currency amount in major units to integer cents.

    Raises ``ValueError`` for negative, non-finite and unparseable amounts.
    """
    try:
        value = Decimal(str(amount).strip())
        if not value.is_finite():
            raise ValueError(f"Amount must be finite, got {amount}")
        value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Not a currency amount: {amount!r}") from exc
    if value < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    return int(value * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


@dataclass(frozen=True)
class PriceSplit:
    total_cents: int
    upfront_cents: int
    remainder_cents: int

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)

    @property
    def upfront(self) -> Decimal:
        return from_cents(self.upfront_cents)

    @property
    def remainder(self) -> Decimal:
        return from_cents(self.remainder_cents)


# ── Strategy hierarchy ────────────────────────────────────────────────


class SplitPolicy(ABC):
    @abstractmethod
    def split(self, total_cents: int) -> PriceSplit: ...


class PercentageSplit(SplitPolicy):
    """Observed policy: 20 % upfront, 80 % on delivery."""

    def __init__(self, upfront_percent: int = 20):
        if not 0 <= upfront_percent <= 100:
            raise ValueError("upfront_percent must be within [0, 100]")
        self.upfront_percent = upfront_percent

    def split(self, total_cents: int) -> PriceSplit:
        if total_cents < 0:
            raise ValueError("total_cents must be non-negative")
        upfront = total_cents * self.upfront_percent // 100
        return PriceSplit(total_cents, upfront, total_cents - upfront)
