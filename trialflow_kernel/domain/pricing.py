"""
Price validation rules.

Responsibility:
    Compute the acceptable price range for an offer and check a tester's
    discovered price against it and against the exact expected price.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Default range: ``[price - spread, price + spread]``; when the expected
      price is below ``low_price_threshold`` the range is
      ``[0, low_price_ceiling]``.  Explicit bounds on the offer win.
    - Both checks run, range first.  The exact check compares amounts at
      display precision and allows ``tolerance`` of difference.

Failure modes:
    - PriceOutOfRangeError when outside the range.
    - PriceMismatchError when inside the range but not the expected price.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from trialflow_kernel.db.types import ZERO, round_money
from trialflow_kernel.exceptions import PriceMismatchError, PriceOutOfRangeError


@dataclass(frozen=True)
class PricePolicy:
    spread: Decimal = Decimal("5")
    low_price_threshold: Decimal = Decimal("5")
    low_price_ceiling: Decimal = Decimal("5")
    tolerance: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        for name in ("spread", "low_price_threshold", "low_price_ceiling", "tolerance"):
            if getattr(self, name) < ZERO:
                raise ValueError(f"{name} must not be negative")


@dataclass(frozen=True)
class PriceRange:
    minimum: Decimal
    maximum: Decimal

    def contains(self, price: Decimal) -> bool:
        return self.minimum <= price <= self.maximum

    def display(self) -> str:
        return f"{round_money(self.minimum)} - {round_money(self.maximum)}"


def price_range(
    expected_price: Decimal,
    policy: PricePolicy | None = None,
    explicit_min: Decimal | None = None,
    explicit_max: Decimal | None = None,
) -> PriceRange:
    """Acceptable range for ``expected_price``."""
    policy = policy or PricePolicy()
    if explicit_min is not None and explicit_max is not None:
        return PriceRange(explicit_min, explicit_max)
    if expected_price < policy.low_price_threshold:
        return PriceRange(ZERO, policy.low_price_ceiling)
    return PriceRange(expected_price - policy.spread, expected_price + policy.spread)


def check_price(
    session_id: str,
    price: Decimal,
    expected_price: Decimal,
    accepted: PriceRange,
    policy: PricePolicy | None = None,
) -> None:
    """
    Run the range check, then the exact-price check.

    Raises:
        PriceOutOfRangeError, PriceMismatchError
    """
    policy = policy or PricePolicy()
    if not accepted.contains(price):
        raise PriceOutOfRangeError(session_id, price, accepted.minimum, accepted.maximum)
    if abs(round_money(price) - round_money(expected_price)) > policy.tolerance:
        raise PriceMismatchError(session_id, price)
