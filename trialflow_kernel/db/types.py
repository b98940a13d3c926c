"""
Module: trialflow_kernel.db.types
Responsibility: Money helpers shared by models, domain and services, and
    the string-backed enum column type.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/ or selectors/.

Invariants enforced:
    - No floats for monetary values.  Every price, reward and bonus is a
      Decimal, and ``to_money()`` is the single entry point that converts
      caller input (str, int, float, Decimal) into one.
    - ``round_money()`` is the only sanctioned rounding (2 places, half-up)
      for comparisons against a displayed price.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from sqlalchemy import Enum as SAEnum

MONEY_DISPLAY_PLACES = Decimal("0.01")
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def to_money(value: object) -> Decimal:
    """
    Convert caller input into a Decimal amount.

    Floats go through ``str()`` so ``19.9`` becomes ``Decimal("19.9")``
    rather than its binary expansion.

    Raises:
        ValueError: value is not numeric, is NaN/infinite, or is a bool.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}") from None
    else:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to display precision (2 places, half-up)."""
    return value.quantize(MONEY_DISPLAY_PLACES, rounding=DEFAULT_ROUNDING)


def enum_column(enum_cls: type[Enum]) -> SAEnum:
    """String-backed enum column (no native database enum type)."""
    return SAEnum(enum_cls, native_enum=False, length=32, validate_strings=True)
