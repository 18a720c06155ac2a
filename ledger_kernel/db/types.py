"""
Module: ledger_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for money and
    stock quantities.  Centralizes precision so that every model and service
    uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  All monetary amounts and quantities
      use Decimal with explicit precision.
    - round_money() is the ONLY sanctioned rounding function for monetary
      values; round_quantity() is its counterpart for stock quantities.

Failure modes:
    - decimal.InvalidOperation from to_decimal() on non-numeric or non-finite
      input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

Quantity = Annotated[Decimal, Numeric(38, 9)]

Sequence = Annotated[int, BigInteger]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 3
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """
    Coerce int, str or Decimal input to Decimal.

    Floats are rejected: they cannot represent most decimal fractions
    exactly.  Infinity and NaN are rejected whatever the input type.

    Raises:
        TypeError: If value is a float or bool.
        decimal.InvalidOperation: If value is not a finite number.
    """
    if isinstance(value, (bool, float)):
        raise TypeError(f"Expected Decimal, int or str, got {type(value).__name__}")
    result = value if isinstance(value, Decimal) else Decimal(value)
    if not result.is_finite():
        raise InvalidOperation(f"Non-finite value: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the configured decimal places.

    This is the ONLY sanctioned rounding function for money in the kernel.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_quantity(
    value: Decimal,
    decimal_places: int = QUANTITY_DECIMAL_PLACES,
) -> Decimal:
    """Round a stock quantity to the precision every stock row is kept at."""
    return round_money(value, decimal_places=decimal_places)
