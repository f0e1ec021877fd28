"""Money helpers: Decimal conversion and currency rounding.

Amounts are kept as unrounded ``Decimal`` during computation and quantized
to centavos only when they are persisted or compared against the
currency epsilon.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Balances at or below this are considered settled
CURRENCY_EPSILON = Decimal("0.01")


def as_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal/None to Decimal without float artifacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value) -> Decimal:
    """Round to currency precision (2 decimals, half-up)."""
    return as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def non_negative(value) -> Decimal:
    amount = as_decimal(value)
    return amount if amount > ZERO else ZERO


__all__ = ["CENT", "ZERO", "CURRENCY_EPSILON", "as_decimal", "to_money", "non_negative"]
