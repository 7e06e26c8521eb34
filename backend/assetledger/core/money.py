"""
Money helpers

All depreciation amounts are carried at a single fixed precision of two
decimal places (one cent). Columns are Numeric(15, 2) to match.
"""
from decimal import Decimal, ROUND_HALF_UP, ROUND_DOWN

ROUNDING_UNIT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """Coerce ints, strings and floats from storage into Decimal"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value, rounding=ROUND_HALF_UP) -> Decimal:
    return to_decimal(value).quantize(ROUNDING_UNIT, rounding=rounding)


def round_down_money(value) -> Decimal:
    return quantize_money(value, rounding=ROUND_DOWN)
