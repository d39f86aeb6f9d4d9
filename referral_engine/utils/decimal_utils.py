"""
Decimal helpers for money values.
"""

from decimal import ROUND_HALF_UP, Decimal

from referral_engine.config.constants import SETTLEMENT_QUANTUM


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """
    Convert a value to Decimal.

    Floats go through str() so binary noise is not carried over.
    None becomes zero (empty SQL aggregates).
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    """Round to the settlement unit (0.01) using ROUND_HALF_UP."""
    return value.quantize(SETTLEMENT_QUANTUM, rounding=ROUND_HALF_UP)
