"""
Commission calculator.

Pure arithmetic: amount = deposit * rate / 100, rounded once to the
settlement unit with ROUND_HALF_UP.
"""

from decimal import Decimal

from referral_engine.config.constants import PERCENT
from referral_engine.models.enums import MembershipTier
from referral_engine.services.commission.tier_table import TierRateTable
from referral_engine.utils.decimal_utils import quantize_money


def commission_amount(
    deposit_amount: Decimal,
    tier: MembershipTier | str,
    level: int,
    rates: TierRateTable,
) -> Decimal:
    """
    Calculate commission for one referrer.

    Args:
        deposit_amount: Deposit that triggered the distribution
        tier: Referrer's tier at evaluation time
        level: Referral level 1-3
        rates: Rate snapshot of the current distribution

    Returns:
        Amount rounded to 0.01

    Raises:
        InvalidTierError: Unknown tier
        ValueError: Level outside 1-3
    """
    rate = rates.rate_for(tier, level)
    return quantize_money(deposit_amount * rate / PERCENT)
