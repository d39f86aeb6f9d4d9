"""
Single source of truth for membership tiers and commission rates.

Holds the default tier -> (level1, level2, level3) commission percentages
and the cumulative personal deposit thresholds that decide a user's tier.
Admin overrides of the rates are stored in the database
(see TierRateConfig); these values are the fallback.
"""

from decimal import Decimal
from typing import NamedTuple

from referral_engine.models.enums import MembershipTier


class TierRates(NamedTuple):
    """Commission percentages paid to a referrer of a given tier."""

    level1: Decimal
    level2: Decimal
    level3: Decimal

    def for_level(self, level: int) -> Decimal:
        """Return the percentage for referral level 1-3."""
        if level == 1:
            return self.level1
        if level == 2:
            return self.level2
        if level == 3:
            return self.level3
        raise ValueError(f"Unsupported referral level: {level}")

    @property
    def total(self) -> Decimal:
        """Total payout percentage across all levels."""
        return self.level1 + self.level2 + self.level3


class TierThreshold(NamedTuple):
    """Inclusive lower bound of cumulative personal deposit for a tier."""

    tier: MembershipTier
    min_deposit: Decimal


DEFAULT_TIER_RATES: dict[MembershipTier, TierRates] = {
    MembershipTier.BRONZE: TierRates(Decimal("10"), Decimal("5"), Decimal("5")),
    MembershipTier.SILVER: TierRates(Decimal("20"), Decimal("5"), Decimal("5")),
    MembershipTier.GOLD: TierRates(Decimal("30"), Decimal("5"), Decimal("5")),
    MembershipTier.PLATINUM: TierRates(Decimal("40"), Decimal("5"), Decimal("5")),
}

# Ordered from highest to lowest bound
TIER_THRESHOLDS: tuple[TierThreshold, ...] = (
    TierThreshold(MembershipTier.PLATINUM, Decimal("10000")),
    TierThreshold(MembershipTier.GOLD, Decimal("2000")),
    TierThreshold(MembershipTier.SILVER, Decimal("1000")),
    TierThreshold(MembershipTier.BRONZE, Decimal("0")),
)

# Bounds for admin-edited rates
MIN_RATE_PERCENT = Decimal("0")
MAX_RATE_PERCENT = Decimal("100")
MAX_TOTAL_PAYOUT_PERCENT = Decimal("100")


def tier_for_deposit(total_personal_deposit: Decimal) -> MembershipTier:
    """
    Get membership tier for a cumulative personal deposit.

    Pure function of the total, so replaying deposits in any order that
    sums to the same total yields the same tier.

    Args:
        total_personal_deposit: Sum of the user's confirmed deposits

    Returns:
        Tier whose lower bound is the highest one not above the total
    """
    for threshold in TIER_THRESHOLDS:
        if total_personal_deposit >= threshold.min_deposit:
            return threshold.tier
    return MembershipTier.BRONZE
