"""
Unit tests for the tier rate table snapshot and its validation.
"""

from decimal import Decimal

import pytest

from referral_engine.config.tier_rates import DEFAULT_TIER_RATES, TierRates
from referral_engine.models.enums import MembershipTier
from referral_engine.services.commission.tier_table import (
    TierRateTable,
    build_tier_rates,
    coerce_tier,
    validate_tier_rates,
)
from referral_engine.utils.exceptions import (
    InvalidTierError,
    TierConfigValidationError,
)


def _table_with(tier: MembershipTier, rates: TierRates) -> TierRateTable:
    values = dict(DEFAULT_TIER_RATES)
    values[tier] = rates
    return TierRateTable(values)


class TestRateLookup:
    """Test rate_for."""

    def test_rate_for_defaults(self):
        """Default snapshot returns the documented percentages."""
        table = TierRateTable.defaults()
        assert table.rate_for(MembershipTier.GOLD, 1) == Decimal("30")
        assert table.rate_for(MembershipTier.SILVER, 2) == Decimal("5")
        assert table.rate_for(MembershipTier.BRONZE, 3) == Decimal("5")

    def test_rate_for_accepts_stored_strings(self):
        """Raw tier strings from storage are accepted."""
        assert TierRateTable.defaults().rate_for("platinum", 1) == Decimal("40")

    def test_unknown_tier(self):
        """Unknown tier strings raise InvalidTierError."""
        with pytest.raises(InvalidTierError) as exc_info:
            TierRateTable.defaults().rate_for("diamond", 1)
        assert exc_info.value.tier == "diamond"

    def test_unknown_level(self):
        """Unknown levels raise ValueError."""
        with pytest.raises(ValueError):
            TierRateTable.defaults().rate_for(MembershipTier.GOLD, 4)

    def test_snapshot_is_read_only(self):
        """The rate mapping cannot be changed after construction."""
        table = TierRateTable.defaults()
        with pytest.raises(TypeError):
            table.rates[MembershipTier.GOLD] = TierRates(
                Decimal("50"), Decimal("5"), Decimal("5")
            )

    def test_coerce_tier(self):
        """Enum values pass through, strings are converted."""
        assert coerce_tier(MembershipTier.SILVER) is MembershipTier.SILVER
        assert coerce_tier("gold") is MembershipTier.GOLD


class TestValidation:
    """Test rate bounds."""

    def test_defaults_are_valid(self):
        """Shipped defaults pass validation."""
        for tier, rates in DEFAULT_TIER_RATES.items():
            validate_tier_rates(tier, rates)

    @pytest.mark.parametrize(
        "rates",
        [
            TierRates(Decimal("101"), Decimal("0"), Decimal("0")),
            TierRates(Decimal("10"), Decimal("-1"), Decimal("5")),
            TierRates(Decimal("60"), Decimal("30"), Decimal("20")),
            TierRates(Decimal("5"), Decimal("10"), Decimal("5")),
        ],
        ids=["above-100", "negative", "total-above-100", "level1-below-level2"],
    )
    def test_invalid_rates(self, rates):
        """Out-of-bounds rates raise TierConfigValidationError."""
        with pytest.raises(TierConfigValidationError):
            _table_with(MembershipTier.GOLD, rates)

    def test_total_of_exactly_100_allowed(self):
        """Paying out the whole deposit is the upper limit."""
        table = _table_with(
            MembershipTier.PLATINUM,
            TierRates(Decimal("90"), Decimal("5"), Decimal("5")),
        )
        assert table.rate_for(MembershipTier.PLATINUM, 1) == Decimal("90")

    def test_level3_may_exceed_level2(self):
        """Only level 1 against level 2 is ordered."""
        validate_tier_rates(
            MembershipTier.BRONZE,
            TierRates(Decimal("10"), Decimal("2"), Decimal("3")),
        )

    def test_missing_tier(self):
        """Every tier must have rates."""
        values = dict(DEFAULT_TIER_RATES)
        del values[MembershipTier.SILVER]
        with pytest.raises(TierConfigValidationError):
            TierRateTable(values)

    def test_build_rejects_non_numeric(self):
        """Admin input must be numeric."""
        with pytest.raises(TierConfigValidationError):
            build_tier_rates("ten", "5", "5")

    def test_build_from_strings(self):
        """Strings are converted exactly."""
        assert build_tier_rates("12.5", "5", "2.5") == TierRates(
            Decimal("12.5"), Decimal("5"), Decimal("2.5")
        )
