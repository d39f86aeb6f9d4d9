"""
Tier rate table.

Immutable snapshot of tier -> per-level commission percentages. A
distribution loads one snapshot and uses it for the whole chain walk, so an
admin edit in the middle of a walk cannot mix two rate sets.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from types import MappingProxyType

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.constants import REFERRAL_LEVELS
from referral_engine.config.tier_rates import (
    DEFAULT_TIER_RATES,
    MAX_RATE_PERCENT,
    MAX_TOTAL_PAYOUT_PERCENT,
    MIN_RATE_PERCENT,
    TierRates,
)
from referral_engine.models.enums import AuditAction, MembershipTier
from referral_engine.repositories.commission_audit_repository import (
    CommissionAuditRepository,
)
from referral_engine.repositories.tier_rate_config_repository import (
    TierRateConfigRepository,
)
from referral_engine.services.base_service import BaseService
from referral_engine.utils.decimal_utils import to_decimal
from referral_engine.utils.exceptions import (
    InvalidTierError,
    TierConfigValidationError,
)


def coerce_tier(value: MembershipTier | str) -> MembershipTier:
    """
    Convert a stored tier value to MembershipTier.

    Raises:
        InvalidTierError: Unknown tier string
    """
    if isinstance(value, MembershipTier):
        return value
    try:
        return MembershipTier(value)
    except ValueError as e:
        raise InvalidTierError(value) from e


def validate_tier_rates(tier: MembershipTier, rates: TierRates) -> None:
    """
    Check rate bounds of one tier.

    Every rate must lie in [0, 100], level 1 must not be below level 2 and
    the three levels together must not pay out more than the deposit.

    Raises:
        TierConfigValidationError: Bounds violated
    """
    for level, rate in zip(REFERRAL_LEVELS, rates, strict=True):
        if not isinstance(rate, Decimal) or not rate.is_finite():
            raise TierConfigValidationError(
                f"{tier.value} level {level} rate must be a finite Decimal, got {rate!r}"
            )
        if rate < MIN_RATE_PERCENT or rate > MAX_RATE_PERCENT:
            raise TierConfigValidationError(
                f"{tier.value} level {level} rate {rate} outside "
                f"[{MIN_RATE_PERCENT}, {MAX_RATE_PERCENT}]"
            )

    if rates.level1 < rates.level2:
        raise TierConfigValidationError(
            f"{tier.value} level 1 rate {rates.level1} is below "
            f"level 2 rate {rates.level2}"
        )

    if rates.total > MAX_TOTAL_PAYOUT_PERCENT:
        raise TierConfigValidationError(
            f"{tier.value} total payout {rates.total}% exceeds "
            f"{MAX_TOTAL_PAYOUT_PERCENT}%"
        )


@dataclass(frozen=True)
class TierRateTable:
    """Validated, read-only tier -> rates mapping."""

    rates: Mapping[MembershipTier, TierRates]

    def __post_init__(self) -> None:
        missing = [tier.value for tier in MembershipTier if tier not in self.rates]
        if missing:
            raise TierConfigValidationError(
                f"Rate table is missing tiers: {', '.join(missing)}"
            )
        for tier, tier_rates in self.rates.items():
            validate_tier_rates(tier, tier_rates)
        object.__setattr__(self, "rates", MappingProxyType(dict(self.rates)))

    @classmethod
    def defaults(cls) -> "TierRateTable":
        """Table built from DEFAULT_TIER_RATES."""
        return cls(DEFAULT_TIER_RATES)

    def rates_for_tier(self, tier: MembershipTier | str) -> TierRates:
        """Get all three level rates of a tier."""
        return self.rates[coerce_tier(tier)]

    def rate_for(self, tier: MembershipTier | str, level: int) -> Decimal:
        """
        Get commission percentage for a referrer tier and level.

        Args:
            tier: Referrer's tier at evaluation time
            level: Referral level 1-3

        Returns:
            Percentage, e.g. Decimal("30") for 30%

        Raises:
            InvalidTierError: Unknown tier
            ValueError: Level outside 1-3
        """
        return self.rates_for_tier(tier).for_level(level)


def build_tier_rates(
    level1: Decimal | str, level2: Decimal | str, level3: Decimal | str
) -> TierRates:
    """Build TierRates from admin input, rejecting non-numeric values."""
    try:
        return TierRates(
            Decimal(str(level1)), Decimal(str(level2)), Decimal(str(level3))
        )
    except InvalidOperation as e:
        raise TierConfigValidationError(
            f"Rates must be numeric, got {level1!r}/{level2!r}/{level3!r}"
        ) from e


async def load_tier_rate_table(session: AsyncSession) -> TierRateTable:
    """
    Load rate snapshot: stored overrides on top of DEFAULT_TIER_RATES.

    Args:
        session: Database session

    Returns:
        Validated snapshot

    Raises:
        TierConfigValidationError: A stored override is invalid
    """
    rates = dict(DEFAULT_TIER_RATES)
    repo = TierRateConfigRepository(session)

    for config in await repo.get_all_configs():
        tier = coerce_tier(config.tier)
        rates[tier] = TierRates(
            to_decimal(config.level1_rate),
            to_decimal(config.level2_rate),
            to_decimal(config.level3_rate),
        )

    return TierRateTable(rates)


class TierRateService(BaseService):
    """Admin operations on tier rate overrides."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize tier rate service."""
        super().__init__(session)
        self.config_repo = TierRateConfigRepository(session)
        self.audit_repo = CommissionAuditRepository(session)

    async def get_table(self) -> TierRateTable:
        """Get current rate snapshot."""
        return await load_tier_rate_table(self.session)

    async def save_tier_rates(
        self,
        tier: MembershipTier | str,
        level1: Decimal | str,
        level2: Decimal | str,
        level3: Decimal | str,
        operator: str,
        reason: str = "tier rates updated",
    ) -> TierRates:
        """
        Validate and persist rate override of a tier.

        Args:
            tier: Tier to change
            level1: Level 1 percentage
            level2: Level 2 percentage
            level3: Level 3 percentage
            operator: Admin making the change
            reason: Audit reason

        Returns:
            Stored rates

        Raises:
            InvalidTierError: Unknown tier
            TierConfigValidationError: Rates out of bounds
        """
        tier = coerce_tier(tier)
        new_rates = build_tier_rates(level1, level2, level3)
        validate_tier_rates(tier, new_rates)

        current = await self.get_table()
        old_rates = current.rates[tier]

        await self.config_repo.upsert(
            tier,
            new_rates.level1,
            new_rates.level2,
            new_rates.level3,
            updated_by=operator,
        )
        await self.audit_repo.log(
            action=AuditAction.TIER_RATES_UPDATED,
            operator=operator,
            reason=reason,
            payload={
                "tier": tier.value,
                "before": [str(rate) for rate in old_rates],
                "after": [str(rate) for rate in new_rates],
            },
        )
        await self.commit()

        self.logger.info(
            "Tier rates updated",
            extra={
                "tier": tier.value,
                "rates": [str(rate) for rate in new_rates],
                "operator": operator,
            },
        )
        return new_rates
