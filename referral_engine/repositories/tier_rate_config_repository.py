"""
Tier rate config repository.

Data access layer for TierRateConfig model.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.enums import MembershipTier
from referral_engine.models.tier_rate_config import TierRateConfig
from referral_engine.repositories.base import BaseRepository


class TierRateConfigRepository(BaseRepository[TierRateConfig]):
    """Repository for per-tier commission rate overrides."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize tier rate config repository."""
        super().__init__(TierRateConfig, session)

    async def get_all_configs(self) -> list[TierRateConfig]:
        """Get all stored overrides."""
        result = await self.session.execute(
            select(TierRateConfig).order_by(TierRateConfig.tier)
        )
        return list(result.scalars().all())

    async def get_by_tier(
        self, tier: MembershipTier
    ) -> TierRateConfig | None:
        """Get override of one tier."""
        return await self.get_by(tier=tier.value)

    async def upsert(
        self,
        tier: MembershipTier,
        level1_rate: Decimal,
        level2_rate: Decimal,
        level3_rate: Decimal,
        updated_by: str | None = None,
    ) -> TierRateConfig:
        """
        Create or replace the override of a tier.

        Args:
            tier: Membership tier
            level1_rate: Level 1 percentage
            level2_rate: Level 2 percentage
            level3_rate: Level 3 percentage
            updated_by: Operator making the change

        Returns:
            Stored config
        """
        config = await self.get_by_tier(tier)
        if config is None:
            return await self.create(
                tier=tier.value,
                level1_rate=level1_rate,
                level2_rate=level2_rate,
                level3_rate=level3_rate,
                updated_by=updated_by,
            )

        config.level1_rate = level1_rate
        config.level2_rate = level2_rate
        config.level3_rate = level3_rate
        config.updated_by = updated_by
        await self.session.flush()
        await self.session.refresh(config)
        return config
