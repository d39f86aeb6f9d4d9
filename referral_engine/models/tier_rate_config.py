"""
TierRateConfig model.

Admin-editable commission percentages for one membership tier.
Tiers without a row fall back to DEFAULT_TIER_RATES.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.types import RatePercentType


class TierRateConfig(Base):
    """Commission rates for a membership tier."""

    __tablename__ = "tier_rate_configs"

    id: Mapped[int] = mapped_column(primary_key=True)

    # bronze, silver, gold, platinum
    tier: Mapped[str] = mapped_column(
        String(20), unique=True, index=True, nullable=False
    )

    level1_rate: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)
    level2_rate: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)
    level3_rate: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)

    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<TierRateConfig(tier={self.tier}, rates={self.level1_rate}/"
            f"{self.level2_rate}/{self.level3_rate})>"
        )
