"""
User model.

Minimal projection of a platform user as seen by the commission engine:
the referral link, the membership tier and the two denormalized totals.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.enums import MembershipTier
from referral_engine.models.types import MoneyType


class User(Base):
    """User model - referral graph node and earnings holder."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'total_personal_deposit >= 0',
            name='check_user_personal_deposit_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, index=True
    )

    # Referral (weak reference, the referrer may disappear)
    referred_by_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )

    # Membership
    membership_tier: Mapped[MembershipTier] = mapped_column(
        SAEnum(
            MembershipTier,
            name="membership_tier",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=MembershipTier.BRONZE,
        nullable=False,
        index=True,
    )
    tier_locked_manually: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Totals
    total_personal_deposit: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    # Commissions received minus withdrawals deducted externally
    total_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
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
            f"<User(id={self.id}, referred_by_id={self.referred_by_id}, "
            f"tier={self.membership_tier.value}, "
            f"total_earnings={self.total_earnings})>"
        )
