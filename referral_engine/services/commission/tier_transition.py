"""
Tier transition.

Recomputes a user's membership tier from the cumulative personal deposit
and publishes a change event when it moves. Already persisted commission
records are never touched.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.tier_rates import TierRates, tier_for_deposit
from referral_engine.models.enums import AuditAction, MembershipTier
from referral_engine.models.user import User
from referral_engine.repositories.commission_audit_repository import (
    CommissionAuditRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService
from referral_engine.services.commission.tier_table import (
    coerce_tier,
    load_tier_rate_table,
)
from referral_engine.utils.decimal_utils import to_decimal
from referral_engine.utils.exceptions import UserNotFoundError

if TYPE_CHECKING:
    from referral_engine.services.commission.notifications import TierChangeSink


@dataclass(frozen=True)
class TierTransitionResult:
    """Outcome of a tier recomputation."""

    tier_changed: bool
    old_tier: MembershipTier
    new_tier: MembershipTier


@dataclass(frozen=True)
class TierChangeEvent:
    """Published when a user's tier changes."""

    user_id: int
    old_tier: MembershipTier
    new_tier: MembershipTier
    new_rates: TierRates

    def to_dict(self) -> dict:
        """Serialize for message payloads."""
        return {
            "user_id": self.user_id,
            "old_tier": self.old_tier.value,
            "new_tier": self.new_tier.value,
            "new_rates": [str(rate) for rate in self.new_rates],
        }


class TierTransitionManager(BaseService):
    """Derives membership tier from total personal deposit."""

    def __init__(
        self, session: AsyncSession, sink: "TierChangeSink | None" = None
    ) -> None:
        """
        Initialize tier transition manager.

        Args:
            session: Database session
            sink: Receiver of tier change events (None to not publish)
        """
        super().__init__(session)
        self.sink = sink
        self.user_repo = UserRepository(session)
        self.audit_repo = CommissionAuditRepository(session)

    async def recompute_tier(self, user_id: int) -> TierTransitionResult:
        """
        Recompute tier from the stored total personal deposit.

        Does not commit. Uses a compare-and-set update so that of two
        concurrent recomputations only one reports the change.

        Raises:
            UserNotFoundError: User does not exist
        """
        user = await self.user_repo.get_by_id(user_id, fresh=True)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")

        old_tier = user.membership_tier
        if user.tier_locked_manually:
            return TierTransitionResult(False, old_tier, old_tier)

        new_tier = tier_for_deposit(to_decimal(user.total_personal_deposit))
        if new_tier == old_tier:
            return TierTransitionResult(False, old_tier, old_tier)

        changed = await self.user_repo.set_tier_if_unlocked(
            user_id, old_tier, new_tier
        )
        if not changed:
            user = await self.user_repo.get_by_id(user_id, fresh=True)
            return TierTransitionResult(
                False, user.membership_tier, user.membership_tier
            )

        self.logger.info(
            "Membership tier changed",
            extra={
                "user_id": user_id,
                "old_tier": old_tier.value,
                "new_tier": new_tier.value,
                "total_personal_deposit": str(user.total_personal_deposit),
            },
        )
        return TierTransitionResult(True, old_tier, new_tier)

    async def publish(self, user_id: int, result: TierTransitionResult) -> None:
        """Send a change event with the new tier's current rates."""
        if not result.tier_changed or self.sink is None:
            return

        rates = await load_tier_rate_table(self.session)
        self.sink.publish(
            TierChangeEvent(
                user_id=user_id,
                old_tier=result.old_tier,
                new_tier=result.new_tier,
                new_rates=rates.rates_for_tier(result.new_tier),
            )
        )

    async def set_manual_tier(
        self,
        user_id: int,
        tier: MembershipTier | str,
        operator: str,
        reason: str,
        locked: bool = True,
    ) -> TierTransitionResult:
        """
        Set a user's tier by hand.

        A locked tier is no longer recomputed on deposits. Unlocking
        immediately recomputes the tier from the deposit total.

        Args:
            user_id: User to change
            tier: Tier to set
            operator: Admin making the change
            reason: Audit reason
            locked: Keep the tier fixed on later deposits

        Returns:
            Transition result

        Raises:
            InvalidTierError: Unknown tier
            UserNotFoundError: User does not exist
        """
        tier = coerce_tier(tier)
        user = await self.user_repo.get_by_id(user_id, fresh=True)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")

        old_tier = user.membership_tier
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(membership_tier=tier, tier_locked_manually=locked)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

        result = TierTransitionResult(tier != old_tier, old_tier, tier)
        if not locked:
            recomputed = await self.recompute_tier(user_id)
            if recomputed.tier_changed:
                result = TierTransitionResult(
                    recomputed.new_tier != old_tier, old_tier, recomputed.new_tier
                )

        await self.audit_repo.log(
            action=AuditAction.TIER_SET_MANUALLY,
            operator=operator,
            reason=reason,
            user_id=user_id,
            payload={
                "old_tier": old_tier.value,
                "new_tier": result.new_tier.value,
                "locked": locked,
            },
        )
        await self.commit()

        self.logger.info(
            "Membership tier set manually",
            extra={
                "user_id": user_id,
                "old_tier": old_tier.value,
                "new_tier": result.new_tier.value,
                "locked": locked,
                "operator": operator,
            },
        )
        await self.publish(user_id, result)
        return result
