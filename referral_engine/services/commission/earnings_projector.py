"""
Earnings projector.

Keeps the denormalized user totals in step with the ledger:
total_earnings through commission credits, total_personal_deposit through
the user's own confirmed deposits.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.commission_record import CommissionRecord
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService
from referral_engine.services.commission.tier_transition import (
    TierTransitionManager,
    TierTransitionResult,
)
from referral_engine.utils.decimal_utils import to_decimal
from referral_engine.utils.exceptions import UserNotFoundError

if TYPE_CHECKING:
    from referral_engine.services.commission.notifications import TierChangeSink


class EarningsProjector(BaseService):
    """Applies commissions and deposits to user totals."""

    def __init__(
        self, session: AsyncSession, sink: "TierChangeSink | None" = None
    ) -> None:
        """
        Initialize earnings projector.

        Args:
            session: Database session
            sink: Receiver of tier change events
        """
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.record_repo = CommissionRecordRepository(session)
        self.tier_transition = TierTransitionManager(session, sink=sink)

    async def credit_commission(
        self, record: CommissionRecord, commit: bool = True
    ) -> bool:
        """
        Add a paid commission to the referrer's total_earnings exactly once.

        The credited_at stamp and the earnings increment happen in the same
        transaction. A record that is already stamped is left alone.

        Args:
            record: Paid commission record
            commit: Commit the transaction

        Returns:
            True if earnings were incremented by this call
        """
        savepoint = await self.session.begin_nested()

        try:
            stamped = await self.record_repo.mark_credited(record.id)
            if not stamped:
                await savepoint.rollback()
                self.logger.debug(
                    "Commission already credited or not paid",
                    extra={"record_id": record.id},
                )
                return False

            amount = to_decimal(record.commission_amount)
            updated = await self.user_repo.increment_earnings(
                record.referrer_id, amount
            )
            if not updated:
                # Referrer vanished; keep the credit owed so reconciliation reports it
                await savepoint.rollback()
                self.logger.warning(
                    "Referrer missing, commission credit left owed",
                    extra={
                        "record_id": record.id,
                        "referrer_id": record.referrer_id,
                    },
                )
                return False
        except SQLAlchemyError:
            await savepoint.rollback()
            raise

        await savepoint.commit()
        if commit:
            await self.commit()

        self.logger.info(
            "Commission credited",
            extra={
                "record_id": record.id,
                "referrer_id": record.referrer_id,
                "depositor_id": record.depositor_id,
                "level": record.level,
                "amount": str(amount),
            },
        )
        return True

    async def apply_deposit(
        self, user_id: int, deposit_amount: Decimal
    ) -> TierTransitionResult:
        """
        Apply a user's own confirmed deposit and recompute the tier.

        Commits the increment together with anything already pending in the
        session, then publishes the tier change if there was one.

        Args:
            user_id: Depositor
            deposit_amount: Confirmed deposit amount

        Returns:
            Tier transition result

        Raises:
            ValueError: Non-positive amount
            UserNotFoundError: User does not exist
        """
        deposit_amount = to_decimal(deposit_amount)
        if deposit_amount <= 0:
            raise ValueError(f"Deposit amount must be positive, got {deposit_amount}")

        updated = await self.user_repo.increment_personal_deposit(
            user_id, deposit_amount
        )
        if not updated:
            raise UserNotFoundError(f"User {user_id} not found")

        result = await self.tier_transition.recompute_tier(user_id)
        await self.commit()

        self.logger.info(
            "Personal deposit applied",
            extra={
                "user_id": user_id,
                "amount": str(deposit_amount),
                "tier_changed": result.tier_changed,
                "tier": result.new_tier.value,
            },
        )

        await self.tier_transition.publish(user_id, result)
        return result
