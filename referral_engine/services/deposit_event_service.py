"""
Deposit event service.

Handles deposit-confirmed events: records the user's own deposit, applies it
to their totals and tier, then distributes referral commissions as a
best-effort side effect.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.settings import settings
from referral_engine.repositories.deposit_transaction_repository import (
    DepositTransactionRepository,
)
from referral_engine.services.base_service import BaseService
from referral_engine.services.commission.distributor import (
    CommissionDistributor,
    DistributionResult,
    legacy_event_id,
)
from referral_engine.services.commission.earnings_projector import (
    EarningsProjector,
)
from referral_engine.services.commission.events import DepositConfirmedEvent
from referral_engine.services.commission.tier_transition import (
    TierTransitionResult,
)
from referral_engine.utils.exceptions import (
    CommissionEngineError,
    PersistenceError,
)

if TYPE_CHECKING:
    from referral_engine.services.commission.notifications import TierChangeSink


@dataclass
class DepositHandlingResult:
    """Result of handling one deposit-confirmed event."""

    deposit_recorded: bool
    tier_transition: TierTransitionResult | None = None
    distribution: DistributionResult | None = None
    distribution_error: str | None = None


class DepositEventService(BaseService):
    """Entry point for deposit-confirmed events."""

    def __init__(
        self, session: AsyncSession, sink: "TierChangeSink | None" = None
    ) -> None:
        """
        Initialize deposit event service.

        Args:
            session: Database session
            sink: Receiver of tier change events
        """
        super().__init__(session)
        self.deposit_repo = DepositTransactionRepository(session)
        self.projector = EarningsProjector(session, sink=sink)
        self.distributor = CommissionDistributor(session, sink=sink)

    async def handle_deposit_confirmed(
        self, event: DepositConfirmedEvent
    ) -> DepositHandlingResult:
        """
        Process a confirmed deposit.

        The deposit is committed before distribution starts, so a failed
        distribution never undoes the depositor's own deposit. A redelivered
        event skips the deposit step and only retries distribution.

        Args:
            event: Deposit confirmed event

        Returns:
            DepositHandlingResult

        Raises:
            PersistenceError: Commission records could not be stored; the
                event should be redelivered
            UserNotFoundError: Depositor does not exist
        """
        deposit_event_id = event.source_event_id or legacy_event_id(
            event.depositor_id,
            event.source_kind,
            event.amount,
            event.confirmed_at,
            settings.legacy_dedup_window_seconds,
        )

        result = DepositHandlingResult(deposit_recorded=False)
        result.tier_transition = await self._record_deposit(event, deposit_event_id)
        result.deposit_recorded = result.tier_transition is not None

        try:
            result.distribution = await self.distributor.distribute(
                depositor_id=event.depositor_id,
                deposit_amount=event.amount,
                source_kind=event.source_kind,
                source_event_id=event.source_event_id,
                confirmed_at=event.confirmed_at,
            )
        except PersistenceError:
            self.logger.error(
                "Commission distribution failed, event will be retried",
                extra={
                    "depositor_id": event.depositor_id,
                    "source_event_id": deposit_event_id,
                },
            )
            raise
        except CommissionEngineError as e:
            # Left for reconciliation backfill
            result.distribution_error = str(e)
            self.logger.error(
                "Commission distribution skipped",
                extra={
                    "depositor_id": event.depositor_id,
                    "source_event_id": deposit_event_id,
                    "error": str(e),
                },
            )

        return result

    async def _record_deposit(
        self, event: DepositConfirmedEvent, deposit_event_id: str
    ) -> TierTransitionResult | None:
        if await self.deposit_repo.get_by_event(deposit_event_id) is not None:
            self.logger.info(
                "Deposit already recorded",
                extra={
                    "depositor_id": event.depositor_id,
                    "source_event_id": deposit_event_id,
                },
            )
            return None

        try:
            await self.deposit_repo.create(
                user_id=event.depositor_id,
                amount=event.amount,
                source_kind=event.source_kind,
                source_event_id=deposit_event_id,
                confirmed_at=event.confirmed_at,
            )
        except IntegrityError:
            # Concurrent delivery recorded it first
            await self.rollback()
            return None

        try:
            return await self.projector.apply_deposit(event.depositor_id, event.amount)
        except Exception:
            await self.rollback()
            raise
