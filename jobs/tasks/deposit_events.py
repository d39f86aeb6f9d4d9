"""
Deposit event task.

Consumes deposit-confirmed events. Delivery is at-least-once; a failed
commission write raises so dramatiq retries the message, and the retry only
repeats what is still missing.
"""

import dramatiq
from loguru import logger
from pydantic import ValidationError

from jobs.async_runner import create_local_session, run_async
from jobs.tasks.notifications import notify_tier_change
from referral_engine.services.commission.events import DepositConfirmedEvent
from referral_engine.services.commission.notifications import (
    DramatiqTierChangeSink,
)
from referral_engine.services.deposit_event_service import (
    DepositEventService,
    DepositHandlingResult,
)
from referral_engine.utils.exceptions import CommissionEngineError, must_raise


@dramatiq.actor(max_retries=5, time_limit=60_000, queue_name="commissions")
def process_deposit_confirmed(event_data: dict) -> None:
    """
    Handle a deposit-confirmed event.

    Args:
        event_data: DepositConfirmedEvent fields (JSON-compatible)
    """
    try:
        event = DepositConfirmedEvent.model_validate(event_data)
    except ValidationError as e:
        # Malformed payloads are not retried
        logger.error(
            "Invalid deposit confirmed event dropped",
            extra={"event_data": event_data, "error": str(e)},
        )
        return

    try:
        result = run_async(_process_deposit_confirmed_async(event))
    except CommissionEngineError as e:
        # Storage and config failures go back to dramatiq for a retry
        if must_raise(e):
            raise
        logger.error(
            "Deposit confirmed event dropped",
            extra={
                "depositor_id": event.depositor_id,
                "source_event_id": event.source_event_id,
                "error": str(e),
            },
        )
        return

    distribution = result.distribution
    logger.info(
        "Deposit confirmed event processed",
        extra={
            "depositor_id": event.depositor_id,
            "source_event_id": event.source_event_id,
            "deposit_recorded": result.deposit_recorded,
            "commissions": len(distribution.records) if distribution else 0,
            "already_processed": distribution.already_processed if distribution else None,
        },
    )


async def _process_deposit_confirmed_async(
    event: DepositConfirmedEvent,
) -> DepositHandlingResult:
    """Async implementation of deposit event handling."""
    async with create_local_session() as session:
        service = DepositEventService(
            session, sink=DramatiqTierChangeSink(notify_tier_change)
        )
        return await service.handle_deposit_confirmed(event)
