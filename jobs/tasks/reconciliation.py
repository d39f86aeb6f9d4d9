"""
Commission reconciliation tasks.

Periodic drift detection over all users, resumable through the stored
cursor, and the automatic application of owed commission credits.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import create_local_session, run_async
from referral_engine.config.constants import (
    DEFAULT_RECONCILIATION_CURSOR,
    DRAMATIQ_TIME_LIMIT_RECONCILIATION,
    SYSTEM_OPERATOR,
)
from referral_engine.services.commission.reconciler import (
    CommissionReconciler,
    ReconcileScope,
    ReconciliationReport,
)
from referral_engine.services.commission.repair import CommissionRepairService


@dramatiq.actor(
    max_retries=3,
    time_limit=DRAMATIQ_TIME_LIMIT_RECONCILIATION,
    queue_name="reconciliation",
)
def reconcile_commissions(
    backfill: bool = False, max_batches: int | None = None
) -> None:
    """
    Run a reconciliation pass, continuing from the stored cursor.

    Args:
        backfill: Distribute missing commissions of referred depositors
        max_batches: Stop after this many user pages; the next run resumes
    """
    logger.info("Starting commission reconciliation...")

    scope = ReconcileScope(
        backfill=backfill,
        max_batches=max_batches,
        cursor_name=DEFAULT_RECONCILIATION_CURSOR,
        resume=True,
    )
    report = run_async(_reconcile_async(scope))

    logger.info(
        "Commission reconciliation finished",
        extra={
            "users_scanned": report.users_scanned,
            "discrepancies": report.summary(),
            "completed": report.completed,
            "backfilled_records": report.backfilled_records,
        },
    )


async def _reconcile_async(scope: ReconcileScope) -> ReconciliationReport:
    """Async implementation of reconciliation."""
    async with create_local_session() as session:
        return await CommissionReconciler(session).reconcile(scope)


@dramatiq.actor(max_retries=3, time_limit=300_000, queue_name="reconciliation")
def apply_missing_commission_credits() -> None:
    """Credit paid commissions whose earnings increment is still owed."""
    credited = run_async(_apply_missing_credits_async())
    logger.info(
        "Missing commission credits applied",
        extra={"records": len(credited)},
    )


async def _apply_missing_credits_async() -> list[int]:
    """Async implementation of missing credit repair."""
    async with create_local_session() as session:
        return await CommissionRepairService(session).apply_missing_credits(
            operator=SYSTEM_OPERATOR,
            reason="automatic credit of owed commissions",
        )
