#!/usr/bin/env python3
"""
Reconcile commission ledger against user totals.

Reports drift between commission records and stored totals. Nothing is
overwritten; use repair_earnings.py to fix what is reported.

Usage:
    python scripts/reconcile_commissions.py                  # Full pass
    python scripts/reconcile_commissions.py --user-id 42     # One user
    python scripts/reconcile_commissions.py --resume --max-batches 10
    python scripts/reconcile_commissions.py --backfill       # Distribute missing commissions
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from referral_engine.config.constants import DEFAULT_RECONCILIATION_CURSOR
from referral_engine.config.settings import settings
from referral_engine.services.commission.reconciler import (
    CommissionReconciler,
    ReconcileScope,
)

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def reconcile(args: argparse.Namespace) -> int:
    """
    Run reconciliation and print the report.

    Returns:
        Number of discrepancies found
    """
    engine = create_async_engine(settings.database_url, echo=False, poolclass=NullPool)
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    scope = ReconcileScope(
        user_id=args.user_id,
        after_user_id=args.after_user_id,
        batch_size=args.batch_size,
        max_batches=args.max_batches,
        backfill=args.backfill,
        cursor_name=args.cursor if args.user_id is None else None,
        resume=args.resume,
    )

    try:
        async with session_maker() as session:
            report = await CommissionReconciler(session).reconcile(scope)
    finally:
        await engine.dispose()

    logger.info(f"Users scanned: {report.users_scanned}")
    logger.info(f"Ledger earnings total: {report.total_recomputed}")
    logger.info(f"Stored earnings total: {report.total_stored}")
    if report.backfilled_records:
        logger.info(
            f"Backfilled {report.backfilled_records} records "
            f"for {report.backfilled_events} deposits"
        )
    if not report.completed:
        logger.info(f"Stopped early, resume after user {report.next_cursor}")

    if report.is_clean:
        logger.success("No discrepancies found")
    else:
        logger.warning(f"Discrepancies: {report.summary()}")
        for item in report.discrepancies:
            print(json.dumps(item.to_dict()))

    return len(report.discrepancies)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Reconcile commission records against user totals"
    )
    parser.add_argument("--user-id", type=int, help="Check a single user")
    parser.add_argument("--after-user-id", type=int, help="Start after this user id")
    parser.add_argument("--batch-size", type=int, help="Users per page")
    parser.add_argument("--max-batches", type=int, help="Stop after N pages")
    parser.add_argument(
        "--backfill",
        action="store_true",
        help="Distribute deposits of referred users that have no commissions",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Continue from the stored cursor",
    )
    parser.add_argument(
        "--cursor",
        default=DEFAULT_RECONCILIATION_CURSOR,
        help="Cursor name used to store progress",
    )

    args = parser.parse_args()
    discrepancies = asyncio.run(reconcile(args))
    sys.exit(1 if discrepancies else 0)


if __name__ == "__main__":
    main()
