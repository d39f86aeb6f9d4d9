#!/usr/bin/env python3
"""
Repair user earnings from the commission ledger.

Applies owed commission credits, then closes any remaining difference with
an audited delta.

Usage:
    python scripts/repair_earnings.py --user-id 42 --dry-run
    python scripts/repair_earnings.py --user-id 42 --apply --operator alice --reason "ticket 123"
    python scripts/repair_earnings.py --all --apply --operator alice --reason "monthly repair"
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from referral_engine.config.settings import settings
from referral_engine.models.enums import DiscrepancyKind
from referral_engine.services.commission.reconciler import (
    CommissionReconciler,
    ReconcileScope,
)
from referral_engine.services.commission.repair import CommissionRepairService

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def repair_earnings(
    user_ids: list[int] | None, dry_run: bool, operator: str, reason: str
) -> None:
    """Repair earnings of the given users (None: every user with a mismatch)."""
    engine = create_async_engine(settings.database_url, echo=False, poolclass=NullPool)
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info(f"Mode: {'DRY RUN (preview only)' if dry_run else 'APPLY CHANGES'}")

    try:
        async with session_maker() as session:
            reconciler = CommissionReconciler(session)

            if user_ids is None:
                report = await reconciler.reconcile(ReconcileScope())
            else:
                report = await reconciler.reconcile(ReconcileScope(user_id=user_ids[0]))
                for user_id in user_ids[1:]:
                    extra = await reconciler.reconcile(ReconcileScope(user_id=user_id))
                    report.discrepancies.extend(extra.discrepancies)

            affected = sorted(
                {
                    item.user_id
                    for item in report.discrepancies
                    if item.kind
                    in (
                        DiscrepancyKind.EARNINGS_MISMATCH,
                        DiscrepancyKind.UNCREDITED_COMMISSION,
                    )
                    and item.user_id is not None
                }
            )

            if not affected:
                logger.success("No earnings drift found - nothing to repair")
                return

            for item in report.discrepancies:
                if item.user_id in affected:
                    logger.info(f"  {item.to_dict()}")

            if dry_run:
                logger.info(f"{len(affected)} users would be repaired: {affected}")
                return

            repair = CommissionRepairService(session)
            for user_id in affected:
                outcome = await repair.repair_earnings(user_id, operator, reason)
                logger.info(
                    f"User {user_id}: {outcome['before']} -> {outcome['after']} "
                    f"(credits applied: {len(outcome['credited_records'])}, "
                    f"delta: {outcome['delta']})"
                )

            logger.success(f"Repaired {len(affected)} users")
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Repair user earnings from the ledger")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--user-id", type=int, action="append", help="User to repair")
    target.add_argument("--all", action="store_true", help="Repair every drifted user")
    parser.add_argument("--dry-run", action="store_true", help="Preview changes")
    parser.add_argument("--apply", action="store_true", help="Apply changes")
    parser.add_argument("--operator", default="cli", help="Operator recorded in the audit log")
    parser.add_argument("--reason", default="manual earnings repair", help="Audit reason")

    args = parser.parse_args()

    if not args.dry_run and not args.apply:
        print("Please specify --dry-run to preview or --apply to make changes")
        print("Example: python scripts/repair_earnings.py --user-id 42 --dry-run")
        sys.exit(1)

    asyncio.run(
        repair_earnings(
            None if args.all else args.user_id,
            dry_run=not args.apply,
            operator=args.operator,
            reason=args.reason,
        )
    )


if __name__ == "__main__":
    main()
