#!/usr/bin/env python3
"""
Correct or pay out a single commission record.

Corrections delete the record and create a replacement, both audited.
User totals are not changed; run repair_earnings.py afterwards.

Usage:
    python scripts/correct_commission.py 17 --depositor-id 5 --operator alice --reason "wrong depositor"
    python scripts/correct_commission.py 17 --mark-paid --operator alice
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
from referral_engine.services.commission.ledger import CommissionLedger
from referral_engine.services.commission.repair import CommissionRepairService
from referral_engine.utils.exceptions import CommissionEngineError

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def correct_commission(args: argparse.Namespace) -> None:
    """Apply the requested change to one record."""
    engine = create_async_engine(settings.database_url, echo=False, poolclass=NullPool)
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    changes = {
        name: value
        for name, value in {
            "referrer_id": args.referrer_id,
            "depositor_id": args.depositor_id,
            "level": args.level,
            "commission_amount": args.commission_amount,
            "notes": args.notes,
        }.items()
        if value is not None
    }

    try:
        async with session_maker() as session:
            if args.mark_paid:
                record = await CommissionLedger(session).mark_paid(
                    args.record_id, operator=args.operator, reason=args.reason
                )
                logger.success(f"Record {record.id} marked as paid")
                return

            if not changes:
                logger.error("Nothing to change")
                sys.exit(1)

            record = await CommissionRepairService(session).correct_record(
                args.record_id, args.operator, args.reason, **changes
            )
            logger.success(f"Record {args.record_id} replaced by {record.id}")
            logger.info("Run reconcile_commissions.py and repair_earnings.py next")
    except CommissionEngineError as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Correct a commission record")
    parser.add_argument("record_id", type=int)
    parser.add_argument("--referrer-id", type=int)
    parser.add_argument("--depositor-id", type=int)
    parser.add_argument("--level", type=int, choices=[1, 2, 3])
    parser.add_argument("--commission-amount")
    parser.add_argument("--notes")
    parser.add_argument("--mark-paid", action="store_true", help="Pay out a pending record")
    parser.add_argument("--operator", required=True, help="Operator recorded in the audit log")
    parser.add_argument("--reason", default="manual correction", help="Audit reason")

    asyncio.run(correct_commission(parser.parse_args()))


if __name__ == "__main__":
    main()
