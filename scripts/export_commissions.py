#!/usr/bin/env python3
"""
Export commission records to CSV.

Usage:
    python scripts/export_commissions.py --output commissions.csv
    python scripts/export_commissions.py --referrer-id 42 --status paid
"""

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from referral_engine.config.settings import settings
from referral_engine.models.enums import CommissionSourceKind, CommissionStatus
from referral_engine.services.commission.ledger import CommissionLedger

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def export_commissions(args: argparse.Namespace) -> None:
    """Write matching commission records as CSV."""
    engine = create_async_engine(settings.database_url, echo=False, poolclass=NullPool)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    filters = {
        "referrer_id": args.referrer_id,
        "depositor_id": args.depositor_id,
        "level": args.level,
        "status": CommissionStatus(args.status) if args.status else None,
        "source_kind": CommissionSourceKind(args.source_kind) if args.source_kind else None,
        "created_from": datetime.fromisoformat(args.created_from) if args.created_from else None,
        "created_to": datetime.fromisoformat(args.created_to) if args.created_to else None,
    }

    try:
        async with session_maker() as session:
            content = await CommissionLedger(session).export_csv(**filters)
    finally:
        await engine.dispose()

    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        logger.success(f"Exported to {args.output}")
    else:
        sys.stdout.write(content)


def main() -> None:
    parser = argparse.ArgumentParser(description="Export commission records to CSV")
    parser.add_argument("--output", help="File to write (stdout if omitted)")
    parser.add_argument("--referrer-id", type=int)
    parser.add_argument("--depositor-id", type=int)
    parser.add_argument("--level", type=int, choices=[1, 2, 3])
    parser.add_argument("--status", choices=[s.value for s in CommissionStatus])
    parser.add_argument("--source-kind", choices=[k.value for k in CommissionSourceKind])
    parser.add_argument("--created-from", help="ISO datetime, inclusive")
    parser.add_argument("--created-to", help="ISO datetime, inclusive")

    asyncio.run(export_commissions(parser.parse_args()))


if __name__ == "__main__":
    main()
