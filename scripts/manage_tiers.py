#!/usr/bin/env python3
"""
Manage tier rates and manual tiers.

Usage:
    python scripts/manage_tiers.py show-rates
    python scripts/manage_tiers.py set-rates gold 30 5 5 --operator alice
    python scripts/manage_tiers.py set-tier 42 platinum --operator alice --reason "partner"
    python scripts/manage_tiers.py set-tier 42 bronze --unlock --operator alice
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
from referral_engine.models.enums import MembershipTier
from referral_engine.services.commission.notifications import LoggingTierChangeSink
from referral_engine.services.commission.tier_table import TierRateService
from referral_engine.services.commission.tier_transition import TierTransitionManager
from referral_engine.utils.exceptions import CommissionEngineError

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    engine = create_async_engine(settings.database_url, echo=False, poolclass=NullPool)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_maker() as session:
            if args.command == "show-rates":
                table = await TierRateService(session).get_table()
                for tier in MembershipTier:
                    rates = table.rates[tier]
                    logger.info(
                        f"{tier.value:<9} L1={rates.level1}% L2={rates.level2}% "
                        f"L3={rates.level3}% (total {rates.total}%)"
                    )

            elif args.command == "set-rates":
                rates = await TierRateService(session).save_tier_rates(
                    args.tier,
                    args.level1,
                    args.level2,
                    args.level3,
                    operator=args.operator,
                    reason=args.reason,
                )
                logger.success(f"{args.tier} rates set to {'/'.join(map(str, rates))}")

            elif args.command == "set-tier":
                manager = TierTransitionManager(session, sink=LoggingTierChangeSink())
                result = await manager.set_manual_tier(
                    args.user_id,
                    args.tier,
                    operator=args.operator,
                    reason=args.reason,
                    locked=not args.unlock,
                )
                logger.success(
                    f"User {args.user_id}: {result.old_tier.value} -> "
                    f"{result.new_tier.value} ({'unlocked' if args.unlock else 'locked'})"
                )
    except CommissionEngineError as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage tier rates and manual tiers")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("show-rates", help="Print the current rate table")

    set_rates = commands.add_parser("set-rates", help="Override rates of a tier")
    set_rates.add_argument("tier", choices=[t.value for t in MembershipTier])
    set_rates.add_argument("level1")
    set_rates.add_argument("level2")
    set_rates.add_argument("level3")
    set_rates.add_argument("--operator", required=True)
    set_rates.add_argument("--reason", default="tier rates updated")

    set_tier = commands.add_parser("set-tier", help="Set a user's tier by hand")
    set_tier.add_argument("user_id", type=int)
    set_tier.add_argument("tier", choices=[t.value for t in MembershipTier])
    set_tier.add_argument(
        "--unlock",
        action="store_true",
        help="Let deposits recompute the tier again",
    )
    set_tier.add_argument("--operator", required=True)
    set_tier.add_argument("--reason", default="tier set manually")

    asyncio.run(run(parser.parse_args()))


if __name__ == "__main__":
    main()
