#!/usr/bin/env python3
"""Initialize database tables (local runs; production uses alembic)."""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from referral_engine.config.database import async_engine
from referral_engine.models import Base

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def init_database() -> None:
    """Create all database tables."""
    logger.info("Connecting to database...")

    async with async_engine.begin() as conn:
        logger.info("Creating tables (checkfirst=True)...")
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    await async_engine.dispose()
    logger.success("Database tables created successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
