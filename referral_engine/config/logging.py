"""
Logging configuration.

Configures the loguru logger with file rotation and retention policies.
"""

import sys

from loguru import logger

from referral_engine.config.settings import settings


def setup_logging(log_file: str | None = None) -> None:
    """Configure logger with stderr output and a rotating file sink."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(
        log_file or settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        level=settings.log_level,
        encoding="utf-8",
    )

    logger.info("Referral commission engine logging configured")
