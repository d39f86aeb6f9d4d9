"""
Dramatiq worker entry point.

Run with:
    dramatiq jobs.worker

Configures the Redis broker before any actor module is imported so the
actors bind to it.
"""

from referral_engine.config.logging import setup_logging

setup_logging()

from jobs.broker import broker  # noqa: E402,F401
from jobs.tasks.deposit_events import process_deposit_confirmed  # noqa: E402,F401
from jobs.tasks.notifications import notify_tier_change  # noqa: E402,F401
from jobs.tasks.reconciliation import (  # noqa: E402,F401
    apply_missing_commission_credits,
    reconcile_commissions,
)
