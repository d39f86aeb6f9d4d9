"""
Application constants.

Centralized constants for the commission engine.
"""

from decimal import Decimal

# ========================================================================
# MONEY
# ========================================================================

# Smallest settlement unit for commission amounts (2 decimal places)
SETTLEMENT_QUANTUM = Decimal("0.01")

# Percent divisor used by rate calculations
PERCENT = Decimal("100")

# ========================================================================
# REFERRAL CHAIN
# ========================================================================

# Hard cap on chain walks, independent of configuration
REFERRAL_DEPTH = 3
REFERRAL_LEVELS = (1, 2, 3)

# ========================================================================
# RECONCILIATION
# ========================================================================

# Cursor name used by the periodic reconciliation job
DEFAULT_RECONCILIATION_CURSOR = "commission_reconciliation"

# Operator name recorded for automated repairs
SYSTEM_OPERATOR = "system"

# Dramatiq time limit for reconciliation runs (ms)
DRAMATIQ_TIME_LIMIT_RECONCILIATION = 30 * 60 * 1000
