"""
Enumerations shared by models and services.
"""

from enum import Enum


class MembershipTier(str, Enum):
    """Membership tier of a user, ordered from lowest to highest."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class CommissionSourceKind(str, Enum):
    """What kind of event produced a commission."""

    GAS_FEE_TOPUP = "gas_fee_topup"
    TRADING_FEE = "trading_fee"
    MANUAL_FIX = "manual_fix"
    BACKFILL = "backfill"


class CommissionStatus(str, Enum):
    """Commission payout status."""

    PENDING = "pending"
    PAID = "paid"


class DepositTransactionStatus(str, Enum):
    """Status of a deposit transaction known to the engine."""

    CONFIRMED = "confirmed"


class AuditAction(str, Enum):
    """Actions recorded in the commission audit log."""

    RECORD_CREATED = "record_created"
    RECORD_DELETED = "record_deleted"
    RECORD_PAID = "record_paid"
    CREDIT_APPLIED = "credit_applied"
    EARNINGS_REPAIRED = "earnings_repaired"
    TIER_RATES_UPDATED = "tier_rates_updated"
    TIER_SET_MANUALLY = "tier_set_manually"


class DiscrepancyKind(str, Enum):
    """Kinds of drift reported by reconciliation."""

    EARNINGS_MISMATCH = "earnings_mismatch"
    DEPOSIT_MISMATCH = "deposit_mismatch"
    ORPHANED_COMMISSION = "orphaned_commission"
    INVALID_LEVEL = "invalid_level"
    DUPLICATE_KEY = "duplicate_key"
    SELF_COMMISSION = "self_commission"
    UNCREDITED_COMMISSION = "uncredited_commission"
