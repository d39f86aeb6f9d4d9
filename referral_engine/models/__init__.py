"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from referral_engine.models.base import Base
from referral_engine.models.commission_audit_entry import CommissionAuditEntry
from referral_engine.models.commission_record import CommissionRecord
from referral_engine.models.deposit_transaction import DepositTransaction
from referral_engine.models.enums import (
    AuditAction,
    CommissionSourceKind,
    CommissionStatus,
    DepositTransactionStatus,
    DiscrepancyKind,
    MembershipTier,
)
from referral_engine.models.reconciliation_cursor import ReconciliationCursor
from referral_engine.models.tier_rate_config import TierRateConfig
from referral_engine.models.user import User


__all__ = [
    "Base",
    # Models
    "User",
    "CommissionRecord",
    "CommissionAuditEntry",
    "DepositTransaction",
    "ReconciliationCursor",
    "TierRateConfig",
    # Enums
    "AuditAction",
    "CommissionSourceKind",
    "CommissionStatus",
    "DepositTransactionStatus",
    "DiscrepancyKind",
    "MembershipTier",
]
