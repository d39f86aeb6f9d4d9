"""
Commission services package.

Contains modular services for commission processing:
- tier_table: Rate snapshot, validation and admin overrides
- calculator: Commission arithmetic
- chain_manager: Upline chain walk
- distributor: Idempotent distribution of one deposit event
- ledger: Record queries, CSV export and payout
- earnings_projector: Credits to user totals
- tier_transition: Tier recomputation and manual tiers
- notifications: Tier change sinks
- reconciler: Drift detection and backfill
- repair: Audited corrections
- statistics: Per-referrer analytics
"""

from referral_engine.services.commission.calculator import commission_amount
from referral_engine.services.commission.chain_manager import (
    ChainLink,
    ReferralChainManager,
)
from referral_engine.services.commission.distributor import (
    CommissionDistributor,
    DistributionContext,
    DistributionResult,
)
from referral_engine.services.commission.events import DepositConfirmedEvent
from referral_engine.services.commission.earnings_projector import (
    EarningsProjector,
)
from referral_engine.services.commission.ledger import CommissionLedger
from referral_engine.services.commission.notifications import (
    DramatiqTierChangeSink,
    InMemoryTierChangeSink,
    LoggingTierChangeSink,
    TierChangeSink,
)
from referral_engine.services.commission.reconciler import (
    CommissionReconciler,
    Discrepancy,
    ReconcileScope,
    ReconciliationReport,
)
from referral_engine.services.commission.repair import CommissionRepairService
from referral_engine.services.commission.statistics import (
    CommissionStatisticsManager,
)
from referral_engine.services.commission.tier_table import (
    TierRateService,
    TierRateTable,
    load_tier_rate_table,
)
from referral_engine.services.commission.tier_transition import (
    TierChangeEvent,
    TierTransitionManager,
    TierTransitionResult,
)


__all__ = [
    # Rates
    "TierRateTable",
    "TierRateService",
    "load_tier_rate_table",
    "commission_amount",
    # Events
    "DepositConfirmedEvent",
    # Chain
    "ChainLink",
    "ReferralChainManager",
    # Distribution
    "CommissionDistributor",
    "DistributionContext",
    "DistributionResult",
    # Ledger and projection
    "CommissionLedger",
    "EarningsProjector",
    # Tiers
    "TierChangeEvent",
    "TierTransitionManager",
    "TierTransitionResult",
    "TierChangeSink",
    "LoggingTierChangeSink",
    "InMemoryTierChangeSink",
    "DramatiqTierChangeSink",
    # Reconciliation and repair
    "CommissionReconciler",
    "ReconcileScope",
    "ReconciliationReport",
    "Discrepancy",
    "CommissionRepairService",
    "CommissionStatisticsManager",
]
