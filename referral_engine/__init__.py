"""
Referral commission engine.

Distributes multi-level referral commissions for confirmed deposits,
projects referrer earnings and membership tiers, and reconciles the
commission ledger against the denormalized user totals.
"""

__version__ = "1.0.0"
