"""
Commission statistics module.

Per-referrer totals and breakdowns computed with SQL aggregation.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.constants import REFERRAL_LEVELS
from referral_engine.models.enums import CommissionSourceKind, CommissionStatus
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)


class CommissionStatisticsManager:
    """Provides commission analytics."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics manager."""
        self.session = session
        self.record_repo = CommissionRecordRepository(session)

    async def get_commission_stats(self, user_id: int) -> dict:
        """
        Get commission statistics of a referrer.

        Args:
            user_id: Referrer user ID

        Returns:
            Dict with total_amount, paid_amount, pending_amount, count,
            by_level and by_source breakdowns
        """
        rows = await self.record_repo.get_stats_rows(user_id)

        by_level = {
            level: {"amount": Decimal("0"), "count": 0} for level in REFERRAL_LEVELS
        }
        by_source = {
            kind.value: {"amount": Decimal("0"), "count": 0}
            for kind in CommissionSourceKind
        }
        paid_amount = Decimal("0")
        pending_amount = Decimal("0")
        count = 0

        for level, source_kind, status, amount, records in rows:
            bucket = by_level.setdefault(level, {"amount": Decimal("0"), "count": 0})
            bucket["amount"] += amount
            bucket["count"] += records

            source = by_source[CommissionSourceKind(source_kind).value]
            source["amount"] += amount
            source["count"] += records

            if status == CommissionStatus.PAID:
                paid_amount += amount
            else:
                pending_amount += amount
            count += records

        return {
            "user_id": user_id,
            "total_amount": paid_amount + pending_amount,
            "paid_amount": paid_amount,
            "pending_amount": pending_amount,
            "count": count,
            "by_level": by_level,
            "by_source": by_source,
        }
