"""
Deposit transaction repository.

Data access layer for DepositTransaction model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.deposit_transaction import DepositTransaction
from referral_engine.models.enums import DepositTransactionStatus
from referral_engine.repositories.base import BaseRepository
from referral_engine.utils.decimal_utils import to_decimal


class DepositTransactionRepository(BaseRepository[DepositTransaction]):
    """Deposit transaction repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize deposit transaction repository."""
        super().__init__(DepositTransaction, session)

    async def get_by_event(
        self, source_event_id: str
    ) -> DepositTransaction | None:
        """Get deposit by upstream event id."""
        return await self.get_by(source_event_id=source_event_id)

    async def sum_confirmed_by_users(
        self, user_ids: set[int]
    ) -> dict[int, Decimal]:
        """
        Sum confirmed deposits per user in a single query.

        Args:
            user_ids: Users to aggregate

        Returns:
            Dict user_id -> confirmed total (users without deposits omitted)
        """
        if not user_ids:
            return {}

        stmt = (
            select(
                DepositTransaction.user_id,
                func.coalesce(func.sum(DepositTransaction.amount), 0).label("total"),
            )
            .where(
                DepositTransaction.user_id.in_(user_ids),
                DepositTransaction.status == DepositTransactionStatus.CONFIRMED,
            )
            .group_by(DepositTransaction.user_id)
        )
        result = await self.session.execute(stmt)
        return {row.user_id: to_decimal(row.total) for row in result.all()}

    async def list_confirmed_for_users(
        self, user_ids: set[int]
    ) -> list[DepositTransaction]:
        """
        Get confirmed deposits of the given users, oldest first.

        Returns:
            Deposits ordered by confirmation time then id
        """
        if not user_ids:
            return []

        stmt = (
            select(DepositTransaction)
            .where(
                DepositTransaction.user_id.in_(user_ids),
                DepositTransaction.status == DepositTransactionStatus.CONFIRMED,
            )
            .order_by(DepositTransaction.confirmed_at, DepositTransaction.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
