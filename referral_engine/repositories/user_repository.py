"""
User repository.

Data access layer for User model. Earnings and deposit counters are only
changed through single atomic UPDATE statements.
"""

from decimal import Decimal

from sqlalchemy import Row, Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.enums import MembershipTier
from referral_engine.models.user import User
from referral_engine.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def increment_earnings(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically add amount to total_earnings.

        Args:
            user_id: Referrer user ID
            amount: Amount to add

        Returns:
            True if the user row was updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(total_earnings=User.total_earnings + amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment_personal_deposit(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically add amount to total_personal_deposit.

        Args:
            user_id: Depositor user ID
            amount: Confirmed deposit amount

        Returns:
            True if the user row was updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(total_personal_deposit=User.total_personal_deposit + amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_tier_if_unlocked(
        self,
        user_id: int,
        expected_tier: MembershipTier,
        new_tier: MembershipTier,
    ) -> bool:
        """
        Change tier only if it is still expected_tier and not locked.

        Compare-and-set so two concurrent deposits cannot emit the same
        transition twice.

        Returns:
            True if the tier was changed by this call
        """
        stmt = (
            update(User)
            .where(
                User.id == user_id,
                User.membership_tier == expected_tier,
                User.tier_locked_manually == False,  # noqa: E712
            )
            .values(membership_tier=new_tier)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_existing_ids(self, user_ids: set[int]) -> set[int]:
        """
        Filter ids down to those that exist.

        Args:
            user_ids: Candidate user ids

        Returns:
            Subset of ids present in users
        """
        if not user_ids:
            return set()

        stmt = select(User.id).where(User.id.in_(user_ids))
        result = await self.session.execute(stmt)
        return {row[0] for row in result.all()}

    async def get_totals_page_after(
        self, after_user_id: int | None, limit: int
    ) -> list[Row]:
        """
        Get stored totals of users ordered by id, starting after a cursor.

        Reads plain columns so a user row with a legacy tier value does not
        stop a scan.

        Returns:
            Rows with id, referred_by_id, total_earnings, total_personal_deposit
        """
        stmt = self._totals_query().order_by(User.id).limit(limit)
        if after_user_id is not None:
            stmt = stmt.where(User.id > after_user_id)

        result = await self.session.execute(stmt)
        return list(result.all())

    async def get_totals(self, user_id: int) -> Row | None:
        """Get stored totals of a single user."""
        stmt = self._totals_query().where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    def _totals_query() -> Select:
        return select(
            User.id,
            User.referred_by_id,
            User.total_earnings,
            User.total_personal_deposit,
        )
