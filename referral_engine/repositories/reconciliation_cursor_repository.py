"""
Reconciliation cursor repository.

Data access layer for ReconciliationCursor model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.reconciliation_cursor import ReconciliationCursor
from referral_engine.repositories.base import BaseRepository


class ReconciliationCursorRepository(BaseRepository[ReconciliationCursor]):
    """Reconciliation cursor repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize reconciliation cursor repository."""
        super().__init__(ReconciliationCursor, session)

    async def get_position(self, name: str) -> int | None:
        """Get last processed user id of a named run."""
        cursor = await self.get_by_id(name, fresh=True)
        return cursor.last_user_id if cursor else None

    async def save_position(self, name: str, last_user_id: int | None) -> None:
        """Store last processed user id of a named run."""
        cursor = await self.get_by_id(name)
        if cursor is None:
            self.session.add(
                ReconciliationCursor(name=name, last_user_id=last_user_id)
            )
        else:
            cursor.last_user_id = last_user_id
        await self.session.flush()

    async def reset(self, name: str) -> None:
        """Forget the position so the next run starts from the beginning."""
        await self.save_position(name, None)
