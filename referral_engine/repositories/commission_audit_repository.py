"""
Commission audit repository.

Append-only access to the commission audit log.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.commission_audit_entry import CommissionAuditEntry
from referral_engine.models.enums import AuditAction
from referral_engine.repositories.base import BaseRepository


class CommissionAuditRepository(BaseRepository[CommissionAuditEntry]):
    """Commission audit log repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission audit repository."""
        super().__init__(CommissionAuditEntry, session)

    async def log(
        self,
        action: AuditAction,
        operator: str,
        reason: str,
        record_id: int | None = None,
        user_id: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> CommissionAuditEntry:
        """
        Append an audit entry.

        Args:
            action: What was done
            operator: Who did it
            reason: Why it was done
            record_id: Affected commission record
            user_id: Affected user
            payload: Before/after values

        Returns:
            Created entry
        """
        return await self.create(
            action=action,
            operator=operator,
            reason=reason,
            record_id=record_id,
            user_id=user_id,
            payload=payload or {},
        )

    async def get_for_user(
        self, user_id: int, limit: int = 100
    ) -> list[CommissionAuditEntry]:
        """Get latest entries affecting a user."""
        stmt = (
            select(CommissionAuditEntry)
            .where(CommissionAuditEntry.user_id == user_id)
            .order_by(CommissionAuditEntry.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_record(
        self, record_id: int
    ) -> list[CommissionAuditEntry]:
        """Get all entries of a commission record, oldest first."""
        stmt = (
            select(CommissionAuditEntry)
            .where(CommissionAuditEntry.record_id == record_id)
            .order_by(CommissionAuditEntry.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
