"""
Commission record repository.

Data access layer for CommissionRecord model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.constants import REFERRAL_LEVELS
from referral_engine.models.commission_record import CommissionRecord
from referral_engine.models.enums import CommissionSourceKind, CommissionStatus
from referral_engine.models.user import User
from referral_engine.repositories.base import BaseRepository
from referral_engine.utils.datetime_utils import utc_now
from referral_engine.utils.decimal_utils import to_decimal


class CommissionRecordRepository(BaseRepository[CommissionRecord]):
    """Commission record repository with ledger queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission record repository."""
        super().__init__(CommissionRecord, session)

    async def find_by_event(
        self, depositor_id: int, source_event_id: str
    ) -> list[CommissionRecord]:
        """
        Get records written for a deposit event.

        Args:
            depositor_id: Original depositor
            source_event_id: Deposit event id

        Returns:
            Records ordered by level
        """
        stmt = (
            select(CommissionRecord)
            .where(
                CommissionRecord.depositor_id == depositor_id,
                CommissionRecord.source_event_id == source_event_id,
            )
            .order_by(CommissionRecord.level)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_legacy_matches(
        self,
        depositor_id: int,
        source_kind: CommissionSourceKind,
        deposit_amount: Decimal,
        window_start: datetime,
        window_end: datetime,
    ) -> list[CommissionRecord]:
        """
        Get records of a legacy event that carried no event id.

        Matches on depositor, source kind and deposit amount, with the
        deposit confirmation time inside the given window.

        Returns:
            Records ordered by level
        """
        stmt = (
            select(CommissionRecord)
            .where(
                CommissionRecord.depositor_id == depositor_id,
                CommissionRecord.source_kind == source_kind,
                CommissionRecord.deposit_amount == deposit_amount,
                CommissionRecord.event_confirmed_at >= window_start,
                CommissionRecord.event_confirmed_at <= window_end,
            )
            .order_by(CommissionRecord.level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_credited(self, record_id: int) -> bool:
        """
        Stamp credited_at if it is still empty.

        Returns:
            True if this call stamped the record
        """
        stmt = (
            update(CommissionRecord)
            .where(
                CommissionRecord.id == record_id,
                CommissionRecord.credited_at.is_(None),
                CommissionRecord.status == CommissionStatus.PAID,
            )
            .values(credited_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_paid(self, record_id: int) -> bool:
        """
        Move a record from pending to paid.

        Returns:
            True if the record was pending and is now paid
        """
        stmt = (
            update(CommissionRecord)
            .where(
                CommissionRecord.id == record_id,
                CommissionRecord.status == CommissionStatus.PENDING,
            )
            .values(status=CommissionStatus.PAID, paid_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def find_uncredited(
        self, referrer_ids: set[int] | None = None
    ) -> list[CommissionRecord]:
        """
        Get paid records whose earnings increment is still owed.

        Args:
            referrer_ids: Restrict to these referrers (None for all)

        Returns:
            Records ordered by id
        """
        stmt = (
            select(CommissionRecord)
            .where(
                CommissionRecord.status == CommissionStatus.PAID,
                CommissionRecord.credited_at.is_(None),
            )
            .order_by(CommissionRecord.id)
        )
        if referrer_ids is not None:
            stmt = stmt.where(CommissionRecord.referrer_id.in_(referrer_ids))

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_paid_by_referrers(
        self, referrer_ids: set[int]
    ) -> dict[int, Decimal]:
        """
        Sum paid commission amounts per referrer in a single query.

        Args:
            referrer_ids: Referrers to aggregate

        Returns:
            Dict referrer_id -> sum (referrers without records omitted)
        """
        if not referrer_ids:
            return {}

        stmt = (
            select(
                CommissionRecord.referrer_id,
                func.coalesce(
                    func.sum(CommissionRecord.commission_amount), 0
                ).label("total"),
            )
            .where(
                CommissionRecord.referrer_id.in_(referrer_ids),
                CommissionRecord.status == CommissionStatus.PAID,
            )
            .group_by(CommissionRecord.referrer_id)
        )
        result = await self.session.execute(stmt)
        return {row.referrer_id: to_decimal(row.total) for row in result.all()}

    async def sum_paid_for_referrer(self, referrer_id: int) -> Decimal:
        """Sum paid commission amounts of one referrer."""
        totals = await self.sum_paid_by_referrers({referrer_id})
        return totals.get(referrer_id, Decimal("0"))

    async def get_depositors_with_records(
        self, depositor_ids: set[int]
    ) -> set[int]:
        """
        Get which depositors already triggered at least one commission.

        Args:
            depositor_ids: Candidate depositors

        Returns:
            Subset of depositor ids having records
        """
        if not depositor_ids:
            return set()

        stmt = (
            select(CommissionRecord.depositor_id)
            .where(CommissionRecord.depositor_id.in_(depositor_ids))
            .distinct()
        )
        result = await self.session.execute(stmt)
        return {row[0] for row in result.all()}

    async def find_orphaned(
        self, user_id: int | None = None
    ) -> list[CommissionRecord]:
        """
        Get records whose referrer or depositor no longer exists.

        Args:
            user_id: Restrict to records involving this user

        Returns:
            Orphaned records ordered by id
        """
        existing_ids = select(User.id)
        stmt = (
            select(CommissionRecord)
            .where(
                or_(
                    CommissionRecord.referrer_id.not_in(existing_ids),
                    CommissionRecord.depositor_id.not_in(existing_ids),
                )
            )
            .order_by(CommissionRecord.id)
        )
        if user_id is not None:
            stmt = stmt.where(self._involves(user_id))

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_invalid_levels(
        self, user_id: int | None = None
    ) -> list[CommissionRecord]:
        """Get records with a level outside 1-3 (legacy imports)."""
        stmt = (
            select(CommissionRecord)
            .where(CommissionRecord.level.not_in(REFERRAL_LEVELS))
            .order_by(CommissionRecord.id)
        )
        if user_id is not None:
            stmt = stmt.where(self._involves(user_id))

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_self_commissions(
        self, user_id: int | None = None
    ) -> list[CommissionRecord]:
        """Get records where a user was paid for their own deposit."""
        stmt = (
            select(CommissionRecord)
            .where(CommissionRecord.referrer_id == CommissionRecord.depositor_id)
            .order_by(CommissionRecord.id)
        )
        if user_id is not None:
            stmt = stmt.where(self._involves(user_id))

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_duplicate_keys(
        self, user_id: int | None = None
    ) -> list[tuple[int, int, int, str, int]]:
        """
        Get dedup keys that occur more than once.

        Only possible for data written before the unique constraint existed.

        Returns:
            Tuples (referrer_id, depositor_id, level, source_event_id, count)
        """
        stmt = (
            select(
                CommissionRecord.referrer_id,
                CommissionRecord.depositor_id,
                CommissionRecord.level,
                CommissionRecord.source_event_id,
                func.count(CommissionRecord.id).label("occurrences"),
            )
            .group_by(
                CommissionRecord.referrer_id,
                CommissionRecord.depositor_id,
                CommissionRecord.level,
                CommissionRecord.source_event_id,
            )
            .having(func.count(CommissionRecord.id) > 1)
        )
        if user_id is not None:
            stmt = stmt.where(self._involves(user_id))

        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def query(
        self,
        page: int = 1,
        per_page: int = 100,
        **filters: Any,
    ) -> tuple[list[CommissionRecord], int]:
        """
        Filtered, paginated listing for operators.

        Supported filters: referrer_id, depositor_id, level, status,
        source_kind, source_event_id, created_from, created_to.

        Returns:
            Tuple of (records newest first, total_count)
        """
        conditions = self._build_conditions(filters)

        count_stmt = select(func.count(CommissionRecord.id)).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(CommissionRecord)
            .where(*conditions)
            .order_by(CommissionRecord.created_at.desc(), CommissionRecord.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def iter_filtered(
        self, batch_size: int = 1000, **filters: Any
    ) -> list[CommissionRecord]:
        """
        Get all records matching filters in id order, fetched in batches.

        Returns:
            Matching records
        """
        conditions = self._build_conditions(filters)
        records: list[CommissionRecord] = []
        last_id = 0

        while True:
            stmt = (
                select(CommissionRecord)
                .where(*conditions, CommissionRecord.id > last_id)
                .order_by(CommissionRecord.id)
                .limit(batch_size)
            )
            batch = list((await self.session.execute(stmt)).scalars().all())
            if not batch:
                break
            records.extend(batch)
            last_id = batch[-1].id

        return records

    async def get_stats_rows(
        self, referrer_id: int
    ) -> list[tuple[int, CommissionSourceKind, CommissionStatus, Decimal, int]]:
        """
        Aggregate a referrer's records by level, source and status.

        Returns:
            Tuples (level, source_kind, status, amount, count)
        """
        stmt = (
            select(
                CommissionRecord.level,
                CommissionRecord.source_kind,
                CommissionRecord.status,
                func.coalesce(func.sum(CommissionRecord.commission_amount), 0),
                func.count(CommissionRecord.id),
            )
            .where(CommissionRecord.referrer_id == referrer_id)
            .group_by(
                CommissionRecord.level,
                CommissionRecord.source_kind,
                CommissionRecord.status,
            )
        )
        result = await self.session.execute(stmt)
        return [
            (row[0], row[1], row[2], to_decimal(row[3]), row[4])
            for row in result.all()
        ]

    @staticmethod
    def _involves(user_id: int):
        return or_(
            CommissionRecord.referrer_id == user_id,
            CommissionRecord.depositor_id == user_id,
        )

    @staticmethod
    def _build_conditions(filters: dict[str, Any]) -> list:
        conditions = []
        for column in (
            "referrer_id",
            "depositor_id",
            "level",
            "status",
            "source_kind",
            "source_event_id",
        ):
            value = filters.get(column)
            if value is not None:
                conditions.append(getattr(CommissionRecord, column) == value)

        if filters.get("created_from") is not None:
            conditions.append(CommissionRecord.created_at >= filters["created_from"])
        if filters.get("created_to") is not None:
            conditions.append(CommissionRecord.created_at <= filters["created_to"])

        return [and_(*conditions)] if conditions else []
