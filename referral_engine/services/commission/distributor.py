"""
Commission distributor.

Turns one confirmed deposit into up to three commission records, one per
upline referrer, and credits the referrers. Safe to call again for the same
deposit event: the storage unique constraint on
(referrer_id, depositor_id, level, source_event_id) decides which delivery
wins.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.settings import settings
from referral_engine.models.commission_record import CommissionRecord
from referral_engine.models.enums import CommissionSourceKind, CommissionStatus
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from referral_engine.services.base_service import BaseService
from referral_engine.services.commission.calculator import commission_amount
from referral_engine.services.commission.chain_manager import (
    ChainLink,
    ReferralChainManager,
)
from referral_engine.services.commission.earnings_projector import (
    EarningsProjector,
)
from referral_engine.services.commission.tier_table import (
    TierRateTable,
    load_tier_rate_table,
)
from referral_engine.utils.datetime_utils import ensure_utc, utc_now
from referral_engine.utils.decimal_utils import to_decimal
from referral_engine.utils.exceptions import (
    DuplicateDistributionError,
    InvalidTierError,
    PersistenceError,
)

if TYPE_CHECKING:
    from referral_engine.services.commission.notifications import TierChangeSink


@dataclass(frozen=True)
class DistributionContext:
    """Per-call values shared by every level of one distribution."""

    depositor_id: int
    deposit_amount: Decimal
    source_kind: CommissionSourceKind
    source_event_id: str
    confirmed_at: datetime


@dataclass
class DistributionResult:
    """Result of a distribution call."""

    records: list[CommissionRecord]
    total_distributed: Decimal
    already_processed: bool = False
    skipped_levels: list[int] = field(default_factory=list)
    credited_count: int = 0


def legacy_event_id(
    depositor_id: int,
    source_kind: CommissionSourceKind,
    deposit_amount: Decimal,
    confirmed_at: datetime,
    window_seconds: int,
) -> str:
    """
    Deterministic event id for deposits delivered without one.

    Deliveries of the same deposit inside one window bucket map to the same
    id, so the unique constraint still rejects concurrent duplicates.
    """
    timestamp = int(ensure_utc(confirmed_at).timestamp())
    bucket = timestamp // window_seconds if window_seconds > 0 else timestamp
    amount = format(deposit_amount.normalize(), "f")
    return f"legacy:{depositor_id}:{source_kind.value}:{amount}:{bucket}"


class CommissionDistributor(BaseService):
    """Distributes deposit commissions up the referral chain."""

    def __init__(
        self,
        session: AsyncSession,
        sink: "TierChangeSink | None" = None,
        max_levels: int | None = None,
        legacy_window_seconds: int | None = None,
    ) -> None:
        """
        Initialize commission distributor.

        Args:
            session: Database session
            sink: Receiver of tier change events
            max_levels: Chain depth (defaults to settings.commission_max_levels)
            legacy_window_seconds: Dedup window for deposits without an event id
        """
        super().__init__(session)
        self.record_repo = CommissionRecordRepository(session)
        self.chain_manager = ReferralChainManager(session)
        self.projector = EarningsProjector(session, sink=sink)
        self.max_levels = max_levels or settings.commission_max_levels
        self.legacy_window_seconds = (
            settings.legacy_dedup_window_seconds
            if legacy_window_seconds is None
            else legacy_window_seconds
        )

    async def distribute(
        self,
        depositor_id: int,
        deposit_amount: Decimal,
        source_kind: CommissionSourceKind | str,
        source_event_id: str | None = None,
        confirmed_at: datetime | None = None,
        rates: TierRateTable | None = None,
    ) -> DistributionResult:
        """
        Distribute commissions for one deposit event.

        Args:
            depositor_id: User who deposited
            deposit_amount: Confirmed deposit amount
            source_kind: Kind of event
            source_event_id: Upstream event id (None for legacy events)
            confirmed_at: When the deposit was confirmed
            rates: Rate snapshot (loaded from the database if omitted)

        Returns:
            DistributionResult; already_processed is True when the event had
            been distributed before and the existing records are returned

        Raises:
            PersistenceError: Records could not be stored; safe to retry
            ValueError: Unknown source kind
        """
        source_kind = CommissionSourceKind(source_kind)
        deposit_amount = to_decimal(deposit_amount)
        confirmed_at = ensure_utc(confirmed_at) if confirmed_at else utc_now()

        if deposit_amount <= 0:
            self.logger.warning(
                "Non-positive deposit amount, nothing to distribute",
                extra={"depositor_id": depositor_id, "amount": str(deposit_amount)},
            )
            return DistributionResult(records=[], total_distributed=Decimal("0"))

        try:
            if source_event_id is None:
                existing = await self.record_repo.find_legacy_matches(
                    depositor_id,
                    source_kind,
                    deposit_amount,
                    confirmed_at - timedelta(seconds=self.legacy_window_seconds),
                    confirmed_at + timedelta(seconds=self.legacy_window_seconds),
                )
                source_event_id = legacy_event_id(
                    depositor_id,
                    source_kind,
                    deposit_amount,
                    confirmed_at,
                    self.legacy_window_seconds,
                )
            else:
                existing = await self.record_repo.find_by_event(
                    depositor_id, source_event_id
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to check previous distribution of {source_event_id}"
            ) from e

        if existing:
            self.logger.info(
                "Deposit event already distributed",
                extra={
                    "depositor_id": depositor_id,
                    "source_event_id": source_event_id,
                    "records": len(existing),
                },
            )
            return self._result(existing, already_processed=True)

        if rates is None:
            rates = await load_tier_rate_table(self.session)

        chain = await self.chain_manager.upline_chain(depositor_id, self.max_levels)
        if not chain:
            self.logger.debug(
                "No referrers found for depositor",
                extra={"depositor_id": depositor_id},
            )
            return DistributionResult(records=[], total_distributed=Decimal("0"))

        context = DistributionContext(
            depositor_id=depositor_id,
            deposit_amount=deposit_amount,
            source_kind=source_kind,
            source_event_id=source_event_id,
            confirmed_at=confirmed_at,
        )

        records: list[CommissionRecord] = []
        skipped_levels: list[int] = []

        try:
            for link in chain:
                try:
                    rate = rates.rate_for(link.referrer_tier, link.level)
                    amount = commission_amount(
                        deposit_amount, link.referrer_tier, link.level, rates
                    )
                except InvalidTierError as e:
                    skipped_levels.append(link.level)
                    self.logger.warning(
                        "Invalid referrer tier, level skipped",
                        extra={
                            "depositor_id": depositor_id,
                            "referrer_id": link.referrer_id,
                            "level": link.level,
                            "tier": str(e.tier),
                        },
                    )
                    continue

                if amount <= 0:
                    continue

                records.append(await self._insert_record(context, link, rate, amount))

            await self.commit()

        except DuplicateDistributionError:
            await self.rollback()
            winners = await self.record_repo.find_by_event(
                depositor_id, source_event_id
            )
            self.logger.info(
                "Concurrent delivery already distributed the event",
                extra={
                    "depositor_id": depositor_id,
                    "source_event_id": source_event_id,
                    "records": len(winners),
                },
            )
            return self._result(winners, already_processed=True)

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to persist commission records",
                extra={
                    "depositor_id": depositor_id,
                    "source_event_id": source_event_id,
                    "error": str(e),
                },
            )
            raise PersistenceError(
                f"Failed to persist commissions for event {source_event_id}"
            ) from e

        result = self._result(records)
        credited = await self._credit_records(records)

        result.skipped_levels = skipped_levels
        result.credited_count = credited

        self.logger.info(
            "Commissions distributed",
            extra={
                "depositor_id": depositor_id,
                "source_event_id": source_event_id,
                "source_kind": source_kind.value,
                "deposit_amount": str(deposit_amount),
                "total_distributed": str(result.total_distributed),
                "records": len(records),
                "credited": credited,
                "skipped_levels": skipped_levels,
            },
        )
        return result

    async def _insert_record(
        self,
        context: DistributionContext,
        link: ChainLink,
        rate: Decimal,
        amount: Decimal,
    ) -> CommissionRecord:
        now = utc_now()
        record = CommissionRecord(
            referrer_id=link.referrer_id,
            depositor_id=context.depositor_id,
            level=link.level,
            deposit_amount=context.deposit_amount,
            rate=rate,
            commission_amount=amount,
            source_kind=context.source_kind,
            source_event_id=context.source_event_id,
            event_confirmed_at=context.confirmed_at,
            status=CommissionStatus.PAID,
            paid_at=now,
            created_at=now,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError as e:
            raise DuplicateDistributionError(
                context.source_event_id, context.depositor_id
            ) from e
        return record

    async def _credit_records(self, records: list[CommissionRecord]) -> int:
        credited = 0
        for record in records:
            record_id, referrer_id = record.id, record.referrer_id
            try:
                if await self.projector.credit_commission(record):
                    credited += 1
            except SQLAlchemyError as e:
                # Record stays with credited_at NULL until repaired
                self.logger.error(
                    "Commission credit failed, left owed",
                    extra={
                        "record_id": record_id,
                        "referrer_id": referrer_id,
                        "error": str(e),
                    },
                )
                if not self.session.is_active:
                    await self.rollback()
                    break
        return credited

    @staticmethod
    def _result(
        records: list[CommissionRecord], already_processed: bool = False
    ) -> DistributionResult:
        total = sum(
            (to_decimal(record.commission_amount) for record in records),
            Decimal("0"),
        )
        return DistributionResult(
            records=records,
            total_distributed=total,
            already_processed=already_processed,
        )
