"""
Commission reconciler.

Read-mostly batch scan comparing the denormalized user totals with what the
ledger and deposit history say they should be. It reports drift and never
overwrites a stored total; fixes go through the repair service.

The scan pages by user id, takes no locks and can persist its position in a
named cursor, so it may be interrupted at any page and resumed later.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import Row
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.settings import settings
from referral_engine.models.enums import CommissionSourceKind, DiscrepancyKind
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from referral_engine.repositories.deposit_transaction_repository import (
    DepositTransactionRepository,
)
from referral_engine.repositories.reconciliation_cursor_repository import (
    ReconciliationCursorRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService, log_operation
from referral_engine.services.commission.distributor import CommissionDistributor
from referral_engine.services.commission.tier_table import load_tier_rate_table
from referral_engine.utils.decimal_utils import to_decimal
from referral_engine.utils.exceptions import UserNotFoundError


@dataclass(frozen=True)
class ReconcileScope:
    """
    What a reconciliation run covers.

    Attributes:
        user_id: Check a single user (None for all users)
        after_user_id: Start after this user id
        batch_size: Users per page (defaults to settings.reconcile_batch_size)
        max_batches: Stop after this many pages (None for no limit)
        backfill: Distribute deposits of referred users that have no commissions
        cursor_name: Persist the position under this name after each page
        resume: Start from the stored cursor position instead of after_user_id
    """

    user_id: int | None = None
    after_user_id: int | None = None
    batch_size: int | None = None
    max_batches: int | None = None
    backfill: bool = False
    cursor_name: str | None = None
    resume: bool = False


@dataclass(frozen=True)
class Discrepancy:
    """One detected inconsistency."""

    kind: DiscrepancyKind
    user_id: int | None = None
    record_id: int | None = None
    expected: Decimal | None = None
    stored: Decimal | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def difference(self) -> Decimal | None:
        """Expected minus stored for total mismatches."""
        if self.expected is None or self.stored is None:
            return None
        return self.expected - self.stored

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and reports."""
        return {
            "kind": self.kind.value,
            "user_id": self.user_id,
            "record_id": self.record_id,
            "expected": str(self.expected) if self.expected is not None else None,
            "stored": str(self.stored) if self.stored is not None else None,
            "details": self.details,
        }


@dataclass
class ReconciliationReport:
    """Result of a reconciliation run."""

    discrepancies: list[Discrepancy] = field(default_factory=list)
    total_recomputed: Decimal = Decimal("0")
    total_stored: Decimal = Decimal("0")
    users_scanned: int = 0
    next_cursor: int | None = None
    backfilled_events: int = 0
    backfilled_records: int = 0

    @property
    def is_clean(self) -> bool:
        """True when nothing was found."""
        return not self.discrepancies

    @property
    def completed(self) -> bool:
        """True when the scan reached the last user."""
        return self.next_cursor is None

    def by_kind(self, kind: DiscrepancyKind) -> list[Discrepancy]:
        """Discrepancies of one kind."""
        return [item for item in self.discrepancies if item.kind == kind]

    def summary(self) -> dict[str, int]:
        """Count of discrepancies per kind."""
        counts: dict[str, int] = {}
        for item in self.discrepancies:
            counts[item.kind.value] = counts.get(item.kind.value, 0) + 1
        return counts


class CommissionReconciler(BaseService):
    """Detects drift between the ledger and user totals."""

    def __init__(
        self,
        session: AsyncSession,
        distributor: CommissionDistributor | None = None,
        epsilon: Decimal | None = None,
    ) -> None:
        """
        Initialize reconciler.

        Args:
            session: Database session
            distributor: Used by backfill mode
            epsilon: Tolerated absolute difference (defaults to settings)
        """
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.record_repo = CommissionRecordRepository(session)
        self.deposit_repo = DepositTransactionRepository(session)
        self.cursor_repo = ReconciliationCursorRepository(session)
        self.distributor = distributor or CommissionDistributor(session)
        self.epsilon = settings.reconcile_epsilon if epsilon is None else epsilon

    @log_operation
    async def reconcile(
        self, scope: ReconcileScope | None = None
    ) -> ReconciliationReport:
        """
        Run a reconciliation pass.

        Args:
            scope: What to check (all users from the start if omitted)

        Returns:
            Report of discrepancies and totals; next_cursor is set when the
            run stopped early because of max_batches

        Raises:
            UserNotFoundError: Single-user scope for a missing user
        """
        scope = scope or ReconcileScope()
        report = ReconciliationReport()

        if scope.user_id is not None:
            row = await self.user_repo.get_totals(scope.user_id)
            if row is None:
                raise UserNotFoundError(f"User {scope.user_id} not found")
            await self._check_structure(report, user_id=scope.user_id)
            await self._process_page(report, [row], scope.backfill)
            self._log_report(report, scope)
            return report

        batch_size = scope.batch_size or settings.reconcile_batch_size
        after_user_id = scope.after_user_id
        if scope.resume and scope.cursor_name:
            after_user_id = await self.cursor_repo.get_position(scope.cursor_name)

        # Ledger-wide checks run once, at the start of a full pass
        if after_user_id is None:
            await self._check_structure(report)

        batches = 0
        while True:
            if scope.max_batches is not None and batches >= scope.max_batches:
                report.next_cursor = after_user_id
                break

            # One extra row tells whether another page follows
            rows = await self.user_repo.get_totals_page_after(
                after_user_id, batch_size + 1
            )
            has_more = len(rows) > batch_size
            rows = rows[:batch_size]
            if not rows:
                break

            await self._process_page(report, rows, scope.backfill)
            after_user_id = rows[-1].id
            batches += 1

            if scope.cursor_name:
                await self.cursor_repo.save_position(scope.cursor_name, after_user_id)
                await self.commit()

            if not has_more:
                break

        if scope.cursor_name and report.completed:
            await self.cursor_repo.reset(scope.cursor_name)
            await self.commit()

        self._log_report(report, scope)
        return report

    async def _process_page(
        self, report: ReconciliationReport, rows: list[Row], backfill: bool
    ) -> None:
        user_ids = {row.id for row in rows}

        if backfill:
            await self._backfill(report, rows)
            # Totals may have moved while backfilling
            rows = [
                fresh
                for fresh in [await self.user_repo.get_totals(row.id) for row in rows]
                if fresh is not None
            ]

        ledger_earnings = await self.record_repo.sum_paid_by_referrers(user_ids)
        confirmed_deposits = await self.deposit_repo.sum_confirmed_by_users(user_ids)

        for row in rows:
            report.users_scanned += 1

            expected = ledger_earnings.get(row.id, Decimal("0"))
            stored = to_decimal(row.total_earnings)
            report.total_recomputed += expected
            report.total_stored += stored
            if abs(expected - stored) > self.epsilon:
                report.discrepancies.append(
                    Discrepancy(
                        kind=DiscrepancyKind.EARNINGS_MISMATCH,
                        user_id=row.id,
                        expected=expected,
                        stored=stored,
                    )
                )

            expected_deposit = confirmed_deposits.get(row.id, Decimal("0"))
            stored_deposit = to_decimal(row.total_personal_deposit)
            if abs(expected_deposit - stored_deposit) > self.epsilon:
                report.discrepancies.append(
                    Discrepancy(
                        kind=DiscrepancyKind.DEPOSIT_MISMATCH,
                        user_id=row.id,
                        expected=expected_deposit,
                        stored=stored_deposit,
                    )
                )

        for record in await self.record_repo.find_uncredited(user_ids):
            report.discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.UNCREDITED_COMMISSION,
                    user_id=record.referrer_id,
                    record_id=record.id,
                    expected=to_decimal(record.commission_amount),
                    details={"source_event_id": record.source_event_id},
                )
            )

    async def _backfill(
        self, report: ReconciliationReport, rows: list[Row]
    ) -> None:
        referred_ids = {row.id for row in rows if row.referred_by_id is not None}
        if not referred_ids:
            return

        with_records = await self.record_repo.get_depositors_with_records(
            referred_ids
        )
        candidates = referred_ids - with_records
        deposits = await self.deposit_repo.list_confirmed_for_users(candidates)
        if not deposits:
            return

        rates = await load_tier_rate_table(self.session)
        for deposit in deposits:
            result = await self.distributor.distribute(
                depositor_id=deposit.user_id,
                deposit_amount=to_decimal(deposit.amount),
                source_kind=CommissionSourceKind.BACKFILL,
                source_event_id=deposit.source_event_id,
                confirmed_at=deposit.confirmed_at,
                rates=rates,
            )
            if not result.already_processed and result.records:
                report.backfilled_events += 1
                report.backfilled_records += len(result.records)

        self.logger.info(
            "Backfill distributed missing commissions",
            extra={
                "depositors": len(candidates),
                "deposits": len(deposits),
                "records": report.backfilled_records,
            },
        )

    async def _check_structure(
        self, report: ReconciliationReport, user_id: int | None = None
    ) -> None:
        orphans = await self.record_repo.find_orphaned(user_id)
        if orphans:
            involved = {r.referrer_id for r in orphans} | {r.depositor_id for r in orphans}
            existing = await self.user_repo.get_existing_ids(involved)
            for record in orphans:
                report.discrepancies.append(
                    Discrepancy(
                        kind=DiscrepancyKind.ORPHANED_COMMISSION,
                        user_id=record.referrer_id,
                        record_id=record.id,
                        details={
                            "missing_referrer": record.referrer_id not in existing,
                            "missing_depositor": record.depositor_id not in existing,
                        },
                    )
                )

        for record in await self.record_repo.find_invalid_levels(user_id):
            report.discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.INVALID_LEVEL,
                    user_id=record.referrer_id,
                    record_id=record.id,
                    details={"level": record.level},
                )
            )

        for record in await self.record_repo.find_self_commissions(user_id):
            report.discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.SELF_COMMISSION,
                    user_id=record.referrer_id,
                    record_id=record.id,
                )
            )

        for referrer_id, depositor_id, level, event_id, occurrences in (
            await self.record_repo.find_duplicate_keys(user_id)
        ):
            report.discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.DUPLICATE_KEY,
                    user_id=referrer_id,
                    details={
                        "depositor_id": depositor_id,
                        "level": level,
                        "source_event_id": event_id,
                        "occurrences": occurrences,
                    },
                )
            )

    def _log_report(
        self, report: ReconciliationReport, scope: ReconcileScope
    ) -> None:
        extra = {
            "user_id": scope.user_id,
            "users_scanned": report.users_scanned,
            "total_recomputed": str(report.total_recomputed),
            "total_stored": str(report.total_stored),
            "discrepancies": report.summary(),
            "next_cursor": report.next_cursor,
            "backfilled_records": report.backfilled_records,
        }
        if report.is_clean:
            self.logger.info("Reconciliation finished, no discrepancies", extra=extra)
        else:
            self.logger.warning(
                "Reconciliation found discrepancies", extra=extra
            )
