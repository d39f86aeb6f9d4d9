"""
Commission ledger.

Read side of the commission records plus the only allowed status change,
pending -> paid.
"""

import csv
import io
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.commission_record import CommissionRecord
from referral_engine.models.enums import AuditAction, CommissionStatus
from referral_engine.repositories.commission_audit_repository import (
    CommissionAuditRepository,
)
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from referral_engine.services.base_service import BaseService
from referral_engine.services.commission.earnings_projector import (
    EarningsProjector,
)
from referral_engine.utils.exceptions import (
    CommissionRecordNotFoundError,
    InvalidStatusTransitionError,
)

CSV_COLUMNS = (
    "id",
    "referrer_id",
    "depositor_id",
    "level",
    "deposit_amount",
    "rate",
    "commission_amount",
    "source_kind",
    "source_event_id",
    "event_confirmed_at",
    "status",
    "paid_at",
    "credited_at",
    "created_at",
    "notes",
)


class CommissionLedger(BaseService):
    """Queries, exports and payout of commission records."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission ledger."""
        super().__init__(session)
        self.record_repo = CommissionRecordRepository(session)
        self.audit_repo = CommissionAuditRepository(session)
        self.projector = EarningsProjector(session)

    async def get_record(self, record_id: int) -> CommissionRecord:
        """
        Get record by id.

        Raises:
            CommissionRecordNotFoundError: No such record
        """
        record = await self.record_repo.get_by_id(record_id, fresh=True)
        if record is None:
            raise CommissionRecordNotFoundError(
                f"Commission record {record_id} not found"
            )
        return record

    async def get_event_records(
        self, depositor_id: int, source_event_id: str
    ) -> list[CommissionRecord]:
        """Get records written for one deposit event."""
        return await self.record_repo.find_by_event(depositor_id, source_event_id)

    async def query(
        self, page: int = 1, per_page: int = 50, **filters: Any
    ) -> dict:
        """
        Paginated, filtered listing of records.

        Args:
            page: Page number (1-based)
            per_page: Items per page
            **filters: referrer_id, depositor_id, level, status, source_kind,
                source_event_id, created_from, created_to

        Returns:
            Dict with records, total, page, pages
        """
        page = max(page, 1)
        records, total = await self.record_repo.query(
            page=page, per_page=per_page, **filters
        )
        pages = (total + per_page - 1) // per_page if total > 0 else 0

        return {
            "records": records,
            "total": total,
            "page": page,
            "pages": pages,
        }

    async def export_csv(self, **filters: Any) -> str:
        """
        Export records matching filters to CSV.

        Returns:
            CSV text with a header row, records in id order
        """
        records = await self.record_repo.iter_filtered(**filters)

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_COLUMNS)

        for record in records:
            row = record.to_dict()
            writer.writerow(
                ["" if row[column] is None else row[column] for column in CSV_COLUMNS]
            )

        self.logger.info(
            "Commission records exported",
            extra={"records": len(records), "filters": sorted(filters)},
        )
        return output.getvalue()

    async def mark_paid(
        self, record_id: int, operator: str, reason: str = "marked paid"
    ) -> CommissionRecord:
        """
        Move a pending record to paid and credit the referrer.

        Args:
            record_id: Record to pay out
            operator: Admin or job paying it
            reason: Audit reason

        Returns:
            Updated record

        Raises:
            CommissionRecordNotFoundError: No such record
            InvalidStatusTransitionError: Record is not pending
        """
        record = await self.get_record(record_id)

        if record.status != CommissionStatus.PENDING:
            raise InvalidStatusTransitionError(
                f"Commission record {record_id} is {record.status.value}, "
                f"only pending records can be paid"
            )

        if not await self.record_repo.mark_paid(record_id):
            raise InvalidStatusTransitionError(
                f"Commission record {record_id} was paid concurrently"
            )

        credited = await self.projector.credit_commission(record, commit=False)
        await self.audit_repo.log(
            action=AuditAction.RECORD_PAID,
            operator=operator,
            reason=reason,
            record_id=record_id,
            user_id=record.referrer_id,
            payload={
                "amount": str(record.commission_amount),
                "credited": credited,
            },
        )
        await self.commit()

        self.logger.info(
            "Commission marked as paid",
            extra={
                "record_id": record_id,
                "referrer_id": record.referrer_id,
                "amount": str(record.commission_amount),
                "credited": credited,
                "operator": operator,
            },
        )
        return await self.get_record(record_id)
