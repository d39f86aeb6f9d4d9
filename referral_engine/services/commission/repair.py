"""
Explicit repair and correction operations.

Every change made here leaves an audit entry. Stored earnings are never
overwritten: missing credits are applied record by record and any
remaining drift is closed with an atomic delta.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.constants import REFERRAL_LEVELS
from referral_engine.models.commission_record import CommissionRecord
from referral_engine.models.enums import AuditAction, CommissionSourceKind
from referral_engine.repositories.commission_audit_repository import (
    CommissionAuditRepository,
)
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.base_service import BaseService, transaction
from referral_engine.services.commission.earnings_projector import (
    EarningsProjector,
)
from referral_engine.utils.datetime_utils import utc_now
from referral_engine.utils.decimal_utils import quantize_money, to_decimal
from referral_engine.utils.exceptions import (
    CommissionRecordNotFoundError,
    UserNotFoundError,
)

# Fields an operator may change through correct_record
CORRECTABLE_FIELDS = frozenset(
    {
        "referrer_id",
        "depositor_id",
        "level",
        "deposit_amount",
        "rate",
        "commission_amount",
        "source_kind",
        "notes",
    }
)


class CommissionRepairService(BaseService):
    """Audited fixes for drift reported by reconciliation."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repair service."""
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.record_repo = CommissionRecordRepository(session)
        self.audit_repo = CommissionAuditRepository(session)
        self.projector = EarningsProjector(session)

    async def apply_missing_credits(
        self,
        operator: str,
        reason: str,
        user_id: int | None = None,
    ) -> list[int]:
        """
        Credit every paid record whose earnings increment is still owed.

        Args:
            operator: Admin or job doing the repair
            reason: Audit reason
            user_id: Restrict to records of this referrer

        Returns:
            Ids of records credited by this call
        """
        referrer_ids = {user_id} if user_id is not None else None
        credited_ids: list[int] = []

        for record in await self.record_repo.find_uncredited(referrer_ids):
            if not await self.projector.credit_commission(record, commit=False):
                continue

            await self.audit_repo.log(
                action=AuditAction.CREDIT_APPLIED,
                operator=operator,
                reason=reason,
                record_id=record.id,
                user_id=record.referrer_id,
                payload={"amount": str(record.commission_amount)},
            )
            await self.commit()
            credited_ids.append(record.id)

        if credited_ids:
            self.logger.info(
                "Missing commission credits applied",
                extra={
                    "user_id": user_id,
                    "records": credited_ids,
                    "operator": operator,
                },
            )
        return credited_ids

    async def repair_earnings(
        self, user_id: int, operator: str, reason: str
    ) -> dict[str, Any]:
        """
        Bring a user's total_earnings back in line with the ledger.

        Owed credits are applied first. If a difference remains it is added
        as a single atomic delta and recorded with before/after values.

        Args:
            user_id: User to repair
            operator: Admin or job doing the repair
            reason: Audit reason

        Returns:
            Dict with before, after, ledger_total, delta, credited_records

        Raises:
            UserNotFoundError: User does not exist
        """
        before_row = await self.user_repo.get_totals(user_id)
        if before_row is None:
            raise UserNotFoundError(f"User {user_id} not found")
        before = to_decimal(before_row.total_earnings)

        credited = await self.apply_missing_credits(operator, reason, user_id=user_id)

        ledger_total = await self.record_repo.sum_paid_for_referrer(user_id)
        current = to_decimal((await self.user_repo.get_totals(user_id)).total_earnings)
        delta = ledger_total - current

        if delta != 0:
            await self.user_repo.increment_earnings(user_id, delta)
            await self.audit_repo.log(
                action=AuditAction.EARNINGS_REPAIRED,
                operator=operator,
                reason=reason,
                user_id=user_id,
                payload={
                    "before": str(current),
                    "after": str(current + delta),
                    "ledger_total": str(ledger_total),
                    "delta": str(delta),
                },
            )
            await self.commit()

            self.logger.warning(
                "User earnings repaired",
                extra={
                    "user_id": user_id,
                    "before": str(current),
                    "delta": str(delta),
                    "operator": operator,
                },
            )

        return {
            "user_id": user_id,
            "before": before,
            "after": current + delta,
            "ledger_total": ledger_total,
            "delta": delta,
            "credited_records": credited,
        }

    @transaction
    async def correct_record(
        self, record_id: int, operator: str, reason: str, **changes: Any
    ) -> CommissionRecord:
        """
        Replace a commission record with a corrected copy.

        The old record is deleted and a new one created; both steps are
        audited. User totals are not touched here: run reconciliation and
        repair_earnings afterwards.

        Args:
            record_id: Record to correct
            operator: Admin doing the correction
            reason: Audit reason
            **changes: New values for referrer_id, depositor_id, level,
                deposit_amount, rate, commission_amount, source_kind, notes

        Returns:
            Replacement record

        Raises:
            CommissionRecordNotFoundError: No such record
            ValueError: Unknown field or invalid value
        """
        unknown = set(changes) - CORRECTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be corrected: {sorted(unknown)}")

        if "level" in changes and changes["level"] not in REFERRAL_LEVELS:
            raise ValueError(f"Commission level must be one of {REFERRAL_LEVELS}")
        if "source_kind" in changes:
            changes["source_kind"] = CommissionSourceKind(changes["source_kind"])
        for money_field in ("deposit_amount", "rate"):
            if money_field in changes:
                changes[money_field] = to_decimal(changes[money_field])
        if "commission_amount" in changes:
            changes["commission_amount"] = quantize_money(
                to_decimal(changes["commission_amount"])
            )

        old = await self.record_repo.get_by_id(record_id, fresh=True)
        if old is None:
            raise CommissionRecordNotFoundError(
                f"Commission record {record_id} not found"
            )

        snapshot = old.to_dict()
        values = {
            "referrer_id": old.referrer_id,
            "depositor_id": old.depositor_id,
            "level": old.level,
            "deposit_amount": to_decimal(old.deposit_amount),
            "rate": to_decimal(old.rate),
            "commission_amount": to_decimal(old.commission_amount),
            "source_kind": old.source_kind,
            "source_event_id": old.source_event_id,
            "event_confirmed_at": old.event_confirmed_at,
            "status": old.status,
            "paid_at": old.paid_at,
            "notes": old.notes,
        }
        values.update(changes)
        # The old credit stays in total_earnings; any difference it leaves
        # shows up as an earnings mismatch for repair_earnings
        values["credited_at"] = old.credited_at

        await self.record_repo.delete(record_id)
        await self.audit_repo.log(
            action=AuditAction.RECORD_DELETED,
            operator=operator,
            reason=reason,
            record_id=record_id,
            user_id=snapshot["referrer_id"],
            payload={"before": snapshot},
        )

        replacement = await self.record_repo.create(**values, created_at=utc_now())
        await self.audit_repo.log(
            action=AuditAction.RECORD_CREATED,
            operator=operator,
            reason=reason,
            record_id=replacement.id,
            user_id=replacement.referrer_id,
            payload={"replaces": record_id, "after": replacement.to_dict()},
        )

        self.logger.warning(
            "Commission record corrected",
            extra={
                "old_record_id": record_id,
                "new_record_id": replacement.id,
                "changes": sorted(changes),
                "operator": operator,
            },
        )
        return replacement
