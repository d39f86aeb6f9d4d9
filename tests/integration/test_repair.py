"""
Integration tests for audited repair and correction operations.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from referral_engine.models import User
from referral_engine.models.enums import (
    AuditAction,
    CommissionSourceKind,
    DiscrepancyKind,
)
from referral_engine.repositories.commission_audit_repository import (
    CommissionAuditRepository,
)
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from referral_engine.services.commission import (
    CommissionDistributor,
    CommissionReconciler,
    CommissionRepairService,
    ReconcileScope,
)
from referral_engine.utils.decimal_utils import to_decimal
from referral_engine.utils.exceptions import CommissionRecordNotFoundError


async def distribute_without_credit(session, chain, monkeypatch, event_id="evt-owed"):
    """Distribute while every earnings update fails."""
    distributor = CommissionDistributor(session)

    async def failing_increment(user_id, amount):
        raise OperationalError("UPDATE users", {}, Exception("db down"))

    monkeypatch.setattr(
        distributor.projector.user_repo, "increment_earnings", failing_increment
    )
    return await distributor.distribute(
        chain["D"].id, Decimal("100"), CommissionSourceKind.GAS_FEE_TOPUP, event_id
    )


class TestMissingCredits:
    """Test crediting records whose earnings update was lost."""

    @pytest.mark.asyncio
    async def test_apply_missing_credits(
        self, session, make_chain, monkeypatch, stored_totals
    ):
        """Owed credits are applied once and audited."""
        chain = await make_chain()
        result = await distribute_without_credit(session, chain, monkeypatch)
        service = CommissionRepairService(session)

        credited = await service.apply_missing_credits("admin", "lost credits")

        assert sorted(credited) == sorted(record.id for record in result.records)
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("30")
        assert (await stored_totals(chain["A"]))["total_earnings"] == Decimal("5")

        audit_repo = CommissionAuditRepository(session)
        for record_id in credited:
            entries = await audit_repo.get_for_record(record_id)
            assert [entry.action for entry in entries] == [AuditAction.CREDIT_APPLIED]

        assert await service.apply_missing_credits("admin", "again") == []
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("30")

        report = await CommissionReconciler(session).reconcile()
        assert report.is_clean, report.summary()

    @pytest.mark.asyncio
    async def test_restricted_to_user(self, session, make_chain, monkeypatch, stored_totals):
        """Only the given referrer's records are credited."""
        chain = await make_chain()
        await distribute_without_credit(session, chain, monkeypatch)

        credited = await CommissionRepairService(session).apply_missing_credits(
            "admin", "one user", user_id=chain["B"].id
        )

        assert len(credited) == 1
        assert (await stored_totals(chain["B"]))["total_earnings"] == Decimal("5")
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("0")


class TestRepairEarnings:
    """Test closing earnings drift."""

    @pytest.mark.asyncio
    async def test_delta_applied(self, session, make_chain, stored_totals):
        """Stored earnings are moved by the ledger difference."""
        chain = await make_chain()
        await CommissionDistributor(session).distribute(
            chain["D"].id, Decimal("100"), CommissionSourceKind.GAS_FEE_TOPUP, "evt-1"
        )
        await session.execute(
            update(User)
            .where(User.id == chain["C"].id)
            .values(total_earnings=Decimal("50"))
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        outcome = await CommissionRepairService(session).repair_earnings(
            chain["C"].id, operator="admin", reason="drift"
        )

        assert outcome["before"] == Decimal("50")
        assert outcome["ledger_total"] == Decimal("30")
        assert outcome["delta"] == Decimal("-20")
        assert outcome["after"] == Decimal("30")
        assert outcome["credited_records"] == []
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("30")

        [entry] = await CommissionAuditRepository(session).get_for_user(chain["C"].id)
        assert entry.action == AuditAction.EARNINGS_REPAIRED
        assert Decimal(entry.payload["delta"]) == Decimal("-20")

    @pytest.mark.asyncio
    async def test_nothing_to_repair(self, session, make_chain):
        """A consistent user is left unchanged and not audited."""
        chain = await make_chain()
        await CommissionDistributor(session).distribute(
            chain["D"].id, Decimal("100"), CommissionSourceKind.GAS_FEE_TOPUP, "evt-1"
        )

        outcome = await CommissionRepairService(session).repair_earnings(
            chain["C"].id, operator="admin", reason="check"
        )

        assert outcome["delta"] == Decimal("0")
        assert await CommissionAuditRepository(session).get_for_user(chain["C"].id) == []

    @pytest.mark.asyncio
    async def test_credits_applied_before_delta(
        self, session, make_chain, monkeypatch, stored_totals
    ):
        """Owed credits close the gap so no delta is needed."""
        chain = await make_chain()
        await distribute_without_credit(session, chain, monkeypatch)

        outcome = await CommissionRepairService(session).repair_earnings(
            chain["C"].id, operator="admin", reason="owed"
        )

        assert len(outcome["credited_records"]) == 1
        assert outcome["delta"] == Decimal("0")
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("30")


class TestCorrectRecord:
    """Test replacing a wrong record."""

    @pytest.mark.asyncio
    async def test_correct_and_repair(self, session, make_chain, stored_totals):
        """Correction replaces the record; repair then fixes the totals."""
        chain = await make_chain()
        result = await CommissionDistributor(session).distribute(
            chain["D"].id, Decimal("100"), CommissionSourceKind.GAS_FEE_TOPUP, "evt-1"
        )
        old_id = result.records[0].id
        c_id = chain["C"].id
        service = CommissionRepairService(session)

        replacement = await service.correct_record(
            old_id,
            operator="admin",
            reason="wrong rate",
            commission_amount="25.004",
            rate="25",
            notes="rate corrected",
        )

        assert replacement.id != old_id
        assert to_decimal(replacement.commission_amount) == Decimal("25.00")
        assert replacement.source_event_id == "evt-1"
        assert replacement.notes == "rate corrected"
        assert replacement.credited_at is not None

        repo = CommissionRecordRepository(session)
        assert await repo.get_by_id(old_id, fresh=True) is None

        audit_repo = CommissionAuditRepository(session)
        [deleted] = await audit_repo.get_for_record(old_id)
        [created] = await audit_repo.get_for_record(replacement.id)
        assert deleted.action == AuditAction.RECORD_DELETED
        assert deleted.payload["before"]["commission_amount"].startswith("30")
        assert created.action == AuditAction.RECORD_CREATED
        assert created.payload["replaces"] == old_id

        # Totals untouched until repair
        assert (await stored_totals(c_id))["total_earnings"] == Decimal("30")
        report = await CommissionReconciler(session).reconcile(
            ReconcileScope(user_id=c_id)
        )
        [mismatch] = report.by_kind(DiscrepancyKind.EARNINGS_MISMATCH)
        assert mismatch.difference == Decimal("-5")

        await service.repair_earnings(c_id, operator="admin", reason="after correction")
        assert (await stored_totals(c_id))["total_earnings"] == Decimal("25")
        report = await CommissionReconciler(session).reconcile(
            ReconcileScope(user_id=c_id)
        )
        assert report.is_clean

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes",
        [{"status": "pending"}, {"level": 4}, {"source_kind": "airdrop"}],
        ids=["protected-field", "bad-level", "bad-source"],
    )
    async def test_invalid_changes(self, session, make_chain, changes):
        """Invalid corrections are rejected and nothing changes."""
        chain = await make_chain()
        result = await CommissionDistributor(session).distribute(
            chain["D"].id, Decimal("100"), CommissionSourceKind.GAS_FEE_TOPUP, "evt-1"
        )
        record_id = result.records[0].id

        with pytest.raises(ValueError):
            await CommissionRepairService(session).correct_record(
                record_id, operator="admin", reason="bad", **changes
            )

        assert await CommissionRecordRepository(session).get_by_id(record_id, fresh=True)

    @pytest.mark.asyncio
    async def test_missing_record(self, session):
        """Correcting an unknown record raises."""
        with pytest.raises(CommissionRecordNotFoundError):
            await CommissionRepairService(session).correct_record(
                404, operator="admin", reason="missing", notes="x"
            )
