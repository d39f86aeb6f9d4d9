"""
Integration tests for deposit-confirmed event handling.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from referral_engine.models.enums import MembershipTier
from referral_engine.repositories.deposit_transaction_repository import (
    DepositTransactionRepository,
)
from referral_engine.services.commission import (
    DepositConfirmedEvent,
    InMemoryTierChangeSink,
)
from referral_engine.services.deposit_event_service import DepositEventService
from referral_engine.utils.exceptions import PersistenceError, UserNotFoundError

CONFIRMED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def deposit_event(depositor_id: int, amount: str = "100", **overrides) -> DepositConfirmedEvent:
    data = {
        "depositor_id": depositor_id,
        "amount": amount,
        "source_event_id": "tx-1",
        "confirmed_at": CONFIRMED_AT,
    }
    data.update(overrides)
    return DepositConfirmedEvent.model_validate(data)


class TestHandleDepositConfirmed:
    """Test the event entry point."""

    @pytest.mark.asyncio
    async def test_deposit_and_commissions(self, session, make_chain, stored_totals):
        """The deposit is recorded and commissions distributed."""
        chain = await make_chain()

        result = await DepositEventService(session).handle_deposit_confirmed(
            deposit_event(chain["D"].id)
        )

        assert result.deposit_recorded is True
        assert result.tier_transition.tier_changed is False
        assert len(result.distribution.records) == 3
        assert result.distribution_error is None

        assert (await stored_totals(chain["D"]))["total_personal_deposit"] == Decimal("100")
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("30")
        deposit = await DepositTransactionRepository(session).get_by_event("tx-1")
        assert deposit.user_id == chain["D"].id

    @pytest.mark.asyncio
    async def test_redelivery(self, session, make_chain, stored_totals):
        """A redelivered event changes nothing."""
        chain = await make_chain()
        service = DepositEventService(session)
        event = deposit_event(chain["D"].id)

        await service.handle_deposit_confirmed(event)
        again = await service.handle_deposit_confirmed(event)

        assert again.deposit_recorded is False
        assert again.distribution.already_processed is True
        assert (await stored_totals(chain["D"]))["total_personal_deposit"] == Decimal("100")
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("30")

    @pytest.mark.asyncio
    async def test_legacy_redelivery(self, session, make_chain, stored_totals):
        """Events without an id are deduplicated too."""
        chain = await make_chain()
        service = DepositEventService(session)
        event = deposit_event(chain["D"].id, source_event_id=None)

        first = await service.handle_deposit_confirmed(event)
        again = await service.handle_deposit_confirmed(event)

        assert first.deposit_recorded is True
        assert again.deposit_recorded is False
        assert again.distribution.already_processed is True
        assert (await stored_totals(chain["C"]))["total_earnings"] == Decimal("30")

    @pytest.mark.asyncio
    async def test_depositor_tier_change_published(self, session, make_chain):
        """Crossing a threshold publishes one tier change."""
        chain = await make_chain()
        sink = InMemoryTierChangeSink()

        result = await DepositEventService(session, sink=sink).handle_deposit_confirmed(
            deposit_event(chain["D"].id, amount="2500")
        )

        assert result.tier_transition.new_tier == MembershipTier.GOLD
        assert [event.user_id for event in sink.events] == [chain["D"].id]

    @pytest.mark.asyncio
    async def test_unknown_depositor(self, session):
        """Events of unknown users raise and record nothing."""
        with pytest.raises(UserNotFoundError):
            await DepositEventService(session).handle_deposit_confirmed(deposit_event(99))

        assert await DepositTransactionRepository(session).get_by_event("tx-1") is None

    @pytest.mark.asyncio
    async def test_distribution_failure_retried(
        self, session, make_chain, monkeypatch, stored_totals
    ):
        """A failed commission write raises; the retry only distributes."""
        chain = await make_chain()
        d_id, c_id = chain["D"].id, chain["C"].id
        service = DepositEventService(session)
        real_find = service.distributor.record_repo.find_by_event

        async def unavailable(depositor_id, source_event_id):
            raise OperationalError("SELECT", {}, Exception("db down"))

        monkeypatch.setattr(service.distributor.record_repo, "find_by_event", unavailable)
        with pytest.raises(PersistenceError):
            await service.handle_deposit_confirmed(deposit_event(d_id))

        assert (await stored_totals(d_id))["total_personal_deposit"] == Decimal("100")
        assert (await stored_totals(c_id))["total_earnings"] == Decimal("0")

        monkeypatch.setattr(service.distributor.record_repo, "find_by_event", real_find)
        retry = await service.handle_deposit_confirmed(deposit_event(d_id))

        assert retry.deposit_recorded is False
        assert len(retry.distribution.records) == 3
        assert (await stored_totals(d_id))["total_personal_deposit"] == Decimal("100")
        assert (await stored_totals(c_id))["total_earnings"] == Decimal("30")
