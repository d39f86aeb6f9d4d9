"""
Integration tests for deposit application and tier transitions.
"""

from decimal import Decimal

import pytest

from referral_engine.config.tier_rates import DEFAULT_TIER_RATES
from referral_engine.models.enums import (
    AuditAction,
    CommissionSourceKind,
    MembershipTier,
)
from referral_engine.repositories.commission_audit_repository import (
    CommissionAuditRepository,
)
from referral_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.services.commission import (
    CommissionDistributor,
    EarningsProjector,
    InMemoryTierChangeSink,
    TierTransitionManager,
)
from referral_engine.utils.decimal_utils import to_decimal
from referral_engine.utils.exceptions import InvalidTierError, UserNotFoundError


async def tier_of(session, user_id: int) -> MembershipTier:
    user = await UserRepository(session).get_by_id(user_id, fresh=True)
    return user.membership_tier


class TestApplyDeposit:
    """Test personal deposit application."""

    @pytest.mark.asyncio
    async def test_crossing_threshold_once(self, session, make_user, stored_totals):
        """$950 then $100 moves bronze to silver with one event."""
        user = await make_user()
        sink = InMemoryTierChangeSink()
        projector = EarningsProjector(session, sink=sink)

        first = await projector.apply_deposit(user.id, Decimal("950"))
        second = await projector.apply_deposit(user.id, Decimal("100"))

        assert first.tier_changed is False
        assert second.tier_changed is True
        assert second.old_tier == MembershipTier.BRONZE
        assert second.new_tier == MembershipTier.SILVER
        assert await tier_of(session, user.id) == MembershipTier.SILVER
        assert (await stored_totals(user))["total_personal_deposit"] == Decimal("1050")

        assert len(sink.events) == 1
        event = sink.events[0]
        assert event.user_id == user.id
        assert event.new_rates == DEFAULT_TIER_RATES[MembershipTier.SILVER]
        assert event.to_dict()["new_tier"] == "silver"

    @pytest.mark.asyncio
    async def test_skipping_tiers(self, session, make_user):
        """A single large deposit can jump straight to platinum."""
        user = await make_user()
        sink = InMemoryTierChangeSink()

        result = await EarningsProjector(session, sink=sink).apply_deposit(
            user.id, Decimal("15000")
        )

        assert result.new_tier == MembershipTier.PLATINUM
        assert [event.new_tier for event in sink.events] == [MembershipTier.PLATINUM]

    @pytest.mark.asyncio
    async def test_order_independent(self, session, make_user):
        """Same deposits in a different order end in the same tier."""
        deposits = [Decimal("1200"), Decimal("950"), Decimal("100")]
        first = await make_user()
        second = await make_user()
        projector = EarningsProjector(session)

        for amount in deposits:
            await projector.apply_deposit(first.id, amount)
        for amount in reversed(deposits):
            await projector.apply_deposit(second.id, amount)

        assert await tier_of(session, first.id) == MembershipTier.GOLD
        assert await tier_of(session, second.id) == MembershipTier.GOLD

    @pytest.mark.asyncio
    async def test_locked_tier_not_recomputed(self, session, make_user):
        """Manually locked tiers ignore deposits."""
        user = await make_user(tier=MembershipTier.PLATINUM, tier_locked_manually=True)
        sink = InMemoryTierChangeSink()

        result = await EarningsProjector(session, sink=sink).apply_deposit(
            user.id, Decimal("50")
        )

        assert result.tier_changed is False
        assert await tier_of(session, user.id) == MembershipTier.PLATINUM
        assert sink.events == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    async def test_non_positive_rejected(self, session, make_user, amount):
        """Deposits must be positive."""
        user = await make_user()
        with pytest.raises(ValueError):
            await EarningsProjector(session).apply_deposit(user.id, amount)

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        """Deposits of unknown users raise."""
        with pytest.raises(UserNotFoundError):
            await EarningsProjector(session).apply_deposit(4242, Decimal("10"))

    @pytest.mark.asyncio
    async def test_tier_change_keeps_old_records(self, session, make_chain):
        """Records written before a tier change keep their rate."""
        chain = await make_chain()
        distributor = CommissionDistributor(session)
        await distributor.distribute(
            chain["D"].id, Decimal("100"), CommissionSourceKind.GAS_FEE_TOPUP, "evt-old"
        )

        # C is gold; a 10000 deposit pushes C to platinum
        await EarningsProjector(session).apply_deposit(chain["C"].id, Decimal("10000"))
        await distributor.distribute(
            chain["D"].id, Decimal("100"), CommissionSourceKind.GAS_FEE_TOPUP, "evt-new"
        )

        repo = CommissionRecordRepository(session)
        old = await repo.find_by_event(chain["D"].id, "evt-old")
        new = await repo.find_by_event(chain["D"].id, "evt-new")
        assert to_decimal(old[0].rate) == Decimal("30")
        assert to_decimal(old[0].commission_amount) == Decimal("30")
        assert to_decimal(new[0].rate) == Decimal("40")
        assert to_decimal(new[0].commission_amount) == Decimal("40")


class TestManualTier:
    """Test admin tier overrides."""

    @pytest.mark.asyncio
    async def test_set_locked_tier(self, session, make_user):
        """Setting a tier locks it, audits and publishes."""
        user = await make_user()
        sink = InMemoryTierChangeSink()
        manager = TierTransitionManager(session, sink=sink)

        result = await manager.set_manual_tier(
            user.id, MembershipTier.GOLD, operator="admin", reason="partner deal"
        )

        assert result.tier_changed is True
        assert result.new_tier == MembershipTier.GOLD
        refreshed = await UserRepository(session).get_by_id(user.id, fresh=True)
        assert refreshed.membership_tier == MembershipTier.GOLD
        assert refreshed.tier_locked_manually is True
        assert [event.new_tier for event in sink.events] == [MembershipTier.GOLD]

        entries = await CommissionAuditRepository(session).get_for_user(user.id)
        assert [entry.action for entry in entries] == [AuditAction.TIER_SET_MANUALLY]
        assert entries[0].operator == "admin"
        assert entries[0].payload["new_tier"] == "gold"

        # Locked: later deposits do not move the tier
        await EarningsProjector(session).apply_deposit(user.id, Decimal("20000"))
        assert await tier_of(session, user.id) == MembershipTier.GOLD

    @pytest.mark.asyncio
    async def test_unlock_recomputes(self, session, make_user):
        """Unlocking derives the tier from the deposit total again."""
        user = await make_user(
            tier=MembershipTier.GOLD,
            total_personal_deposit=Decimal("1500"),
            tier_locked_manually=True,
        )
        manager = TierTransitionManager(session)

        result = await manager.set_manual_tier(
            user.id,
            MembershipTier.BRONZE,
            operator="admin",
            reason="deal ended",
            locked=False,
        )

        assert result.new_tier == MembershipTier.SILVER
        assert result.old_tier == MembershipTier.GOLD
        refreshed = await UserRepository(session).get_by_id(user.id, fresh=True)
        assert refreshed.membership_tier == MembershipTier.SILVER
        assert refreshed.tier_locked_manually is False

    @pytest.mark.asyncio
    async def test_invalid_tier(self, session, make_user):
        """Unknown tier names are rejected."""
        user = await make_user()
        with pytest.raises(InvalidTierError):
            await TierTransitionManager(session).set_manual_tier(
                user.id, "diamond", operator="admin", reason="typo"
            )

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        """Unknown users are rejected."""
        with pytest.raises(UserNotFoundError):
            await TierTransitionManager(session).set_manual_tier(
                777, MembershipTier.GOLD, operator="admin", reason="missing"
            )
