"""
Referral chain management module.

Walks a depositor's upline (referred_by) chain and freezes each referrer's
tier at the moment it is read.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import String, select, type_coerce
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.config.constants import REFERRAL_DEPTH
from referral_engine.models.enums import MembershipTier
from referral_engine.models.user import User
from referral_engine.utils.exceptions import ChainResolutionError


@dataclass(frozen=True)
class ChainLink:
    """One upline referrer with the tier read during the walk."""

    level: int
    referrer_id: int
    # Raw stored value; an unknown string fails only this level
    referrer_tier: MembershipTier | str


@dataclass(frozen=True)
class _UserNode:
    id: int
    referred_by_id: int | None
    tier: str


class ReferralChainManager:
    """Manages referral chain operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize chain manager."""
        self.session = session

    async def upline_chain(
        self, depositor_id: int, max_levels: int = REFERRAL_DEPTH
    ) -> list[ChainLink]:
        """
        Get upline referrers of a depositor, nearest first.

        The walk stops at the root, after max_levels (never more than 3),
        when a referrer cannot be loaded (chain truncated, error logged) or
        when a user id repeats.

        Args:
            depositor_id: User whose deposit is being distributed
            max_levels: Chain depth to retrieve

        Returns:
            Links ordered by level
        """
        max_levels = min(max_levels, REFERRAL_DEPTH)
        chain: list[ChainLink] = []

        depositor = await self._load_node(depositor_id)
        if depositor is None:
            logger.warning(
                "Depositor not found, empty referral chain",
                extra={"depositor_id": depositor_id},
            )
            return chain

        visited = {depositor.id}
        next_id = depositor.referred_by_id

        for level in range(1, max_levels + 1):
            if next_id is None:
                break

            if next_id in visited:
                logger.warning(
                    "Referral cycle detected, chain truncated",
                    extra={
                        "depositor_id": depositor_id,
                        "level": level,
                        "referrer_id": next_id,
                        "chain_ids": [link.referrer_id for link in chain],
                    },
                )
                break

            referrer = await self._load_node(next_id)
            if referrer is None:
                error = ChainResolutionError(depositor_id, level, next_id)
                logger.error(
                    str(error),
                    extra={
                        "depositor_id": depositor_id,
                        "level": level,
                        "referrer_id": next_id,
                    },
                )
                break

            chain.append(
                ChainLink(
                    level=level,
                    referrer_id=referrer.id,
                    referrer_tier=_known_tier(referrer.tier),
                )
            )
            visited.add(referrer.id)
            next_id = referrer.referred_by_id

        logger.debug(
            "Referral chain retrieved",
            extra={
                "depositor_id": depositor_id,
                "max_levels": max_levels,
                "chain_length": len(chain),
            },
        )
        return chain

    async def _load_node(self, user_id: int) -> _UserNode | None:
        # Tier is read as plain text so legacy values do not break the walk
        stmt = select(
            User.id,
            User.referred_by_id,
            type_coerce(User.membership_tier, String).label("tier"),
        ).where(User.id == user_id)
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return _UserNode(row.id, row.referred_by_id, row.tier)


def _known_tier(value: str) -> MembershipTier | str:
    try:
        return MembershipTier(value)
    except ValueError:
        return value
