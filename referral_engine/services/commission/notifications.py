"""
Tier change notification sinks.

Delivery (email, toast) happens outside the engine; sinks only hand the
event over.
"""

from typing import Protocol

import dramatiq
from loguru import logger

from referral_engine.services.commission.tier_transition import TierChangeEvent


class TierChangeSink(Protocol):
    """Receiver of tier change events."""

    def publish(self, event: TierChangeEvent) -> None:
        """Hand the event over for delivery."""


class LoggingTierChangeSink:
    """Writes tier changes to the log."""

    def publish(self, event: TierChangeEvent) -> None:
        logger.info(
            "Tier change event",
            extra=event.to_dict(),
        )


class InMemoryTierChangeSink:
    """Collects events in a list; used by tests and dry runs."""

    def __init__(self) -> None:
        self.events: list[TierChangeEvent] = []

    def publish(self, event: TierChangeEvent) -> None:
        self.events.append(event)


class DramatiqTierChangeSink:
    """Enqueues tier changes to a dramatiq actor."""

    def __init__(self, actor: dramatiq.Actor) -> None:
        """
        Args:
            actor: Actor accepting the event dict as its only argument
        """
        self.actor = actor

    def publish(self, event: TierChangeEvent) -> None:
        self.actor.send(event.to_dict())
        logger.debug(
            "Tier change event enqueued",
            extra={"user_id": event.user_id, "actor": self.actor.actor_name},
        )
