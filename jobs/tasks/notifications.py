"""
Tier change notification task.

Hands tier changes to the external delivery channel (email, toast).
Delivery itself is not part of the engine; the actor only logs.
"""

import dramatiq
from loguru import logger


@dramatiq.actor(max_retries=3, queue_name="notifications")
def notify_tier_change(event_data: dict) -> None:
    """
    Deliver a tier change notification.

    Args:
        event_data: TierChangeEvent.to_dict() payload
    """
    logger.info(
        f"Tier change for user {event_data.get('user_id')}: "
        f"{event_data.get('old_tier')} -> {event_data.get('new_tier')}",
        extra={"event": event_data},
    )
