"""
Dramatiq broker configuration.

Redis-based message broker for task queue.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from referral_engine.config.settings import settings
from referral_engine.utils.redis_utils import get_redis_url_masked

redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password if settings.redis_password else None,
    db=settings.redis_db,
)

# Deposit events are delivered at-least-once; failed distributions retry
# with exponential backoff
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=5,
        min_backoff=1000,  # 1 second
        max_backoff=300000,  # 5 minutes
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(f"Dramatiq broker initialized: {get_redis_url_masked()}")
