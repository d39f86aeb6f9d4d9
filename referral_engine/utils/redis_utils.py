"""Redis connection utilities."""

from referral_engine.config.settings import settings


def get_redis_url_masked() -> str:
    """
    Build Redis URL with masked password for safe logging.

    Returns:
        str: redis://[:****@]host:port/db
    """
    auth = ":****@" if settings.redis_password else ""
    return f"redis://{auth}{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
