"""
Database configuration.

Creates the async engine and session maker shared by the application.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from referral_engine.config.settings import settings


def create_engine_from_settings(database_url: str | None = None):
    """
    Create async engine.

    Args:
        database_url: Override for settings.database_url

    Returns:
        AsyncEngine instance
    """
    url = database_url or settings.database_url
    kwargs = {"echo": settings.database_echo}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
    return create_async_engine(url, **kwargs)


async_engine = create_engine_from_settings()

async_session_maker = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)
