"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for settings; tests get their own SQLite files below
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./referral-engine-test.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("ENVIRONMENT", "test")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Actors bind to the global broker when their modules are imported
import dramatiq
from dramatiq.brokers.stub import StubBroker

stub_broker = StubBroker()
stub_broker.emit_after("process_boot")
dramatiq.set_broker(stub_broker)

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from jobs.async_runner import run_async
from referral_engine.models import Base, MembershipTier, User
from referral_engine.repositories.user_repository import UserRepository
from referral_engine.utils.decimal_utils import to_decimal

UserFactory = Callable[..., Awaitable[User]]


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def sqlite_url(tmp_path: Path, name: str = "referral-engine.db") -> str:
    """Database URL of a throwaway SQLite file."""
    return f"sqlite+aiosqlite:///{tmp_path / name}"


@pytest.fixture
def broker() -> StubBroker:
    """Stub dramatiq broker with empty queues."""
    stub_broker.flush_all()
    return stub_broker


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Async engine on a fresh SQLite database with all tables."""
    engine = create_async_engine(sqlite_url(tmp_path))
    enable_sqlite_savepoints(engine)

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application one."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Database session for one test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(session: AsyncSession) -> UserFactory:
    """
    Factory creating committed users.

    Usage:
        referrer = await make_user(tier=MembershipTier.GOLD)
        depositor = await make_user(referred_by=referrer)
    """

    async def _make_user(
        referred_by: User | int | None = None,
        tier: MembershipTier = MembershipTier.BRONZE,
        total_personal_deposit: Decimal = Decimal("0"),
        total_earnings: Decimal = Decimal("0"),
        tier_locked_manually: bool = False,
    ) -> User:
        referred_by_id = (
            referred_by.id if isinstance(referred_by, User) else referred_by
        )
        user = User(
            referred_by_id=referred_by_id,
            membership_tier=tier,
            total_personal_deposit=total_personal_deposit,
            total_earnings=total_earnings,
            tier_locked_manually=tier_locked_manually,
        )
        session.add(user)
        await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_chain(make_user: UserFactory) -> Callable[[], Awaitable[dict[str, User]]]:
    """
    Factory for the A -> B -> C -> D chain.

    A (bronze) referred B (silver), B referred C (gold), C referred D.
    """

    async def _make_chain() -> dict[str, User]:
        a = await make_user(tier=MembershipTier.BRONZE)
        b = await make_user(referred_by=a, tier=MembershipTier.SILVER)
        c = await make_user(referred_by=b, tier=MembershipTier.GOLD)
        d = await make_user(referred_by=c)
        return {"A": a, "B": b, "C": c, "D": d}

    return _make_chain


@pytest.fixture
def stored_totals(session: AsyncSession) -> Callable[[User | int], Awaitable[dict]]:
    """
    Read a user's stored totals straight from the database.

    Usage:
        totals = await stored_totals(user)
        assert totals["total_earnings"] == Decimal("30")
    """

    async def _stored_totals(user: User | int) -> dict:
        user_id = user if isinstance(user, int) else user.id
        row = await UserRepository(session).get_totals(user_id)
        return {
            "total_earnings": to_decimal(row.total_earnings),
            "total_personal_deposit": to_decimal(row.total_personal_deposit),
        }

    return _stored_totals


@pytest.fixture
def local_session_factory(tmp_path: Path):
    """
    Session factory for synchronous actor tests.

    Actors run coroutines on the worker thread's own event loop, so every
    session gets a NullPool engine created on that loop. Tables are created
    up front.

    Usage:
        monkeypatch.setattr(tasks_module, "create_local_session", local_session_factory)
    """
    url = sqlite_url(tmp_path, "jobs.db")

    @asynccontextmanager
    async def _local_session() -> AsyncIterator[AsyncSession]:
        local_engine = create_async_engine(url, poolclass=NullPool)
        enable_sqlite_savepoints(local_engine)
        local_session_maker = async_sessionmaker(
            local_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        try:
            async with local_session_maker() as session:
                yield session
        finally:
            await local_engine.dispose()

    async def _create_tables() -> None:
        local_engine = create_async_engine(url, poolclass=NullPool)
        async with local_engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        await local_engine.dispose()

    run_async(_create_tables())
    return _local_session
