"""Pytest configuration and shared fixtures.

This module provides:
- An in-memory SQLite database (aiosqlite) per test for repository tests
- A controllable clock for streak tracker tests
- Wide event context so services can record request fields
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STREAK_TIMEZONE", "UTC")

from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime, time, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  registers tables on Base.metadata
from core.database import Base
from core.wide_event import init_wide_event

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def setup_wide_event():
    """Initialize wide_event context for all tests.

    In production RequestTimingMiddleware does this; in tests we do it here.
    """
    init_wide_event()
    yield


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Callable clock pinned to noon UTC of a chosen calendar day."""

    def __init__(self, day: str = "2024-01-01"):
        self.now = self._noon(day)

    @staticmethod
    def _noon(day: str) -> datetime:
        return datetime.combine(date.fromisoformat(day), time(12), tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def set_day(self, day: str) -> None:
        self.now = self._noon(day)

    def advance(self, days: int = 1) -> None:
        self.now += timedelta(days=days)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine]:
    """Create a fresh in-memory database engine for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Provide a database session for each test."""
    async with session_maker() as session:
        yield session
        await session.rollback()
