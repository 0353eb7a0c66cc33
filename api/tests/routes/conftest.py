"""Route test configuration.

- Rate limiting is disabled so handlers can be called repeatedly
- The streak tracker dependency is replaced with one backed by the
  in-memory store and the fake clock, so no database is needed
"""

from collections.abc import AsyncGenerator
from datetime import UTC
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from main import app
from repositories.streak_record_repository import InMemoryStreakRecordStore
from routes.streak_routes import get_streak_tracker
from services.streak_tracker_service import StreakTracker


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting so route handlers can be called directly."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield


@pytest.fixture
def streak_store() -> InMemoryStreakRecordStore:
    return InMemoryStreakRecordStore()


@pytest.fixture
def streak_tracker(streak_store, clock) -> StreakTracker:
    return StreakTracker(streak_store, clock=clock, tz=UTC)


@pytest_asyncio.fixture
async def client(streak_tracker) -> AsyncGenerator[AsyncClient]:
    app.dependency_overrides[get_streak_tracker] = lambda: streak_tracker
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app, raise_app_exceptions=False),
            base_url="http://test",
        ) as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_streak_tracker, None)
