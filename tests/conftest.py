"""Pytest configuration and fixtures for Booksage tests.

This module provides reusable fixtures for:
- Test settings
- A fake Redis (fakeredis) shared by the limiter, cache and learner
- Test database session (in-memory SQLite)
- A controllable clock
- A mocked generation provider
- Async test client wired to all of the above
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from booksage.config import Settings, get_settings
from booksage.core.database import close_db, get_async_session, init_db
from booksage.core.redis import set_redis_client
from booksage.main import create_app
from booksage.services.generation.base import BookRecommendation, GenerationResult
from booksage.services.generation.factory import get_generation_provider
from mocks.generation_responses import make_recommendation

# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test-specific settings.

    Small rate limits so denial paths are cheap to reach.
    """
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        debug=False,
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/15",
        openai_api_key="sk-test-key",  # type: ignore[arg-type]
        rate_limit_search=3,
        rate_limit_similar=5,
        rate_limit_feedback=5,
        rate_limit_profile=5,
        generation_timeout=2.0,
    )


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_767_225_600.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """A clock tests can move forward explicitly."""
    return FakeClock()


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
async def fake_redis() -> AsyncGenerator[FakeAsyncRedis, None]:
    """In-process Redis with string responses, like the production client."""
    redis = FakeAsyncRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture
async def db_session(test_settings: Settings) -> AsyncGenerator[AsyncSession, None]:
    """Create an isolated in-memory SQLite database and yield a session."""
    await init_db(test_settings)
    async for session in get_async_session():
        yield session
    await close_db()


# =============================================================================
# Mock Service Fixtures
# =============================================================================


@pytest.fixture
def sample_recommendations() -> list[BookRecommendation]:
    """Three recommendations as a provider would return them."""
    return [
        make_recommendation("The Hobbit", "J. R. R. Tolkien", page_count=310),
        make_recommendation("A Wizard of Earthsea", "Ursula K. Le Guin", page_count=183),
        make_recommendation(
            "The Name of the Wind",
            "Patrick Rothfuss",
            page_count=662,
            genres=["Fantasy", "Adventure"],
        ),
    ]


@pytest.fixture
def mock_provider(sample_recommendations: list[BookRecommendation]) -> MagicMock:
    """Create a mock GenerationProvider.

    Use this to avoid making real generation calls in tests.
    """
    provider = MagicMock()
    provider.name = "openai"
    provider.get_recommendations = AsyncMock(
        return_value=GenerationResult(
            recommendations=sample_recommendations,
            raw={"books": [r.to_dict() for r in sample_recommendations]},
        )
    )
    provider.close = AsyncMock()
    return provider


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
async def app(
    test_settings: Settings,
    fake_redis: FakeAsyncRedis,
    mock_provider: MagicMock,
) -> AsyncGenerator[FastAPI, None]:
    """Create a test FastAPI application backed by fakes.

    The lifespan does not run under ASGITransport, so the stores are
    initialized here instead.
    """
    await init_db(test_settings)
    set_redis_client(fake_redis)

    app = create_app(settings=test_settings)
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_generation_provider] = lambda: mock_provider

    yield app

    app.dependency_overrides.clear()
    set_redis_client(None)
    await close_db()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing.

    This client makes requests to the test app without starting a server.

    Usage:
        async def test_endpoint(async_client: AsyncClient):
            response = await async_client.get("/health/live")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
