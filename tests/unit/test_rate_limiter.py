"""Tests for RateLimiter.

Runs against fakeredis so the WATCH/MULTI/EXEC path is exercised for real;
time is driven by a fake clock.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakeredis import FakeAsyncRedis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from booksage.core.exceptions import StoreUnavailableError
from booksage.services.rate_limiter import RateLimiter

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def limiter(fake_redis: FakeAsyncRedis, clock) -> RateLimiter:
    return RateLimiter(fake_redis, window_ms=1000, clock=clock)


def _broken_redis() -> MagicMock:
    """A Redis client whose every operation fails to connect."""
    redis = MagicMock()
    redis.pipeline = MagicMock(side_effect=RedisConnectionError("connection refused"))
    return redis


# =============================================================================
# Fixed Window
# =============================================================================


class TestFixedWindow:
    """Tests for admission within and across windows."""

    @pytest.mark.asyncio
    async def test_first_request_opens_window(self, limiter: RateLimiter, clock) -> None:
        result = await limiter.check("1.2.3.4", 3, 1000, "search")

        assert result.allowed is True
        assert result.limit == 3
        assert result.remaining == 2
        assert result.reset_at == int(clock() * 1000) + 1000

    @pytest.mark.asyncio
    async def test_fourth_request_in_window_is_denied(
        self, limiter: RateLimiter, clock
    ) -> None:
        window_start = int(clock() * 1000)
        results = [await limiter.check("1.2.3.4", 3, 1000, "search") for _ in range(3)]

        clock.advance(0.5)
        denied = await limiter.check("1.2.3.4", 3, 1000, "search")

        assert [r.allowed for r in results] == [True, True, True]
        assert [r.remaining for r in results] == [2, 1, 0]
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.reset_at == window_start + 1000

    @pytest.mark.asyncio
    async def test_new_window_after_expiry(self, limiter: RateLimiter, clock) -> None:
        for _ in range(4):
            await limiter.check("1.2.3.4", 3, 1000, "search")

        clock.advance(1.0)
        result = await limiter.check("1.2.3.4", 3, 1000, "search")

        assert result.allowed is True
        assert result.remaining == 2
        assert result.reset_at == int(clock() * 1000) + 1000

    @pytest.mark.asyncio
    async def test_identities_are_independent(self, limiter: RateLimiter) -> None:
        for _ in range(3):
            await limiter.check("1.2.3.4", 3, 1000, "search")

        other = await limiter.check("5.6.7.8", 3, 1000, "search")

        assert other.allowed is True

    @pytest.mark.asyncio
    async def test_endpoint_classes_are_independent(self, limiter: RateLimiter) -> None:
        for _ in range(3):
            await limiter.check("1.2.3.4", 3, 1000, "search")

        feedback = await limiter.check("1.2.3.4", 3, 1000, "feedback")

        assert feedback.allowed is True
        assert feedback.remaining == 2

    @pytest.mark.asyncio
    async def test_window_is_persisted_as_hash(
        self, limiter: RateLimiter, fake_redis: FakeAsyncRedis, clock
    ) -> None:
        await limiter.check("1.2.3.4", 3, 1000, "search")
        await limiter.check("1.2.3.4", 3, 1000, "search")

        window = await fake_redis.hgetall("ratelimit:search:1.2.3.4")

        assert window["count"] == "2"
        assert window["window_start"] == str(int(clock() * 1000))

    @pytest.mark.asyncio
    async def test_concurrent_checks_never_over_admit(self, limiter: RateLimiter) -> None:
        results = await asyncio.gather(
            *(limiter.check("1.2.3.4", 5, 1000, "search") for _ in range(8))
        )

        assert sum(r.allowed for r in results) <= 5

    def test_headers(self) -> None:
        from booksage.services.rate_limiter import RateLimitResult

        result = RateLimitResult(allowed=True, limit=10, remaining=7, reset_at=123)

        assert result.headers == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "7",
            "X-RateLimit-Reset": "123",
        }


# =============================================================================
# Failure Handling
# =============================================================================


class TestFailureHandling:
    """Tests for store outages and transaction contention."""

    @pytest.mark.asyncio
    async def test_store_error_fails_open_with_max_remaining(self, clock) -> None:
        limiter = RateLimiter(_broken_redis(), clock=clock)

        result = await limiter.check("1.2.3.4", 10, 60_000, "search")

        assert result.allowed is True
        assert result.remaining == 10
        assert result.reset_at == int(clock() * 1000) + 60_000

    @pytest.mark.asyncio
    async def test_fail_open_remaining_is_configurable(self, clock) -> None:
        limiter = RateLimiter(_broken_redis(), fail_open_remaining=1, clock=clock)

        result = await limiter.check("1.2.3.4", 10, 60_000, "search")

        assert result.allowed is True
        assert result.remaining == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_deny(self, clock) -> None:
        pipe = MagicMock()
        pipe.watch = AsyncMock()
        pipe.hgetall = AsyncMock(return_value={})
        pipe.unwatch = AsyncMock()
        pipe.execute = AsyncMock(side_effect=WatchError("conflict"))
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=None)
        redis = MagicMock()
        redis.pipeline = MagicMock(return_value=pipe)
        limiter = RateLimiter(redis, clock=clock)

        result = await limiter.check("1.2.3.4", 10, 60_000, "search")

        assert result.allowed is False
        assert result.remaining == 0
        assert pipe.execute.await_count == RateLimiter.MAX_ATTEMPTS


# =============================================================================
# Reset
# =============================================================================


class TestReset:
    """Tests for administrative window resets."""

    @pytest.mark.asyncio
    async def test_reset_one_class(self, limiter: RateLimiter) -> None:
        for _ in range(3):
            await limiter.check("1.2.3.4", 3, 1000, "search")

        reset = await limiter.reset("1.2.3.4", "search")
        result = await limiter.check("1.2.3.4", 3, 1000, "search")

        assert reset == ["search"]
        assert result.allowed is True
        assert result.remaining == 2

    @pytest.mark.asyncio
    async def test_reset_all_classes(
        self, limiter: RateLimiter, fake_redis: FakeAsyncRedis
    ) -> None:
        reset = await limiter.reset("1.2.3.4")

        assert set(reset) == {"search", "similar", "feedback", "profile"}
        for endpoint_class in reset:
            window = await fake_redis.hgetall(f"ratelimit:{endpoint_class}:1.2.3.4")
            assert window["count"] == "0"

    @pytest.mark.asyncio
    async def test_reset_store_error(self, clock) -> None:
        limiter = RateLimiter(_broken_redis(), clock=clock)

        with pytest.raises(StoreUnavailableError):
            await limiter.reset("1.2.3.4")
