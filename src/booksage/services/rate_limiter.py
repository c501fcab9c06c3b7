"""RateLimiter - fixed-window admission control persisted in Redis.

Each (endpoint class, identity) pair owns one window stored as a Redis hash:

    ratelimit:{endpoint_class}:{identity} -> {count, window_start, last_request}

Read-modify-write happens inside an optimistic transaction (WATCH/MULTI/EXEC)
so concurrent requests from many workers never over-admit. A conflicting
write aborts the transaction and the check is retried a bounded number of
times; if every attempt conflicts the request is denied.

If Redis itself is unreachable the limiter fails open: generation quota is
the resource being protected, and an outage of the limiter store should not
take the whole API down with it.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from booksage.config import EndpointClass, get_settings
from booksage.core.exceptions import StoreUnavailableError
from booksage.core.logging import get_logger
from booksage.core.redis import get_redis_client

logger = get_logger(__name__)

DEFAULT_ENDPOINT_CLASS = "default"


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch milliseconds

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class RateLimiter:
    """Per-identity, per-endpoint-class fixed-window rate limiter.

    Usage with FastAPI:
        ```python
        from booksage.services.rate_limiter import RateLimiter, get_rate_limiter

        @router.post("/search")
        async def search(limiter: RateLimiter = Depends(get_rate_limiter)):
            result = await limiter.check("203.0.113.7", 10, 60_000, "search")
        ```
    """

    KEY_PREFIX = "ratelimit"
    MAX_ATTEMPTS = 5

    def __init__(
        self,
        redis: Redis,
        *,
        window_ms: int = 60_000,
        fail_open_remaining: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            redis: Async Redis client
            window_ms: Window length used by ``reset``
            fail_open_remaining: Remaining quota reported when Redis is down
                (defaults to the endpoint's maximum)
            clock: Returns the current time in seconds
        """
        self.redis = redis
        self.window_ms = window_ms
        self.fail_open_remaining = fail_open_remaining
        self._clock = clock

    async def check(
        self,
        identity: str,
        max_requests: int,
        window_ms: int,
        endpoint_class: str = DEFAULT_ENDPOINT_CLASS,
    ) -> RateLimitResult:
        """Count one request against the identity's window.

        Args:
            identity: IP address or account id
            max_requests: Requests admitted per window
            window_ms: Window length in milliseconds
            endpoint_class: Bucket the request is counted in

        Returns:
            RateLimitResult; ``allowed`` is False when the window is full
        """
        key = self.window_key(identity, endpoint_class)
        try:
            result = await self._check_atomically(key, max_requests, window_ms)
        except RedisError as e:
            now = self._now_ms()
            remaining = (
                self.fail_open_remaining
                if self.fail_open_remaining is not None
                else max_requests
            )
            logger.warning(
                "rate_limit_store_unavailable",
                identity=identity,
                endpoint_class=endpoint_class,
                error=str(e),
            )
            return RateLimitResult(
                allowed=True,
                limit=max_requests,
                remaining=remaining,
                reset_at=now + window_ms,
            )

        if not result.allowed:
            logger.info(
                "rate_limit_denied",
                identity=identity,
                endpoint_class=endpoint_class,
                limit=max_requests,
                reset_at=result.reset_at,
            )
        return result

    async def reset(
        self,
        identity: str,
        endpoint_class: str | None = None,
    ) -> list[str]:
        """Reinitialize an identity's window(s): count 0, window starting now.

        Args:
            identity: IP address or account id
            endpoint_class: One class, or None for every configured class

        Returns:
            Endpoint classes that were reset
        """
        classes = (
            [endpoint_class]
            if endpoint_class is not None
            else [c.value for c in EndpointClass]
        )
        now = self._now_ms()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for name in classes:
                    key = self.window_key(identity, name)
                    pipe.hset(
                        key,
                        mapping={"count": 0, "window_start": now, "last_request": now},
                    )
                    pipe.pexpire(key, self.window_ms * 2)
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailableError(store="redis", error=str(e)) from e

        logger.info("rate_limit_reset", identity=identity, endpoint_classes=classes)
        return classes

    @classmethod
    def window_key(cls, identity: str, endpoint_class: str) -> str:
        """Redis key holding one identity's window for one endpoint class."""
        return f"{cls.KEY_PREFIX}:{endpoint_class}:{identity}"

    async def _check_atomically(
        self,
        key: str,
        max_requests: int,
        window_ms: int,
    ) -> RateLimitResult:
        async with self.redis.pipeline(transaction=True) as pipe:
            for _ in range(self.MAX_ATTEMPTS):
                try:
                    await pipe.watch(key)
                    window = await pipe.hgetall(key)
                    now = self._now_ms()

                    count = int(window.get("count", 0)) if window else 0
                    window_start = int(window.get("window_start", 0)) if window else 0

                    if not window or now - window_start >= window_ms:
                        count, window_start = 1, now
                    elif count < max_requests:
                        count += 1
                    else:
                        await pipe.unwatch()
                        return RateLimitResult(
                            allowed=False,
                            limit=max_requests,
                            remaining=0,
                            reset_at=window_start + window_ms,
                        )

                    pipe.multi()
                    pipe.hset(
                        key,
                        mapping={
                            "count": count,
                            "window_start": window_start,
                            "last_request": now,
                        },
                    )
                    # Storage hygiene only; expiry never decides admission
                    pipe.pexpire(key, window_ms * 2)
                    await pipe.execute()

                    return RateLimitResult(
                        allowed=True,
                        limit=max_requests,
                        remaining=max_requests - count,
                        reset_at=window_start + window_ms,
                    )
                except WatchError:
                    continue

        logger.warning("rate_limit_contention", key=key, attempts=self.MAX_ATTEMPTS)
        now = self._now_ms()
        return RateLimitResult(
            allowed=False,
            limit=max_requests,
            remaining=0,
            reset_at=now + window_ms,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)


def get_rate_limiter() -> RateLimiter:
    """FastAPI dependency for RateLimiter."""
    settings = get_settings()
    return RateLimiter(
        get_redis_client(),
        window_ms=settings.rate_limit_window_ms,
        fail_open_remaining=settings.rate_limit_fail_open_remaining,
    )
