"""Async Redis client lifecycle.

Redis is the shared key/value store behind rate windows, cached
recommendation sets and preference profiles. One client (with its own
connection pool) is created at startup and shared by every request.

Usage:
    from booksage.core.redis import init_redis, close_redis, get_redis_client

    # At startup
    await init_redis(settings)

    # In services (via dependency injection)
    redis = get_redis_client()

    # At shutdown
    await close_redis()
"""

from redis.asyncio import Redis

from booksage.config import Settings
from booksage.core.logging import get_logger

logger = get_logger(__name__)

# Global Redis client (set during app startup)
_redis_client: Redis | None = None


def set_redis_client(redis: Redis | None) -> None:
    """Install a Redis client, e.g. a fake one in tests."""
    global _redis_client
    _redis_client = redis


def get_redis_client() -> Redis:
    """Get the shared Redis client.

    Raises:
        RuntimeError: If Redis is not initialized
    """
    if _redis_client is None:
        raise RuntimeError("Redis client not initialized. Call init_redis() first.")
    return _redis_client


async def init_redis(settings: Settings) -> None:
    """Create the shared Redis client.

    Connections are opened lazily, so an unreachable Redis does not stop the
    application from starting; the services degrade instead.

    Args:
        settings: Application settings containing the Redis URL
    """
    logger.info("Initializing Redis", redis_url=_mask_password(settings.redis_url))
    set_redis_client(Redis.from_url(settings.redis_url, decode_responses=True))


async def close_redis() -> None:
    """Close the shared Redis client and its pool."""
    global _redis_client

    if _redis_client is not None:
        logger.info("Closing Redis connections")
        await _redis_client.aclose()
        _redis_client = None


async def check_redis_connection() -> bool:
    """Check if Redis answers a PING.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        return bool(await get_redis_client().ping())
    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        return False


def _mask_password(url: str) -> str:
    """Mask the password in a redis:// URL for logging."""
    if "://" in url and "@" in url:
        scheme, rest = url.split("://", 1)
        creds, host = rest.rsplit("@", 1)
        user = creds.split(":", 1)[0] if ":" in creds else ""
        return f"{scheme}://{user}:****@{host}"
    return url
