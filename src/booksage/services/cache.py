"""ResponseCache - content-addressed TTL cache of recommendation sets.

Identical queries (modulo case, surrounding whitespace and option key order)
map to the same key, so repeated searches never re-trigger generation.

Cache Key Types:
    - search:{hash} - Open-ended recommendation searches (24h TTL)
    - similar:{hash} - Similar-book lookups for one book (7d TTL)

Each entry is a JSON document carrying its own ``created_at`` and
``expires_at``. Expiry is checked lazily on read against the injected clock;
the Redis TTL on the key only keeps the store tidy.

Note: canonical recommendations are cached, never raw provider output.
"""

import hashlib
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from redis.asyncio import Redis

from booksage.config import get_settings
from booksage.core.redis import get_redis_client
from booksage.services.generation.base import BookRecommendation

logger = structlog.get_logger(__name__)

SEARCH_NAMESPACE = "search"
SIMILAR_NAMESPACE = "similar"


@dataclass
class CacheEntry:
    """A cached recommendation set as stored in Redis."""

    key: str
    query: str
    options: dict[str, Any]
    results: list[BookRecommendation]
    created_at: int  # epoch milliseconds
    expires_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "query": self.query,
            "options": self.options,
            "results": [r.to_dict() for r in self.results],
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            query=data.get("query", ""),
            options=data.get("options") or {},
            results=[BookRecommendation.from_dict(r) for r in data.get("results", [])],
            created_at=int(data["created_at"]),
            expires_at=int(data["expires_at"]),
        )


class ResponseCache:
    """Redis-backed recommendation cache with lazy TTL expiry.

    Read errors degrade to a miss and write errors to a no-op; the cache
    never fails a request.

    Usage with FastAPI:
        ```python
        from booksage.services.cache import ResponseCache, get_response_cache

        @router.post("/search")
        async def search(cache: ResponseCache = Depends(get_response_cache)):
            key = cache.make_key("cozy mysteries", {"genre": "Mystery"})
            books = await cache.get(key)
        ```
    """

    # TTL constants (in seconds)
    TTL_SEARCH_RESULTS = 86400  # 24 hours
    TTL_SIMILAR_BOOKS = 604800  # 7 days

    def __init__(
        self,
        redis: Redis,
        *,
        ttl_search: int | None = None,
        ttl_similar: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            redis: Async Redis client
            ttl_search: Override for the ``search:`` namespace TTL (seconds)
            ttl_similar: Override for the ``similar:`` namespace TTL (seconds)
            clock: Returns the current time in seconds
        """
        self.redis = redis
        self._ttl_map = {
            SEARCH_NAMESPACE: ttl_search or self.TTL_SEARCH_RESULTS,
            SIMILAR_NAMESPACE: ttl_similar or self.TTL_SIMILAR_BOOKS,
        }
        self._clock = clock

    async def get(self, cache_key: str) -> list[BookRecommendation] | None:
        """Return the cached results, or None on a miss or an expired entry."""
        try:
            raw = await self.redis.get(cache_key)
            if not raw:
                logger.debug("cache_miss", cache_key=cache_key)
                return None

            entry = CacheEntry.from_dict(json.loads(raw))
        except Exception as e:
            logger.warning("cache_get_failed", cache_key=cache_key, error=str(e))
            return None

        if entry.expires_at <= self._now_ms():
            logger.debug("cache_expired", cache_key=cache_key)
            return None

        logger.debug("cache_hit", cache_key=cache_key, results=len(entry.results))
        return entry.results

    async def put(
        self,
        cache_key: str,
        query: str,
        options: dict[str, Any] | None,
        results: list[BookRecommendation],
        ttl: int | None = None,
    ) -> CacheEntry | None:
        """Store a result set, replacing any existing entry under the key.

        Args:
            cache_key: Key from ``make_key``
            query: Original query text
            options: Options the results were generated with
            results: Recommendations to cache
            ttl: TTL in seconds (selected by key namespace if None)

        Returns:
            The stored entry, or None if the write failed
        """
        if ttl is None:
            ttl = self.ttl_for(cache_key)

        now = self._now_ms()
        entry = CacheEntry(
            key=cache_key,
            query=query,
            options=options or {},
            results=list(results),
            created_at=now,
            expires_at=now + ttl * 1000,
        )
        try:
            await self.redis.set(cache_key, json.dumps(entry.to_dict()), ex=ttl)
        except Exception as e:
            logger.warning("cache_set_failed", cache_key=cache_key, error=str(e))
            return None

        logger.debug("cache_set", cache_key=cache_key, ttl=ttl, results=len(results))
        return entry

    def ttl_for(self, cache_key: str) -> int:
        """TTL in seconds for a key, selected by its namespace prefix."""
        namespace = cache_key.split(":", 1)[0]
        return self._ttl_map.get(namespace, self._ttl_map[SEARCH_NAMESPACE])

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -------------------------------------------------------------------------
    # Cache Key Generators
    # -------------------------------------------------------------------------

    @staticmethod
    def make_key(
        query: str,
        options: dict[str, Any] | None = None,
        namespace: str = SEARCH_NAMESPACE,
    ) -> str:
        """Generate a deterministic cache key for a query and its options.

        Same normalized query + same options = same key = cache hit.
        Options are serialized with sorted keys, so their order is irrelevant.

        Returns:
            Cache key (e.g., "search:a3f2b1c4d5e6f7a8")
        """
        normalized_query = query.strip().lower()
        serialized_options = json.dumps(
            options or {}, sort_keys=True, separators=(",", ":"), default=str
        )
        key_string = f"{normalized_query}|{serialized_options}"

        # Hash for storage efficiency
        hash_digest = hashlib.sha256(key_string.encode()).hexdigest()[:16]
        return f"{namespace}:{hash_digest}"

    @classmethod
    def similar_key(cls, book_id: str) -> str:
        """Cache key for the similar-books lookup of one book."""
        return cls.make_key(book_id, namespace=SIMILAR_NAMESPACE)


def get_response_cache() -> ResponseCache:
    """FastAPI dependency for ResponseCache."""
    settings = get_settings()
    return ResponseCache(
        get_redis_client(),
        ttl_search=settings.cache_ttl_search,
        ttl_similar=settings.cache_ttl_similar,
    )
