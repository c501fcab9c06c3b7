"""PreferenceLearner - online per-user taste model from like/dislike feedback.

Every feedback event touches a few dimension values (each genre of the book,
its length bucket, any moods). For each touched value the learner keeps two
counters, and the probability that the user likes that value is simply
``likes / count``. There is no decay: old feedback weighs as much as new.

Redis layout:
    preferences:{user_id}  hash
        {dimension}|{label}|count -> int
        {dimension}|{label}|likes -> int
        preferred_length          -> short | medium | long
        updated_at                -> ISO timestamp
    favorites:{user_id}    sorted set of liked genres, scored by first like

Counters only ever change through HINCRBY inside one MULTI, so concurrent
events for the same user merge instead of overwriting each other.
"""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from booksage.core.exceptions import StoreUnavailableError
from booksage.core.logging import get_logger
from booksage.core.redis import get_redis_client

logger = get_logger(__name__)

SHORT_BOOK_MAX_PAGES = 300
MEDIUM_BOOK_MAX_PAGES = 500


class PreferenceDimension(str, Enum):
    """Taste dimensions tracked per user."""

    GENRE = "genre"
    LENGTH = "length"
    MOOD = "mood"


class LengthCategory(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


def length_category(page_count: int | None) -> LengthCategory | None:
    """Bucket a page count; unknown or zero page counts have no bucket."""
    if not page_count or page_count <= 0:
        return None
    if page_count < SHORT_BOOK_MAX_PAGES:
        return LengthCategory.SHORT
    if page_count < MEDIUM_BOOK_MAX_PAGES:
        return LengthCategory.MEDIUM
    return LengthCategory.LONG


@dataclass
class PreferenceStat:
    """Counters for one dimension value."""

    count: int = 0
    likes: int = 0

    @property
    def probability(self) -> float:
        return self.likes / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "likes": self.likes,
            "probability": self.probability,
        }


@dataclass
class PreferenceProfile:
    """A user's cumulative taste tallies. Empty maps for unknown users."""

    user_id: str
    genre_preferences: dict[str, PreferenceStat] = field(default_factory=dict)
    length_preferences: dict[str, PreferenceStat] = field(default_factory=dict)
    mood_preferences: dict[str, PreferenceStat] = field(default_factory=dict)
    favorite_genres: list[str] = field(default_factory=list)
    preferred_length: str | None = None
    updated_at: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.genre_preferences
            or self.length_preferences
            or self.mood_preferences
            or self.favorite_genres
        )

    def preferences_for(self, dimension: PreferenceDimension) -> dict[str, PreferenceStat]:
        return {
            PreferenceDimension.GENRE: self.genre_preferences,
            PreferenceDimension.LENGTH: self.length_preferences,
            PreferenceDimension.MOOD: self.mood_preferences,
        }[dimension]

    def liked_labels(
        self,
        dimension: PreferenceDimension,
        threshold: float = 0.5,
    ) -> list[str]:
        """Labels whose like probability is at least ``threshold``, best first."""
        stats = self.preferences_for(dimension)
        liked = [label for label, stat in stats.items() if stat.probability >= threshold]
        return sorted(liked, key=lambda label: -stats[label].probability)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "genre_preferences": {k: v.to_dict() for k, v in self.genre_preferences.items()},
            "length_preferences": {k: v.to_dict() for k, v in self.length_preferences.items()},
            "mood_preferences": {k: v.to_dict() for k, v in self.mood_preferences.items()},
            "favorite_genres": list(self.favorite_genres),
            "preferred_length": self.preferred_length,
            "updated_at": self.updated_at,
        }


class PreferenceLearner:
    """Incremental like-probability model over genre, length and mood.

    Usage:
        ```python
        learner = PreferenceLearner(redis)
        await learner.record_feedback("user-1", genres=["Horror"], liked=True)
        await learner.probability("user-1", PreferenceDimension.GENRE, "Horror")
        # 1.0
        ```
    """

    PROFILE_PREFIX = "preferences"
    FAVORITES_PREFIX = "favorites"

    def __init__(
        self,
        redis: Redis,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the learner.

        Args:
            redis: Async Redis client
            clock: Returns the current time in seconds
        """
        self.redis = redis
        self._clock = clock

    async def record_feedback(
        self,
        user_id: str,
        *,
        genres: Iterable[str],
        liked: bool,
        length_category: LengthCategory | str | None = None,
        moods: Iterable[str] = (),
    ) -> PreferenceProfile:
        """Fold one like/dislike event into the user's profile.

        Args:
            user_id: Account id
            genres: Genres of the rated book (duplicates are counted once)
            liked: Whether the user liked the book
            length_category: Length bucket of the book, if known
            moods: Mood labels attached to the feedback

        Returns:
            The updated profile

        Raises:
            StoreUnavailableError: If Redis cannot be reached
        """
        genre_labels = _unique_labels(genres)
        mood_labels = _unique_labels(moods)
        length_label = LengthCategory(length_category).value if length_category else None

        touched: list[tuple[PreferenceDimension, str]] = [
            (PreferenceDimension.GENRE, g) for g in genre_labels
        ]
        if length_label:
            touched.append((PreferenceDimension.LENGTH, length_label))
        touched.extend((PreferenceDimension.MOOD, m) for m in mood_labels)

        key = self.profile_key(user_id)
        now = self._clock()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for dimension, label in touched:
                    pipe.hincrby(key, _field(dimension, label, "count"), 1)
                    if liked:
                        pipe.hincrby(key, _field(dimension, label, "likes"), 1)

                if liked and genre_labels:
                    # Sub-millisecond offsets keep first-seen order within one event
                    base = int(now * 1000)
                    pipe.zadd(
                        self.favorites_key(user_id),
                        {genre: base + i / 1000 for i, genre in enumerate(genre_labels)},
                        nx=True,
                    )
                if liked and length_label:
                    pipe.hset(key, "preferred_length", length_label)

                pipe.hset(key, "updated_at", _isoformat(now))
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailableError(store="redis", error=str(e)) from e

        logger.info(
            "preferences_updated",
            user_id=user_id,
            liked=liked,
            genres=genre_labels,
            length_category=length_label,
            moods=mood_labels,
        )
        return await self.get_profile(user_id)

    async def get_profile(self, user_id: str) -> PreferenceProfile:
        """Load a user's profile; unknown users get an empty one.

        Raises:
            StoreUnavailableError: If Redis cannot be reached
        """
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.hgetall(self.profile_key(user_id))
                pipe.zrange(self.favorites_key(user_id), 0, -1)
                raw, favorites = await pipe.execute()
        except RedisError as e:
            raise StoreUnavailableError(store="redis", error=str(e)) from e

        profile = PreferenceProfile(
            user_id=user_id,
            favorite_genres=list(favorites),
            preferred_length=raw.get("preferred_length"),
            updated_at=raw.get("updated_at"),
        )
        for name, value in raw.items():
            parsed = _parse_field(name)
            if parsed is None:
                continue
            dimension, label, counter = parsed
            stat = profile.preferences_for(dimension).setdefault(label, PreferenceStat())
            setattr(stat, counter, int(value))
        return profile

    async def probability(
        self,
        user_id: str,
        dimension: PreferenceDimension | str,
        label: str,
    ) -> float | None:
        """Like probability for one value, or None if it was never rated."""
        dimension = PreferenceDimension(dimension)
        try:
            count, likes = await self.redis.hmget(
                self.profile_key(user_id),
                [_field(dimension, label, "count"), _field(dimension, label, "likes")],
            )
        except RedisError as e:
            raise StoreUnavailableError(store="redis", error=str(e)) from e

        if not count or int(count) == 0:
            return None
        return int(likes or 0) / int(count)

    @classmethod
    def profile_key(cls, user_id: str) -> str:
        return f"{cls.PROFILE_PREFIX}:{user_id}"

    @classmethod
    def favorites_key(cls, user_id: str) -> str:
        return f"{cls.FAVORITES_PREFIX}:{user_id}"


def _field(dimension: PreferenceDimension, label: str, counter: str) -> str:
    return f"{dimension.value}|{label}|{counter}"


def _parse_field(name: str) -> tuple[PreferenceDimension, str, str] | None:
    """Split a counter field back into (dimension, label, counter)."""
    head, sep, counter = name.rpartition("|")
    if not sep or counter not in ("count", "likes"):
        return None
    dimension, sep, label = head.partition("|")
    if not sep:
        return None
    try:
        return PreferenceDimension(dimension), label, counter
    except ValueError:
        return None


def _unique_labels(labels: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for label in labels:
        if isinstance(label, str) and label.strip():
            seen.setdefault(label.strip(), None)
    return list(seen)


def _isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat()


def get_preference_learner() -> PreferenceLearner:
    """FastAPI dependency for PreferenceLearner."""
    return PreferenceLearner(get_redis_client())
