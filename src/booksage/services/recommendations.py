"""RecommendationService - request lifecycle for searches, similar books and feedback.

Search flow (admission control runs earlier, as an API dependency):

    CACHE_CHECK ──hit──▶ respond (source="cache")
        │ miss / regenerate
        ▼
    GENERATE ──failure/timeout──▶ GenerationFailure
        │ success
        ▼
    PERSIST_AND_CACHE ──▶ respond (source=<provider>)

Persistence, the search log, preference lookups and feedback side effects
are best-effort: they run through ``attempt`` and a failure is logged, never
raised to the caller.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from booksage.config import Settings
from booksage.core.exceptions import BookNotFoundError, GenerationFailure, ValidationError
from booksage.core.outcome import attempt
from booksage.services.cache import ResponseCache
from booksage.services.generation.base import (
    BookRecommendation,
    GenerationProvider,
    GenerationResult,
)
from booksage.services.library import LibraryService
from booksage.services.preferences import (
    PreferenceLearner,
    PreferenceProfile,
    length_category,
)
from booksage.services.prompts import build_search_prompt, build_similar_prompt

logger = structlog.get_logger(__name__)

SOURCE_CACHE = "cache"
SOURCE_DATABASE = "database"
SOURCE_HYBRID = "hybrid"
SOURCE_DATABASE_FALLBACK = "database_fallback"


@dataclass
class SearchOutcome:
    """Result of a recommendation search."""

    books: list[BookRecommendation]
    source: str
    query: str
    options: dict[str, Any]
    cache_key: str


@dataclass
class SimilarBooksOutcome:
    """Result of a similar-books lookup."""

    book_id: str
    books: list[BookRecommendation]
    source: str


@dataclass
class FeedbackOutcome:
    """Result of a feedback submission."""

    book_id: str
    liked: bool
    genres: list[str] = field(default_factory=list)
    length_category: str | None = None
    profile: PreferenceProfile | None = None
    logged: bool = False


class RecommendationService:
    """Orchestrates cache, generation, persistence and personalization.

    Usage:
        ```python
        service = RecommendationService(cache, provider, learner, library, settings)
        outcome = await service.search("cozy mysteries set in Japan", user_id="u-1")
        ```
    """

    def __init__(
        self,
        cache: ResponseCache,
        provider: GenerationProvider,
        learner: PreferenceLearner,
        library: LibraryService,
        settings: Settings,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.learner = learner
        self.library = library
        self.settings = settings

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    async def search(
        self,
        query: str,
        options: dict[str, Any] | None = None,
        *,
        regenerate: bool = False,
        identity: str = "unknown",
        user_id: str | None = None,
    ) -> SearchOutcome:
        """Answer a recommendation query from the cache or by generating.

        Args:
            query: Natural-language request
            options: Search filters; part of the cache key
            regenerate: Skip the cache lookup and overwrite the entry
            identity: Rate-limit identity of the caller (for the search log)
            user_id: Account id; enables preference hints in the prompt

        Returns:
            SearchOutcome with ``source`` "cache" or the provider name

        Raises:
            ValidationError: If the trimmed query is too short
            GenerationFailure: If generation fails or times out
        """
        query = (query or "").strip()
        min_length = self.settings.search_min_query_length
        if len(query) < min_length:
            raise ValidationError(
                f"Search query must be at least {min_length} characters",
                field="query",
            )

        options = options or {}
        cache_key = self.cache.make_key(query, options)

        if not regenerate:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.info("search_cache_hit", cache_key=cache_key, results=len(cached))
                return SearchOutcome(
                    books=cached,
                    source=SOURCE_CACHE,
                    query=query,
                    options=options,
                    cache_key=cache_key,
                )

        profile = await self._load_profile(user_id)
        result = await self._generate(build_search_prompt(query, options, profile))
        books = await self._persist(result, query=query)

        if books:
            await self.cache.put(cache_key, query, options, books)

        await attempt(
            "search_log",
            self.library.log_search(
                identity=identity,
                user_id=user_id,
                query=query,
                options=options,
                cache_key=cache_key,
                source=self.provider.name,
                book_ids=[b.id for b in books],
            ),
            cache_key=cache_key,
        )

        logger.info(
            "search_generated",
            cache_key=cache_key,
            provider=self.provider.name,
            results=len(books),
            regenerate=regenerate,
        )
        return SearchOutcome(
            books=books,
            source=self.provider.name,
            query=query,
            options=options,
            cache_key=cache_key,
        )

    # -------------------------------------------------------------------------
    # Similar books
    # -------------------------------------------------------------------------

    async def similar_books(self, book_id: str) -> SimilarBooksOutcome:
        """Find books similar to a stored book.

        Library matches are preferred; generation only tops them up when
        fewer than half of the target count are available.

        Raises:
            BookNotFoundError: If no book has this id
        """
        cache_key = self.cache.similar_key(book_id)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return SimilarBooksOutcome(book_id=book_id, books=cached, source=SOURCE_CACHE)

        book = await self.library.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)

        target = self.settings.similar_books_count
        matches = await self.library.find_similar(book, limit=target)

        if len(matches) * 2 >= target:
            books, source = matches[:target], SOURCE_DATABASE
        else:
            prompt = build_similar_prompt(
                book.title,
                book.author,
                list(book.genres or []),
                count=target,
                exclude_titles=[m.title for m in matches],
            )
            try:
                result = await self._generate(prompt)
            except GenerationFailure as e:
                logger.warning(
                    "similar_books_generation_failed",
                    book_id=book_id,
                    error=e.message,
                )
                return SimilarBooksOutcome(
                    book_id=book_id, books=matches, source=SOURCE_DATABASE_FALLBACK
                )

            generated = await self._persist(result, query=f"similar to {book.title}")
            books = self._merge(book.id, book.dedup_key, matches, generated, target)
            source = SOURCE_HYBRID

        if books:
            await self.cache.put(cache_key, book_id, {}, books)

        logger.info(
            "similar_books_resolved",
            book_id=book_id,
            source=source,
            results=len(books),
        )
        return SimilarBooksOutcome(book_id=book_id, books=books, source=source)

    # -------------------------------------------------------------------------
    # Feedback
    # -------------------------------------------------------------------------

    async def submit_feedback(
        self,
        *,
        book_id: str,
        liked: bool,
        genres: list[str] | None = None,
        page_count: int | None = None,
        moods: list[str] | None = None,
        user_id: str | None = None,
    ) -> FeedbackOutcome:
        """Record a like/dislike and fold it into the user's preferences.

        Genres and page count come from the request when given, otherwise
        from the stored book.

        Raises:
            ValidationError: If ``book_id`` is empty or ``liked`` is not a bool
            BookNotFoundError: If genres are missing and the book is unknown
        """
        book_id = (book_id or "").strip()
        if not book_id:
            raise ValidationError("Book ID is required", field="book_id")
        if not isinstance(liked, bool):
            raise ValidationError("Liked must be a boolean", field="liked")

        genres = [g for g in genres or [] if g]
        if not genres:
            book = await self.library.get_book(book_id)
            if book is None:
                raise BookNotFoundError(book_id)
            genres = list(book.genres or [])
            if page_count is None:
                page_count = book.page_count
        elif page_count is None:
            lookup = await attempt(
                "book_lookup", self.library.get_book(book_id), book_id=book_id
            )
            if lookup.value is not None:
                page_count = lookup.value.page_count

        length = length_category(page_count)
        length_label = length.value if length else None
        outcome = FeedbackOutcome(
            book_id=book_id,
            liked=liked,
            genres=genres,
            length_category=length_label,
        )

        if user_id:
            updated = await attempt(
                "preference_update",
                self.learner.record_feedback(
                    user_id,
                    genres=genres,
                    liked=liked,
                    length_category=length,
                    moods=moods or [],
                ),
                user_id=user_id,
                book_id=book_id,
            )
            outcome.profile = updated.value

        logged = await attempt(
            "feedback_log",
            self.library.log_feedback(
                user_id=user_id,
                book_id=book_id,
                liked=liked,
                genres=genres,
                length_category=length_label,
                moods=moods or [],
            ),
            book_id=book_id,
        )
        outcome.logged = logged.ok

        logger.info(
            "feedback_recorded",
            book_id=book_id,
            liked=liked,
            user_id=user_id,
            preferences_updated=outcome.profile is not None,
        )
        return outcome

    # -------------------------------------------------------------------------
    # Private helpers
    # -------------------------------------------------------------------------

    async def _generate(self, prompt: str) -> GenerationResult:
        timeout = self.settings.generation_timeout
        try:
            return await asyncio.wait_for(
                self.provider.get_recommendations(prompt), timeout=timeout
            )
        except TimeoutError as e:
            logger.error(
                "generation_timeout",
                provider=self.provider.name,
                timeout=timeout,
            )
            raise GenerationFailure(
                provider=self.provider.name,
                cause=f"Timed out after {timeout}s",
            ) from e

    async def _persist(
        self,
        result: GenerationResult,
        *,
        query: str,
    ) -> list[BookRecommendation]:
        """Upsert into the library; fall back to the generated ids on failure."""
        if not result.recommendations:
            return []
        persisted = await attempt(
            "book_upsert",
            self.library.upsert_recommendations(
                result.recommendations, query=query, source=self.provider.name
            ),
            query=query,
        )
        return persisted.value if persisted.ok else result.recommendations

    async def _load_profile(self, user_id: str | None) -> PreferenceProfile | None:
        if not user_id:
            return None
        loaded = await attempt(
            "preference_lookup", self.learner.get_profile(user_id), user_id=user_id
        )
        profile = loaded.value
        return None if profile is None or profile.is_empty else profile

    def _merge(
        self,
        book_id: str,
        book_key: str,
        matches: list[BookRecommendation],
        generated: list[BookRecommendation],
        target: int,
    ) -> list[BookRecommendation]:
        """Library matches first, then new generated books, without duplicates."""
        seen_ids = {book_id}
        seen_keys = {book_key}
        merged: list[BookRecommendation] = []
        for rec in [*matches, *generated]:
            key = self.library.dedup_key(rec.title, rec.author)
            if rec.id in seen_ids or key in seen_keys:
                continue
            seen_ids.add(rec.id)
            seen_keys.add(key)
            merged.append(rec)
            if len(merged) >= target:
                break
        return merged
