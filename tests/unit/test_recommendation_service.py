"""Tests for RecommendationService.

The cache runs on fakeredis; the provider, learner and library are mocks so
each branch of the request lifecycle can be driven directly.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakeredis import FakeAsyncRedis

from booksage.config import Settings
from booksage.core.exceptions import (
    BookNotFoundError,
    GenerationFailure,
    StoreUnavailableError,
    ValidationError,
)
from booksage.services.cache import ResponseCache
from booksage.services.generation.base import BookRecommendation, GenerationResult
from booksage.services.library import LibraryService
from booksage.services.preferences import LengthCategory, PreferenceProfile
from booksage.services.recommendations import (
    SOURCE_CACHE,
    SOURCE_DATABASE,
    SOURCE_DATABASE_FALLBACK,
    SOURCE_HYBRID,
    RecommendationService,
)
from mocks.generation_responses import make_recommendation

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def cache(fake_redis: FakeAsyncRedis, clock) -> ResponseCache:
    return ResponseCache(fake_redis, clock=clock)


@pytest.fixture
def mock_learner() -> MagicMock:
    learner = MagicMock()
    learner.get_profile = AsyncMock(return_value=PreferenceProfile(user_id="u1"))
    learner.record_feedback = AsyncMock(
        side_effect=lambda user_id, **_: PreferenceProfile(
            user_id=user_id, favorite_genres=["Fantasy"]
        )
    )
    return learner


@pytest.fixture
def mock_library() -> MagicMock:
    """Library whose upsert echoes its input and whose logs succeed."""
    library = MagicMock()
    library.dedup_key = LibraryService.dedup_key
    library.upsert_recommendations = AsyncMock(side_effect=lambda recs, **_: list(recs))
    library.log_search = AsyncMock(return_value=None)
    library.log_feedback = AsyncMock(return_value=None)
    library.get_book = AsyncMock(return_value=None)
    library.find_similar = AsyncMock(return_value=[])
    return library


@pytest.fixture
def service(
    cache: ResponseCache,
    mock_provider: MagicMock,
    mock_learner: MagicMock,
    mock_library: MagicMock,
    test_settings: Settings,
) -> RecommendationService:
    return RecommendationService(
        cache, mock_provider, mock_learner, mock_library, test_settings
    )


def _stored_book(**overrides: object) -> SimpleNamespace:
    """Attribute bag standing in for a Book row."""
    fields: dict[str, object] = {
        "id": "book-hobbit",
        "title": "The Hobbit",
        "author": "J. R. R. Tolkien",
        "genres": ["Fantasy"],
        "page_count": 310,
        "dedup_key": "the hobbit::j. r. r. tolkien",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


# =============================================================================
# Search
# =============================================================================


class TestSearch:
    """Tests for the search lifecycle."""

    @pytest.mark.asyncio
    async def test_miss_generates_persists_and_caches(
        self,
        service: RecommendationService,
        cache: ResponseCache,
        mock_provider: MagicMock,
        mock_library: MagicMock,
        sample_recommendations: list[BookRecommendation],
    ) -> None:
        outcome = await service.search("epic fantasy", {"length": "long"})

        assert outcome.source == "openai"
        assert outcome.books == sample_recommendations
        mock_provider.get_recommendations.assert_awaited_once()
        mock_library.upsert_recommendations.assert_awaited_once()
        assert await cache.get(outcome.cache_key) == sample_recommendations
        log_kwargs = mock_library.log_search.call_args.kwargs
        assert log_kwargs["source"] == "openai"
        assert log_kwargs["book_ids"] == [b.id for b in sample_recommendations]

    @pytest.mark.asyncio
    async def test_second_identical_query_is_served_from_cache(
        self, service: RecommendationService, mock_provider: MagicMock
    ) -> None:
        first = await service.search("Epic Fantasy", {"length": "long"})
        second = await service.search("  epic fantasy ", {"length": "long"})

        assert second.source == SOURCE_CACHE
        assert second.books == first.books
        assert second.cache_key == first.cache_key
        assert mock_provider.get_recommendations.await_count == 1

    @pytest.mark.asyncio
    async def test_regenerate_bypasses_and_overwrites_cache(
        self,
        service: RecommendationService,
        cache: ResponseCache,
        mock_provider: MagicMock,
    ) -> None:
        first = await service.search("epic fantasy")
        replacement = [make_recommendation("Mistborn", "Brandon Sanderson")]
        mock_provider.get_recommendations.return_value = GenerationResult(
            recommendations=replacement, raw=None
        )

        outcome = await service.search("epic fantasy", regenerate=True)

        assert outcome.source == "openai"
        assert outcome.books == replacement
        assert await cache.get(first.cache_key) == replacement

    @pytest.mark.asyncio
    async def test_prompt_includes_query_and_options(
        self, service: RecommendationService, mock_provider: MagicMock
    ) -> None:
        await service.search("haunted houses", {"mood": "eerie"})

        prompt = mock_provider.get_recommendations.call_args.args[0]
        assert "haunted houses" in prompt
        assert "with a eerie mood" in prompt

    @pytest.mark.asyncio
    async def test_user_profile_shapes_prompt(
        self,
        service: RecommendationService,
        mock_provider: MagicMock,
        mock_learner: MagicMock,
    ) -> None:
        mock_learner.get_profile.return_value = PreferenceProfile(
            user_id="u1", favorite_genres=["Horror"]
        )

        await service.search("haunted houses", user_id="u1")

        prompt = mock_provider.get_recommendations.call_args.args[0]
        assert "genres like Horror" in prompt

    @pytest.mark.asyncio
    async def test_profile_lookup_failure_does_not_fail_search(
        self,
        service: RecommendationService,
        mock_learner: MagicMock,
    ) -> None:
        mock_learner.get_profile.side_effect = StoreUnavailableError(store="redis")

        outcome = await service.search("haunted houses", user_id="u1")

        assert outcome.source == "openai"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "  ", "ab", " ab "])
    async def test_short_query_is_rejected(
        self,
        service: RecommendationService,
        mock_provider: MagicMock,
        query: str,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.search(query)

        assert exc_info.value.details == {"field": "query"}
        mock_provider.get_recommendations.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generation_failure_propagates_and_nothing_is_cached(
        self,
        service: RecommendationService,
        cache: ResponseCache,
        mock_provider: MagicMock,
    ) -> None:
        mock_provider.get_recommendations.side_effect = GenerationFailure(
            provider="openai", cause="boom"
        )

        with pytest.raises(GenerationFailure):
            await service.search("epic fantasy")

        assert await cache.get(cache.make_key("epic fantasy")) is None

    @pytest.mark.asyncio
    async def test_timeout_becomes_generation_failure(
        self,
        cache: ResponseCache,
        mock_provider: MagicMock,
        mock_learner: MagicMock,
        mock_library: MagicMock,
        test_settings: Settings,
    ) -> None:
        async def slow(prompt: str) -> GenerationResult:
            await asyncio.sleep(5)
            return GenerationResult(recommendations=[], raw=None)

        mock_provider.get_recommendations.side_effect = slow
        settings = test_settings.model_copy(update={"generation_timeout": 0.05})
        service = RecommendationService(
            cache, mock_provider, mock_learner, mock_library, settings
        )

        with pytest.raises(GenerationFailure) as exc_info:
            await service.search("epic fantasy")

        assert "Timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_empty_generation_is_not_cached(
        self,
        service: RecommendationService,
        cache: ResponseCache,
        mock_provider: MagicMock,
        mock_library: MagicMock,
    ) -> None:
        mock_provider.get_recommendations.return_value = GenerationResult(
            recommendations=[], raw="no books today"
        )

        outcome = await service.search("epic fantasy")

        assert outcome.books == []
        mock_library.upsert_recommendations.assert_not_awaited()
        assert await cache.get(outcome.cache_key) is None

    @pytest.mark.asyncio
    async def test_persistence_failure_returns_generated_books(
        self,
        service: RecommendationService,
        mock_library: MagicMock,
        sample_recommendations: list[BookRecommendation],
    ) -> None:
        mock_library.upsert_recommendations.side_effect = RuntimeError("db down")
        mock_library.log_search.side_effect = RuntimeError("db down")

        outcome = await service.search("epic fantasy")

        assert outcome.books == sample_recommendations

    @pytest.mark.asyncio
    async def test_canonical_ids_are_returned(
        self,
        service: RecommendationService,
        mock_library: MagicMock,
        sample_recommendations: list[BookRecommendation],
    ) -> None:
        canonical = [
            make_recommendation(r.title, r.author, id=f"stored-{i}")
            for i, r in enumerate(sample_recommendations)
        ]
        mock_library.upsert_recommendations.side_effect = None
        mock_library.upsert_recommendations.return_value = canonical

        outcome = await service.search("epic fantasy")

        assert [b.id for b in outcome.books] == ["stored-0", "stored-1", "stored-2"]


# =============================================================================
# Similar books
# =============================================================================


class TestSimilarBooks:
    """Tests for library-first similar-book lookup."""

    @pytest.mark.asyncio
    async def test_unknown_book_raises(self, service: RecommendationService) -> None:
        with pytest.raises(BookNotFoundError):
            await service.similar_books("missing")

    @pytest.mark.asyncio
    async def test_enough_library_matches_skip_generation(
        self,
        service: RecommendationService,
        mock_library: MagicMock,
        mock_provider: MagicMock,
    ) -> None:
        mock_library.get_book.return_value = _stored_book()
        mock_library.find_similar.return_value = [
            make_recommendation(f"Book {i}", "Someone") for i in range(3)
        ]

        outcome = await service.similar_books("book-hobbit")

        assert outcome.source == SOURCE_DATABASE
        assert len(outcome.books) == 3
        mock_provider.get_recommendations.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sparse_library_is_topped_up_by_generation(
        self,
        service: RecommendationService,
        mock_library: MagicMock,
        mock_provider: MagicMock,
    ) -> None:
        match = make_recommendation("Eragon", "Christopher Paolini")
        mock_library.get_book.return_value = _stored_book()
        mock_library.find_similar.return_value = [match]
        mock_provider.get_recommendations.return_value = GenerationResult(
            recommendations=[
                make_recommendation("The Neverending Story", "Michael Ende"),
                make_recommendation("eragon", "christopher  paolini"),
                make_recommendation("The Last Unicorn", "Peter S. Beagle"),
            ],
            raw=None,
        )

        outcome = await service.similar_books("book-hobbit")

        assert outcome.source == SOURCE_HYBRID
        assert [b.title for b in outcome.books] == [
            "Eragon",
            "The Neverending Story",
            "The Last Unicorn",
        ]
        prompt = mock_provider.get_recommendations.call_args.args[0]
        assert '"The Hobbit"' in prompt
        assert '"Eragon"' in prompt

    @pytest.mark.asyncio
    async def test_reference_book_is_never_recommended(
        self,
        service: RecommendationService,
        mock_library: MagicMock,
        mock_provider: MagicMock,
    ) -> None:
        mock_library.get_book.return_value = _stored_book()
        mock_provider.get_recommendations.return_value = GenerationResult(
            recommendations=[
                make_recommendation("The Hobbit", "J. R. R. Tolkien"),
                make_recommendation("Watership Down", "Richard Adams"),
            ],
            raw=None,
        )

        outcome = await service.similar_books("book-hobbit")

        assert [b.title for b in outcome.books] == ["Watership Down"]

    @pytest.mark.asyncio
    async def test_generation_failure_falls_back_to_library(
        self,
        service: RecommendationService,
        cache: ResponseCache,
        mock_library: MagicMock,
        mock_provider: MagicMock,
    ) -> None:
        match = make_recommendation("Eragon", "Christopher Paolini")
        mock_library.get_book.return_value = _stored_book()
        mock_library.find_similar.return_value = [match]
        mock_provider.get_recommendations.side_effect = GenerationFailure(
            provider="openai", cause="boom"
        )

        outcome = await service.similar_books("book-hobbit")

        assert outcome.source == SOURCE_DATABASE_FALLBACK
        assert outcome.books == [match]
        assert await cache.get(cache.similar_key("book-hobbit")) is None

    @pytest.mark.asyncio
    async def test_result_is_cached(
        self,
        service: RecommendationService,
        mock_library: MagicMock,
    ) -> None:
        mock_library.get_book.return_value = _stored_book()
        mock_library.find_similar.return_value = [
            make_recommendation(f"Book {i}", "Someone") for i in range(4)
        ]

        await service.similar_books("book-hobbit")
        again = await service.similar_books("book-hobbit")

        assert again.source == SOURCE_CACHE
        assert mock_library.get_book.await_count == 1


# =============================================================================
# Feedback
# =============================================================================


class TestSubmitFeedback:
    """Tests for feedback handling."""

    @pytest.mark.asyncio
    async def test_feedback_with_user_updates_preferences(
        self,
        service: RecommendationService,
        mock_learner: MagicMock,
        mock_library: MagicMock,
    ) -> None:
        outcome = await service.submit_feedback(
            book_id="book-1",
            liked=True,
            genres=["Fantasy"],
            page_count=250,
            moods=["cozy"],
            user_id="u1",
        )

        assert outcome.logged is True
        assert outcome.length_category == "short"
        assert outcome.profile is not None
        assert outcome.profile.favorite_genres == ["Fantasy"]
        kwargs = mock_learner.record_feedback.call_args.kwargs
        assert kwargs["genres"] == ["Fantasy"]
        assert kwargs["length_category"] == LengthCategory.SHORT
        assert kwargs["moods"] == ["cozy"]
        mock_library.get_book.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_anonymous_feedback_is_logged_only(
        self,
        service: RecommendationService,
        mock_learner: MagicMock,
        mock_library: MagicMock,
    ) -> None:
        outcome = await service.submit_feedback(
            book_id="book-1", liked=False, genres=["Horror"], page_count=0
        )

        assert outcome.profile is None
        assert outcome.logged is True
        assert outcome.length_category is None
        mock_learner.record_feedback.assert_not_awaited()
        mock_library.log_feedback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_genres_and_length_come_from_stored_book(
        self,
        service: RecommendationService,
        mock_library: MagicMock,
    ) -> None:
        mock_library.get_book.return_value = _stored_book(page_count=720)

        outcome = await service.submit_feedback(
            book_id="book-hobbit", liked=True, user_id="u1"
        )

        assert outcome.genres == ["Fantasy"]
        assert outcome.length_category == "long"

    @pytest.mark.asyncio
    async def test_unknown_book_without_genres_raises(
        self, service: RecommendationService
    ) -> None:
        with pytest.raises(BookNotFoundError):
            await service.submit_feedback(book_id="missing", liked=True)

    @pytest.mark.asyncio
    async def test_unknown_book_with_genres_is_accepted(
        self, service: RecommendationService
    ) -> None:
        outcome = await service.submit_feedback(
            book_id="missing", liked=True, genres=["Poetry"]
        )

        assert outcome.genres == ["Poetry"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("book_id", "liked", "field"),
        [("", True, "book_id"), ("   ", True, "book_id"), ("book-1", "yes", "liked")],
    )
    async def test_invalid_input(
        self,
        service: RecommendationService,
        book_id: str,
        liked: object,
        field: str,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.submit_feedback(book_id=book_id, liked=liked)  # type: ignore[arg-type]

        assert exc_info.value.details == {"field": field}

    @pytest.mark.asyncio
    async def test_side_effect_failures_do_not_fail_feedback(
        self,
        service: RecommendationService,
        mock_learner: MagicMock,
        mock_library: MagicMock,
    ) -> None:
        mock_learner.record_feedback.side_effect = StoreUnavailableError(store="redis")
        mock_library.log_feedback.side_effect = RuntimeError("db down")

        outcome = await service.submit_feedback(
            book_id="book-1", liked=True, genres=["Fantasy"], user_id="u1"
        )

        assert outcome.profile is None
        assert outcome.logged is False

    @pytest.mark.asyncio
    async def test_book_lookup_failure_still_updates_preferences(
        self,
        service: RecommendationService,
        mock_learner: MagicMock,
        mock_library: MagicMock,
    ) -> None:
        mock_library.get_book.side_effect = RuntimeError("db down")

        outcome = await service.submit_feedback(
            book_id="book-1", liked=True, genres=["Horror"], user_id="u1"
        )

        mock_learner.record_feedback.assert_awaited_once()
        assert mock_learner.record_feedback.call_args.kwargs["length_category"] is None
        assert outcome.genres == ["Horror"]
        assert outcome.length_category is None
        assert outcome.profile is not None

    @pytest.mark.asyncio
    async def test_book_lookup_failure_without_genres_propagates(
        self, service: RecommendationService, mock_library: MagicMock
    ) -> None:
        mock_library.get_book.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await service.submit_feedback(book_id="book-1", liked=True, user_id="u1")
