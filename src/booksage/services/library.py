"""Library service for durable, deduplicated book records and activity logs.

Generated recommendations are upserted into the ``books`` table keyed by a
normalized "title::author" string, so a book surfaced by many searches is
stored once and keeps a stable id. The service also writes the append-only
search and feedback logs.

Every write method is its own unit of work (commit on success, rollback on
failure), so one failed best-effort write never poisons the session for the
rest of the request.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError

from booksage.models.activity import FeedbackLogEntry, SearchLogEntry
from booksage.models.book import Book
from booksage.repositories.activity import FeedbackLogRepository, SearchLogRepository
from booksage.repositories.book import BookRepository
from booksage.services.generation.base import BookRecommendation, generate_book_id

logger = structlog.get_logger(__name__)

MAX_BOOK_ID_LENGTH = 64


class LibraryService:
    """Service for managing library persistence.

    Usage:
        ```python
        service = LibraryService(book_repo, search_log_repo, feedback_log_repo)
        books = await service.upsert_recommendations(recs, query="space opera", source="openai")
        ```
    """

    def __init__(
        self,
        book_repo: BookRepository,
        search_log_repo: SearchLogRepository,
        feedback_log_repo: FeedbackLogRepository,
    ) -> None:
        """Initialize the service with repositories.

        Args:
            book_repo: Repository for Book entities
            search_log_repo: Repository for the search log
            feedback_log_repo: Repository for the feedback log
        """
        self.book_repo = book_repo
        self.search_log_repo = search_log_repo
        self.feedback_log_repo = feedback_log_repo
        self.session = book_repo.session

    # -------------------------------------------------------------------------
    # Book Operations
    # -------------------------------------------------------------------------

    @staticmethod
    def dedup_key(title: str, author: str) -> str:
        """Normalize a title/author pair: lowercase, whitespace collapsed."""

        def normalize(value: str) -> str:
            return " ".join(value.lower().split())

        return f"{normalize(title)}::{normalize(author)}"

    async def get_book(self, book_id: str) -> Book | None:
        """Get a book record by id."""
        return await self.book_repo.get_by_id(book_id)

    async def upsert_recommendations(
        self,
        recommendations: list[BookRecommendation],
        *,
        query: str,
        source: str,
    ) -> list[BookRecommendation]:
        """Persist recommendations, reusing existing records for known books.

        The returned recommendations carry the canonical record id in place
        of the generated one. A book appearing twice in one batch is
        returned once.

        Args:
            recommendations: Normalized recommendations from a provider
            query: Query (or reference book id) that surfaced them
            source: Provider name stored on newly created records

        Returns:
            Recommendations with canonical ids, in input order
        """
        try:
            async with self._unit_of_work():
                return await self._upsert_batch(recommendations, query, source)
        except IntegrityError:
            # A concurrent request inserted one of the books first
            logger.info("book_upsert_conflict_retry", query=query)
            async with self._unit_of_work():
                return await self._upsert_batch(recommendations, query, source)

    async def find_similar(self, book: Book, *, limit: int) -> list[BookRecommendation]:
        """Best-rated library books sharing a genre with ``book`` (itself excluded)."""
        matches = await self.book_repo.find_by_genres(
            book.genres or [], exclude_id=book.id, limit=limit
        )
        logger.debug("library_similar_matches", book_id=book.id, matches=len(matches))
        return [self.to_recommendation(m) for m in matches]

    @staticmethod
    def to_recommendation(book: Book) -> BookRecommendation:
        """Convert a stored book into the canonical recommendation shape."""
        return BookRecommendation(
            id=book.id,
            title=book.title,
            author=book.author,
            publication_date=book.publication_date,
            description=book.description,
            genres=list(book.genres or []),
            rating=book.rating,
            review_count=book.review_count,
            page_count=book.page_count,
            image_url=book.image_url,
        )

    # -------------------------------------------------------------------------
    # Activity Logs
    # -------------------------------------------------------------------------

    async def log_search(
        self,
        *,
        identity: str,
        query: str,
        options: dict[str, Any],
        cache_key: str,
        source: str,
        book_ids: list[str],
        user_id: str | None = None,
    ) -> SearchLogEntry:
        """Append one generated search to the search log."""
        async with self._unit_of_work():
            entry = await self.search_log_repo.create(
                SearchLogEntry(
                    user_id=user_id,
                    identity=identity,
                    query=query,
                    options=options,
                    cache_key=cache_key,
                    source=source,
                    result_count=len(book_ids),
                    book_ids=book_ids,
                )
            )
        logger.debug("search_logged", query=query, results=len(book_ids))
        return entry

    async def log_feedback(
        self,
        *,
        book_id: str,
        liked: bool,
        genres: list[str],
        length_category: str | None = None,
        moods: list[str] | None = None,
        user_id: str | None = None,
    ) -> FeedbackLogEntry:
        """Append one feedback event to the feedback log."""
        async with self._unit_of_work():
            entry = await self.feedback_log_repo.create(
                FeedbackLogEntry(
                    user_id=user_id,
                    book_id=book_id,
                    genres=genres,
                    length_category=length_category,
                    moods=moods or [],
                    liked=liked,
                )
            )
        logger.debug("feedback_logged", book_id=book_id, liked=liked)
        return entry

    # -------------------------------------------------------------------------
    # Private helpers
    # -------------------------------------------------------------------------

    async def _upsert_batch(
        self,
        recommendations: list[BookRecommendation],
        query: str,
        source: str,
    ) -> list[BookRecommendation]:
        canonical: dict[str, BookRecommendation] = {}

        for rec in recommendations:
            key = self.dedup_key(rec.title, rec.author)
            if key in canonical:
                continue

            book = await self.book_repo.get_by_dedup_key(key)
            if book is None:
                book = await self.book_repo.create(
                    Book(
                        id=await self._available_id(rec.id),
                        dedup_key=key,
                        title=rec.title,
                        author=rec.author,
                        publication_date=rec.publication_date,
                        description=rec.description,
                        genres=list(rec.genres),
                        rating=rec.rating,
                        review_count=rec.review_count,
                        page_count=rec.page_count,
                        image_url=rec.image_url,
                        source=source,
                        search_queries=[query],
                    )
                )
                logger.info("book_created", book_id=book.id, title=book.title)
            elif query not in (book.search_queries or []):
                # Reassign so the JSON column is marked dirty
                book.search_queries = [*(book.search_queries or []), query]
                await self.book_repo.update(book)
                logger.debug("book_query_recorded", book_id=book.id, query=query)

            canonical[key] = self.to_recommendation(book)

        return list(canonical.values())

    async def _available_id(self, candidate: str) -> str:
        """Keep the generated id unless it is unusable or already taken."""
        if len(candidate) <= MAX_BOOK_ID_LENGTH and not await self.book_repo.exists(
            candidate
        ):
            return candidate
        return generate_book_id()

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
