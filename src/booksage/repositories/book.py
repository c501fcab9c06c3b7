"""BookRepository for managing deduplicated Book records."""

from sqlalchemy import select

from booksage.models.book import Book
from booksage.repositories.base import BaseRepository


class BookRepository(BaseRepository[Book]):
    """Repository for Book entities."""

    async def get_by_dedup_key(self, dedup_key: str) -> Book | None:
        """Find a book by its normalized title/author key.

        Args:
            dedup_key: Key produced by ``LibraryService.dedup_key``

        Returns:
            Book if found, None otherwise
        """
        result = await self.session.execute(
            select(Book).where(Book.dedup_key == dedup_key)
        )
        return result.scalar_one_or_none()

    async def find_by_genres(
        self,
        genres: list[str],
        *,
        exclude_id: str | None = None,
        limit: int = 6,
        scan_limit: int = 500,
    ) -> list[Book]:
        """Find the highest-rated books sharing at least one genre.

        Genre overlap is checked in Python because JSON array containment
        differs between PostgreSQL and SQLite. Only the ``scan_limit``
        best-rated candidates are considered.

        Args:
            genres: Genre labels to match (case-insensitive)
            exclude_id: Book id to leave out, typically the reference book
            limit: Maximum results
            scan_limit: Maximum candidates loaded from the table

        Returns:
            Matching books, best rated first
        """
        wanted = {g.casefold() for g in genres if g}
        if not wanted or limit <= 0:
            return []

        query = (
            select(Book)
            .order_by(Book.rating.desc(), Book.review_count.desc())
            .limit(scan_limit)
        )
        if exclude_id is not None:
            query = query.where(Book.id != exclude_id)

        result = await self.session.execute(query)
        matches = [
            book
            for book in result.scalars().all()
            if wanted.intersection(g.casefold() for g in book.genres or [])
        ]
        return matches[:limit]
