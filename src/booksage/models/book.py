"""Book model - a recommended book, deduplicated across searches.

Every generated recommendation is upserted here keyed by its normalized
(title, author) pair, so the same book surfaced by two unrelated searches
is stored once. The record id is what clients send back as ``book_id``
when they leave feedback or ask for similar books.
"""

from __future__ import annotations

from sqlalchemy import JSON, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from booksage.models.base import Base, TimestampMixin


class Book(TimestampMixin, Base):
    """A durable book record.

    Attributes:
        id: Id of the first recommendation that introduced this book
        dedup_key: Normalized "title::author" used for deduplication
        genres: Genre labels (JSON array)
        source: Provider that first generated the book (e.g. "openai")
        search_queries: Queries that surfaced this book, in order (JSON array)
    """

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    dedup_key: Mapped[str] = mapped_column(
        String(1100),
        unique=True,
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str] = mapped_column(String(500), nullable=False)
    publication_date: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    genres: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, index=True)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    search_queries: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id!r}, title={self.title!r}, author={self.author!r})>"
