"""Append-only activity logs: recommendation searches and feedback events.

Both tables are write-once audit trails. Writes to them are best-effort;
a failed insert is logged and the request carries on.
"""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from booksage.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SearchLogEntry(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One generated (non-cached) recommendation search.

    Attributes:
        user_id: Account id, when the caller was signed in
        identity: Rate-limit identity of the caller
        query: Query text as received
        options: Search options (JSON object)
        cache_key: Cache key the results were stored under
        source: Provider that produced the results
        result_count: Number of recommendations returned
        book_ids: Ids of the returned book records (JSON array)
    """

    __tablename__ = "recommendation_searches"

    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    identity: Mapped[str] = mapped_column(String(256), nullable=False)
    query: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    cache_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    result_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    book_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return (
            f"<SearchLogEntry(query={self.query!r}, source={self.source!r}, "
            f"results={self.result_count})>"
        )


class FeedbackLogEntry(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One like/dislike signal exactly as it was received."""

    __tablename__ = "feedback_events"

    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    book_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    genres: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    length_category: Mapped[str | None] = mapped_column(String(10), nullable=True)
    moods: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    liked: Mapped[bool] = mapped_column(Boolean, nullable=False)

    def __repr__(self) -> str:
        return f"<FeedbackLogEntry(book_id={self.book_id!r}, liked={self.liked})>"
