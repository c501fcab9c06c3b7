"""Repositories for the append-only search and feedback logs."""

from booksage.models.activity import FeedbackLogEntry, SearchLogEntry
from booksage.repositories.base import BaseRepository


class SearchLogRepository(BaseRepository[SearchLogEntry]):
    """Repository for SearchLogEntry records."""


class FeedbackLogRepository(BaseRepository[FeedbackLogEntry]):
    """Repository for FeedbackLogEntry records."""
