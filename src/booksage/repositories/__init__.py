"""Repository pattern package for Booksage.

This module exports base repository classes and concrete repositories.
"""

from booksage.repositories.activity import FeedbackLogRepository, SearchLogRepository
from booksage.repositories.base import BaseRepository
from booksage.repositories.book import BookRepository

__all__ = [
    # Base
    "BaseRepository",
    # Library
    "BookRepository",
    # Activity logs
    "SearchLogRepository",
    "FeedbackLogRepository",
]
