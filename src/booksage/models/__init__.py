"""Models package for Booksage.

This module exports the Base class and all model classes so that
``Base.metadata`` knows every table.
"""

from booksage.models.activity import FeedbackLogEntry, SearchLogEntry
from booksage.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from booksage.models.book import Book

__all__ = [
    # Base and Mixins
    "Base",
    "UUIDPrimaryKeyMixin",
    "TimestampMixin",
    # Library
    "Book",
    # Activity logs
    "SearchLogEntry",
    "FeedbackLogEntry",
]
