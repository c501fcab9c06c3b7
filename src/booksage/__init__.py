"""Booksage: governed, cached, personalized book recommendations."""

__version__ = "0.1.0"
