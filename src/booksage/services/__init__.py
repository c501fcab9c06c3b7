"""Services package for Booksage.

This module exports service classes for business logic.
"""

from booksage.services.cache import ResponseCache, get_response_cache
from booksage.services.generation import (
    BookRecommendation,
    GenerationProvider,
    GenerationResult,
    get_generation_provider,
    set_generation_provider,
)
from booksage.services.library import LibraryService
from booksage.services.preferences import (
    PreferenceDimension,
    PreferenceLearner,
    PreferenceProfile,
    get_preference_learner,
    length_category,
)
from booksage.services.rate_limiter import (
    RateLimiter,
    RateLimitResult,
    get_rate_limiter,
)
from booksage.services.recommendations import (
    FeedbackOutcome,
    RecommendationService,
    SearchOutcome,
    SimilarBooksOutcome,
)

__all__ = [
    # Cache
    "ResponseCache",
    "get_response_cache",
    # Generation
    "BookRecommendation",
    "GenerationProvider",
    "GenerationResult",
    "get_generation_provider",
    "set_generation_provider",
    # Library
    "LibraryService",
    # Preferences
    "PreferenceDimension",
    "PreferenceLearner",
    "PreferenceProfile",
    "get_preference_learner",
    "length_category",
    # Rate limiting
    "RateLimiter",
    "RateLimitResult",
    "get_rate_limiter",
    # Orchestration
    "FeedbackOutcome",
    "RecommendationService",
    "SearchOutcome",
    "SimilarBooksOutcome",
]
