"""Generation adapter: provider interface, implementations and factory."""

from booksage.services.generation.base import (
    BookRecommendation,
    GenerationOptions,
    GenerationProvider,
    GenerationResult,
    normalize_record,
    parse_recommendations,
)
from booksage.services.generation.factory import (
    close_generation_provider,
    get_generation_provider,
    get_provider,
    options_from_settings,
    set_generation_provider,
)
from booksage.services.generation.gemini_provider import GeminiProvider
from booksage.services.generation.openai_provider import OpenAIProvider

__all__ = [
    # Canonical models
    "BookRecommendation",
    "GenerationOptions",
    "GenerationResult",
    # Providers
    "GenerationProvider",
    "OpenAIProvider",
    "GeminiProvider",
    # Parsing
    "normalize_record",
    "parse_recommendations",
    # Factory
    "close_generation_provider",
    "get_generation_provider",
    "get_provider",
    "options_from_settings",
    "set_generation_provider",
]
