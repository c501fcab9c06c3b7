"""Provider selection keyed on ``ProviderKind``."""

from booksage.config import ProviderKind, Settings, get_settings
from booksage.core.logging import get_logger
from booksage.services.generation.base import GenerationOptions, GenerationProvider
from booksage.services.generation.gemini_provider import GeminiProvider
from booksage.services.generation.openai_provider import OpenAIProvider

logger = get_logger(__name__)

_PROVIDERS: dict[ProviderKind, type[GenerationProvider]] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.GEMINI: GeminiProvider,
}


def get_provider(kind: ProviderKind | str, options: GenerationOptions) -> GenerationProvider:
    """Instantiate the provider registered for ``kind``.

    Raises:
        ValueError: If the kind is not a known provider
    """
    provider_class = _PROVIDERS[ProviderKind(kind)]
    return provider_class(options)


def options_from_settings(settings: Settings) -> GenerationOptions:
    """Build provider options for the configured provider."""
    if settings.generation_provider == ProviderKind.GEMINI:
        model = settings.gemini_model
        api_key = settings.gemini_api_key.get_secret_value()
    else:
        model = settings.openai_model
        api_key = settings.openai_api_key.get_secret_value()

    return GenerationOptions(
        model=model,
        api_key=api_key or None,
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens,
        timeout=settings.generation_timeout,
    )


# Global provider instance (set during app startup)
_provider: GenerationProvider | None = None


def set_generation_provider(provider: GenerationProvider | None) -> None:
    """Install the shared provider, e.g. a mock in tests."""
    global _provider
    _provider = provider


def get_generation_provider() -> GenerationProvider:
    """FastAPI dependency for the configured GenerationProvider.

    Built lazily from settings on first use.
    """
    global _provider
    if _provider is None:
        settings = get_settings()
        _provider = get_provider(
            settings.generation_provider, options_from_settings(settings)
        )
        logger.info(
            "generation_provider_initialized",
            provider=_provider.name,
            model=_provider.options.model,
        )
    return _provider


async def close_generation_provider() -> None:
    """Release the shared provider's resources."""
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None
