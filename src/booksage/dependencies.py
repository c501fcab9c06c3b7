"""FastAPI dependency injection container.

This module provides dependency injection functions for use with FastAPI's
Depends() pattern. Dependencies are organized by functionality and can be
easily overridden in tests via ``app.dependency_overrides``.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from booksage.config import EndpointClass, Settings, get_settings
from booksage.core.exceptions import RateLimitExceededError
from booksage.repositories.activity import FeedbackLogRepository, SearchLogRepository
from booksage.repositories.book import BookRepository
from booksage.services.cache import ResponseCache, get_response_cache
from booksage.services.generation.base import GenerationProvider
from booksage.services.generation.factory import get_generation_provider
from booksage.services.library import LibraryService
from booksage.services.preferences import PreferenceLearner, get_preference_learner
from booksage.services.rate_limiter import RateLimiter, RateLimitResult, get_rate_limiter
from booksage.services.recommendations import RecommendationService

# Type alias for common dependency patterns
SettingsDep = Annotated[Settings, Depends(get_settings)]

UNKNOWN_IDENTITY = "unknown"


# ========================================
# Database Dependencies
# ========================================
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Yields a database session that automatically handles
    commit on success and rollback on exception.

    Yields:
        AsyncSession: Database session
    """

    from booksage.core.database import get_async_session

    async for session in get_async_session():
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ========================================
# Caller Identity
# ========================================
def get_client_identity(request: Request) -> str:
    """Rate-limit identity: first X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTITY


def get_user_id(request: Request) -> str | None:
    """Account id forwarded by the authenticating gateway, if any."""
    user_id = request.headers.get("X-User-ID", "").strip()
    return user_id or None


IdentityDep = Annotated[str, Depends(get_client_identity)]
UserIdDep = Annotated[str | None, Depends(get_user_id)]


# ========================================
# Rate Limiting
# ========================================
def rate_limit(
    endpoint_class: EndpointClass,
) -> Callable[..., Awaitable[RateLimitResult]]:
    """Build a dependency that admits or rejects a request for one endpoint class.

    Admitted requests get the X-RateLimit-* headers on their response; the
    result is also kept on ``request.state`` so error responses carry them too.

    Usage:
        ```python
        @router.post("/search", dependencies=[Depends(rate_limit(EndpointClass.SEARCH))])
        async def search(): ...
        ```
    """

    async def check_rate_limit(
        request: Request,
        response: Response,
        settings: SettingsDep,
        identity: IdentityDep,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> RateLimitResult:
        result = await limiter.check(
            identity,
            settings.rate_limit_for(endpoint_class),
            settings.rate_limit_window_ms,
            endpoint_class.value,
        )
        request.state.rate_limit = result
        if not result.allowed:
            raise RateLimitExceededError(
                limit=result.limit,
                remaining=result.remaining,
                reset_at=result.reset_at,
                endpoint_class=endpoint_class.value,
            )
        response.headers.update(result.headers)
        return result

    return check_rate_limit


# ========================================
# Service Dependencies
# ========================================
def get_library_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> LibraryService:
    """Create LibraryService bound to the request's session."""
    return LibraryService(
        BookRepository(session),
        SearchLogRepository(session),
        FeedbackLogRepository(session),
    )


def get_recommendation_service(
    settings: SettingsDep,
    cache: Annotated[ResponseCache, Depends(get_response_cache)],
    provider: Annotated[GenerationProvider, Depends(get_generation_provider)],
    learner: Annotated[PreferenceLearner, Depends(get_preference_learner)],
    library: Annotated[LibraryService, Depends(get_library_service)],
) -> RecommendationService:
    """Create the orchestrator with all collaborators injected."""
    return RecommendationService(cache, provider, learner, library, settings)
