"""Recommendation search endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from booksage.config import EndpointClass
from booksage.core.logging import get_logger, log_context
from booksage.dependencies import (
    IdentityDep,
    UserIdDep,
    get_recommendation_service,
    rate_limit,
)
from booksage.schemas.common import ErrorResponse
from booksage.schemas.recommendations import BookItem, SearchRequest, SearchResponse
from booksage.services.recommendations import RecommendationService

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/search",
    response_model=SearchResponse,
    status_code=status.HTTP_200_OK,
    summary="Get book recommendations",
    description=(
        "Recommend books for a natural-language query. Identical queries are "
        "answered from the cache unless `regenerate` is set."
    ),
    dependencies=[Depends(rate_limit(EndpointClass.SEARCH))],
    responses={
        200: {"description": "Recommendations"},
        400: {"model": ErrorResponse, "description": "Invalid request"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        502: {"model": ErrorResponse, "description": "Generation failed"},
    },
)
async def search_recommendations(
    request: SearchRequest,
    identity: IdentityDep,
    user_id: UserIdDep,
    service: Annotated[RecommendationService, Depends(get_recommendation_service)],
) -> SearchResponse:
    """Search for recommendations, from the cache or freshly generated."""
    logger.info(
        "search_recommendations_request",
        query=request.query,
        regenerate=request.regenerate,
        user_id=user_id,
    )

    options = request.options.to_cache_options() if request.options else {}
    with log_context(identity=identity, user_id=user_id):
        outcome = await service.search(
            request.query,
            options,
            regenerate=request.regenerate,
            identity=identity,
            user_id=user_id,
        )

    return SearchResponse(
        books=[BookItem.from_recommendation(b) for b in outcome.books],
        source=outcome.source,
        query=outcome.query,
        options=outcome.options,
    )
