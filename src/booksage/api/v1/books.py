"""Book lookup endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from booksage.config import EndpointClass
from booksage.dependencies import get_recommendation_service, rate_limit
from booksage.schemas.common import ErrorResponse
from booksage.schemas.recommendations import BookItem, SimilarBooksResponse
from booksage.services.recommendations import RecommendationService

router = APIRouter()


@router.get(
    "/{book_id}/similar",
    response_model=SimilarBooksResponse,
    status_code=status.HTTP_200_OK,
    summary="Get similar books",
    description=(
        "Books similar to a previously recommended book. Library matches are "
        "preferred; generation tops them up when too few are stored."
    ),
    dependencies=[Depends(rate_limit(EndpointClass.SIMILAR))],
    responses={
        200: {"description": "Similar books"},
        404: {"model": ErrorResponse, "description": "Book not found"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
)
async def get_similar_books(
    book_id: Annotated[str, Path(min_length=1, max_length=64)],
    service: Annotated[RecommendationService, Depends(get_recommendation_service)],
) -> SimilarBooksResponse:
    """Get books similar to ``book_id``."""
    outcome = await service.similar_books(book_id)
    return SimilarBooksResponse(
        book_id=outcome.book_id,
        books=[BookItem.from_recommendation(b) for b in outcome.books],
        source=outcome.source,
    )
