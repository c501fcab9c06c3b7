"""Feedback endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from booksage.config import EndpointClass
from booksage.dependencies import UserIdDep, get_recommendation_service, rate_limit
from booksage.schemas.common import ErrorResponse
from booksage.schemas.feedback import FeedbackRequest, FeedbackResponse
from booksage.schemas.preferences import PreferenceProfileResponse
from booksage.services.recommendations import RecommendationService

router = APIRouter()


@router.post(
    "",
    response_model=FeedbackResponse,
    status_code=status.HTTP_200_OK,
    summary="Like or dislike a book",
    description=(
        "Record feedback for a book. Signed-in callers (X-User-ID) also get "
        "their preference profile updated."
    ),
    dependencies=[Depends(rate_limit(EndpointClass.FEEDBACK))],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        404: {"model": ErrorResponse, "description": "Book not found"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
)
async def submit_feedback(
    request: FeedbackRequest,
    user_id: UserIdDep,
    service: Annotated[RecommendationService, Depends(get_recommendation_service)],
) -> FeedbackResponse:
    """Record a like/dislike."""
    outcome = await service.submit_feedback(
        book_id=request.book_id,
        liked=request.liked,
        genres=request.genres,
        page_count=request.page_count,
        moods=request.moods,
        user_id=user_id,
    )
    return FeedbackResponse(
        message="Feedback recorded",
        book_id=outcome.book_id,
        liked=outcome.liked,
        profile=(
            PreferenceProfileResponse.from_profile(outcome.profile)
            if outcome.profile is not None
            else None
        ),
    )
