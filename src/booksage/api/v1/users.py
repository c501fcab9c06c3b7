"""User preference profile endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from booksage.config import EndpointClass
from booksage.dependencies import rate_limit
from booksage.schemas.common import ErrorResponse
from booksage.schemas.preferences import PreferenceProfileResponse
from booksage.services.preferences import PreferenceLearner, get_preference_learner

router = APIRouter()


@router.get(
    "/{user_id}/preferences",
    response_model=PreferenceProfileResponse,
    status_code=status.HTTP_200_OK,
    summary="Get learned preferences",
    description="Per-label like probabilities learned from feedback.",
    dependencies=[Depends(rate_limit(EndpointClass.PROFILE))],
    responses={
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        503: {"model": ErrorResponse, "description": "Preference store unavailable"},
    },
)
async def get_preferences(
    user_id: Annotated[str, Path(min_length=1, max_length=128)],
    learner: Annotated[PreferenceLearner, Depends(get_preference_learner)],
) -> PreferenceProfileResponse:
    """Get a user's profile; unknown users get empty maps."""
    profile = await learner.get_profile(user_id)
    return PreferenceProfileResponse.from_profile(profile)
