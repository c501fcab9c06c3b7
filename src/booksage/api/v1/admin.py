"""Administrative endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Response, status

from booksage.config import EndpointClass
from booksage.core.logging import get_logger
from booksage.services.rate_limiter import RateLimiter, get_rate_limiter

logger = get_logger(__name__)

router = APIRouter()


@router.delete(
    "/rate-limits/{identity}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset rate limits",
    description=(
        "Reset an identity's rate windows for one endpoint class, or for all "
        "classes when none is given."
    ),
)
async def reset_rate_limits(
    identity: Annotated[str, Path(min_length=1, max_length=256)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    endpoint_class: Annotated[EndpointClass | None, Query()] = None,
) -> Response:
    """Reset rate windows for an identity."""
    await limiter.reset(
        identity, endpoint_class.value if endpoint_class is not None else None
    )
    logger.info(
        "rate_limits_reset_request",
        identity=identity,
        endpoint_class=endpoint_class.value if endpoint_class else None,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
