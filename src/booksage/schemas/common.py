"""Common Pydantic schemas used across the API.

Shared base configuration and the error response format.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Base Configuration
# =============================================================================


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Allow ORM model conversion
        populate_by_name=True,  # Allow both alias and field name
        str_strip_whitespace=True,  # Strip whitespace from strings
    )


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorDetail(BaseModel):
    """Details of an error response.

    Attributes:
        code: Machine-readable error code (e.g., "RATE_LIMIT_EXCEEDED")
        message: Human-readable error description
        request_id: Correlation ID for tracing (optional)
        details: Additional error context (optional)
    """

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error description")
    request_id: str | None = Field(
        None, description="Request correlation ID for tracing"
    )
    details: dict[str, Any] | None = Field(
        None, description="Additional error context"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": "Too many requests",
                "request_id": "abc-123-def-456",
                "details": {"limit": 10, "remaining": 0, "reset_at": 1767225600000},
            }
        }
    )


class ErrorResponse(BaseModel):
    """Standard error response wrapper.

    All API errors return this format for consistency.
    """

    error: ErrorDetail
