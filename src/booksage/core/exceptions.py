"""Custom exception hierarchy for Booksage.

This module defines a consistent exception hierarchy that enables:
- Structured error responses with error codes
- Consistent HTTP status code mapping
- Machine-readable error handling for API consumers

Usage:
    from booksage.core.exceptions import GenerationFailure

    raise GenerationFailure(provider="openai", cause="Request timed out")
"""

from typing import Any


class BooksageError(Exception):
    """Base exception for all Booksage errors.

    All custom exceptions should inherit from this class to enable
    consistent error handling and response formatting.

    Attributes:
        code: Machine-readable error code (e.g., "BOOK_NOT_FOUND")
        message: Human-readable error message
        status_code: HTTP status code to return
        details: Additional error details (optional)
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Override default message
            code: Override default error code
            details: Additional error details
        """
        if message:
            self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert exception to API error response format.

        Args:
            request_id: Request correlation ID

        Returns:
            Error response dictionary
        """
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if request_id:
            error["request_id"] = request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class NotFoundError(BooksageError):
    """Base class for resource not found errors."""

    status_code: int = 404


class BookNotFoundError(NotFoundError):
    """Raised when a book record cannot be found."""

    code: str = "BOOK_NOT_FOUND"
    message: str = "Book not found"

    def __init__(self, book_id: str | None = None, message: str | None = None) -> None:
        """Initialize with optional book ID."""
        details: dict[str, Any] = {}
        if book_id:
            details["book_id"] = book_id
            if not message:
                message = f"Book with ID {book_id} not found"

        super().__init__(message=message, details=details if details else None)


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(BooksageError):
    """Raised when input is missing or malformed. Never retried."""

    code: str = "VALIDATION_ERROR"
    message: str = "Validation error"
    status_code: int = 400

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with optional field information."""
        if details is None:
            details = {}
        if field:
            details["field"] = field
        super().__init__(message=message, details=details if details else None)


# =============================================================================
# Admission Control Errors (429)
# =============================================================================


class RateLimitExceededError(BooksageError):
    """Raised when an identity has used up its window.

    Carries the quota metadata so callers can surface it as headers.
    """

    code: str = "RATE_LIMIT_EXCEEDED"
    message: str = "Too many requests"
    status_code: int = 429

    def __init__(
        self,
        limit: int,
        remaining: int,
        reset_at: int,
        endpoint_class: str | None = None,
    ) -> None:
        """Initialize with the denied window's quota.

        Args:
            limit: Requests allowed per window
            remaining: Requests left in the window (0 when denied)
            reset_at: Epoch milliseconds at which the window rolls over
            endpoint_class: Rate-limit bucket that denied the request
        """
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        details: dict[str, Any] = {
            "limit": limit,
            "remaining": remaining,
            "reset_at": reset_at,
        }
        if endpoint_class:
            details["endpoint_class"] = endpoint_class
        super().__init__(details=details)

    @property
    def headers(self) -> dict[str, str]:
        """Rate limit headers for the 429 response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


# =============================================================================
# External Service Errors (502, 503)
# =============================================================================


class ExternalServiceError(BooksageError):
    """Base class for external service errors."""

    code: str = "EXTERNAL_SERVICE_ERROR"
    message: str = "External service error"
    status_code: int = 502


class GenerationFailure(ExternalServiceError):
    """Raised when a generation provider call fails or times out.

    Malformed model output is never a GenerationFailure; only transport and
    provider-level errors are.
    """

    code: str = "GENERATION_FAILED"
    message: str = "Failed to generate recommendations"

    def __init__(
        self,
        provider: str | None = None,
        cause: str | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize with the provider name and the underlying cause."""
        self.provider = provider
        self.cause = cause
        details: dict[str, Any] = {}
        if provider:
            details["provider"] = provider
        if cause:
            details["error"] = cause
            if not message:
                message = f"Failed to generate recommendations: {cause}"

        super().__init__(message=message, details=details if details else None)


class StoreUnavailableError(ExternalServiceError):
    """Raised when the backing key/value store cannot be reached."""

    code: str = "STORE_UNAVAILABLE"
    message: str = "Backing store unavailable"
    status_code: int = 503

    def __init__(
        self,
        store: str | None = None,
        error: str | None = None,
    ) -> None:
        """Initialize with the store name and the driver error."""
        details: dict[str, Any] = {}
        if store:
            details["store"] = store
        if error:
            details["error"] = error
        super().__init__(details=details if details else None)
