"""Explicit results for best-effort side effects.

Personalization updates, history logging and book persistence must never fail
the request that triggered them. Instead of catching and ignoring exceptions
at each call site, those operations are run through ``attempt`` which returns
an ``Outcome``: the caller sees whether the write happened, and the failure
is logged once, here.

Usage:
    outcome = await attempt("feedback_log", library.log_feedback(event))
    if not outcome.ok:
        ...  # already logged, carry on
"""

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

from booksage.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a best-effort operation."""

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "Outcome[T]":
        return cls(ok=False, error=error)


async def attempt(operation: str, awaitable: Awaitable[T], **context: object) -> Outcome[T]:
    """Await a best-effort operation, converting any error into a failed Outcome.

    Args:
        operation: Short name used in the log event
        awaitable: The write to perform
        **context: Extra key/values for the failure log line

    Returns:
        Outcome carrying the value on success or the error message on failure
    """
    try:
        value = await awaitable
    except Exception as e:
        logger.warning(
            "best_effort_failed",
            operation=operation,
            error_type=type(e).__name__,
            error=str(e),
            **context,
        )
        return Outcome.failure(str(e))
    return Outcome.success(value)
