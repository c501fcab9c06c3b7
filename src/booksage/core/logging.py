"""Structured logging configuration built on structlog and stdlib logging.

This module configures logging with:
- JSON output for production (machine-readable)
- Console output for development (human-readable)
- Request ID correlation so every line of one request can be grouped
- Shared processors so third-party stdlib loggers render the same way

Usage:
    from booksage.core.logging import configure_logging, get_logger

    # Configure at app startup
    configure_logging(settings)

    # Get a logger in any module
    logger = get_logger(__name__)
    logger.info("search_cache_hit", cache_key="search:ab12", identity="10.0.0.1")
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from booksage.config import Settings

# Request ID of the request currently being handled
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Loggers that are chatty at INFO and only add noise next to our own events
_NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "openai",
    "google_genai",
    "sqlalchemy.engine",
)


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in context."""
    correlation_id_ctx.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID from context."""
    correlation_id_ctx.set(None)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Structlog processor to add correlation ID to log entries."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add application context to log entries."""
    event_dict["service"] = "booksage"
    return event_dict


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structured logging for the application.

    Args:
        settings: Application settings. If None, uses default settings.
    """
    if settings is None:
        from booksage.config import get_settings

        settings = get_settings()

    log_level = getattr(logging, settings.log_level.value, logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_correlation_id,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if settings.use_json_logs:
        renderer = structlog.processors.JSONRenderer()
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
        processors = [*shared_processors, renderer]

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        A bound structlog logger that outputs structured logs.

    Example:
        logger = get_logger(__name__)
        logger.info("generation_started", provider="openai", cache_key="search:ab12")
        logger.error("generation_failed", provider="openai", error=str(e))
    """
    return structlog.get_logger(name)


def log_context(**kwargs: Any) -> structlog.contextvars.bound_contextvars:
    """Context manager to bind values to all logs within the context.

    Example:
        with log_context(identity="10.0.0.1", user_id="user-456"):
            logger.info("feedback_recorded")  # Includes identity and user_id
    """
    return structlog.contextvars.bound_contextvars(**kwargs)
