"""Booksage application factory.

``create_app`` wires the rate-limit aware CORS policy, the request-id logging
middleware, the error renderers and the v1 recommendation routes.
"""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booksage.config import Settings, get_settings
from booksage.core.exceptions import BooksageError, RateLimitExceededError
from booksage.core.logging import (
    clear_correlation_id,
    configure_logging,
    get_logger,
    set_correlation_id,
)

logger = get_logger(__name__)

RATE_LIMIT_HEADERS = ["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the library database and Redis; close them and the provider on exit."""
    from booksage.core.database import close_db, init_db
    from booksage.core.redis import close_redis, init_redis
    from booksage.services.generation.factory import close_generation_provider

    settings = get_settings()
    configure_logging(settings)
    app_logger = get_logger(__name__)

    await init_db(settings)
    await init_redis(settings)
    app.state.settings = settings

    app_logger.info(
        "booksage_started",
        version=settings.app_version,
        environment=settings.app_env.value,
        provider=settings.generation_provider.value,
    )

    yield

    await close_generation_provider()
    await close_redis()
    await close_db()
    app_logger.info("booksage_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the Booksage API.

    Args:
        settings: Settings override, used by tests

    Returns:
        The configured application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Book recommendations from a text-generation backend, with per-client "
            "rate limiting, a result cache and preferences learned from feedback."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    configure_middleware(app, settings)
    configure_exception_handlers(app)
    configure_routes(app)
    return app


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    """CORS that exposes the quota headers, plus per-request logging."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", *RATE_LIMIT_HEADERS],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_correlation_id(request_id)

        request_logger = get_logger("booksage.request")
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            request_logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                error=str(exc),
            )
            raise
        finally:
            clear_correlation_id()

        request_logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            remaining=response.headers.get("X-RateLimit-Remaining"),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response


def _rate_limit_headers(request: Request, exc: Exception | None = None) -> dict[str, str]:
    """X-RateLimit-* headers for an error response, if the request was counted."""
    if isinstance(exc, RateLimitExceededError):
        return exc.headers
    result = getattr(request.state, "rate_limit", None)
    return result.headers if result is not None else {}


def _error_body(
    request: Request, code: str, message: str, details: dict[str, Any] | None = None
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        error["request_id"] = request_id
    if details:
        error["details"] = details
    return {"error": error}


def configure_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": {...}}`` carrying the quota headers."""
    exception_logger = get_logger("booksage.exceptions")

    @app.exception_handler(BooksageError)
    async def booksage_error_handler(request: Request, exc: BooksageError) -> JSONResponse:
        log = exception_logger.error if exc.status_code >= 500 else exception_logger.warning
        log(
            "request_rejected",
            error_code=exc.code,
            error_message=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id=getattr(request.state, "request_id", None)),
            headers=_rate_limit_headers(request, exc),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed bodies and parameters are 400s, like service-level checks."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")

        exception_logger.warning(
            "request_invalid",
            path=request.url.path,
            field=field or None,
            error_count=len(errors),
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(
                request,
                "VALIDATION_ERROR",
                first.get("msg", "Invalid request"),
                {"field": field} if field else None,
            ),
            headers=_rate_limit_headers(request),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        exception_logger.exception(
            "request_crashed",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                request, "INTERNAL_SERVER_ERROR", "An unexpected error occurred"
            ),
            headers=_rate_limit_headers(request),
        )


def configure_routes(app: FastAPI) -> None:
    """Health probes, the service root and the v1 API."""
    from booksage.api.v1.router import router as v1_router

    @app.get("/health/live", tags=["Health"], summary="Liveness probe")
    async def liveness() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(
        "/health/ready",
        tags=["Health"],
        summary="Readiness probe",
        description="OK when the library database and Redis are both reachable",
    )
    async def readiness() -> JSONResponse:
        from booksage.core.database import check_db_connection
        from booksage.core.redis import check_redis_connection

        checks = {
            "database": "ok" if await check_db_connection() else "error",
            "redis": "ok" if await check_redis_connection() else "error",
        }
        ready = all(v == "ok" for v in checks.values())
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ok" if ready else "error", "checks": checks},
        )

    @app.get("/", tags=["Root"], summary="API root")
    async def root() -> dict[str, str]:
        settings = get_settings()
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health/live",
        }

    app.include_router(v1_router, prefix="/api/v1")


app = create_app()


def cli() -> None:
    """Run the API with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "booksage.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
