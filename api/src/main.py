"""Certify API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.health import router as health_router
from src.progression.dependencies import (
    ProgressionServices,
    create_progression_services,
    handle_progression_error,
)
from src.progression.errors import STORE_ERRORS, ProgressionError
from src.progression.router import (
    certificates_router,
    enrollments_router,
    worker_router,
)


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(
    settings,
    log_dir=Path(settings.log_dir),
    enable_file_output=not settings.is_testing,
)

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    redis: Any = None
    progression: ProgressionServices | None = None


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Redis is optional: without it enrollment locks are process-local
    try:
        app_state.redis = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - enrollment locks are process-local",
        )

    try:
        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        app_state.progression = create_progression_services(
            app_state.cassandra_session,
            settings,
            redis=app_state.redis,
        )
        app.state.progression = app_state.progression
        logger.info(
            "progression_services_initialized",
            distributed_locks=app_state.redis is not None,
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Never expose stack traces in responses; handlers below log the details
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Workforce certification - course progression API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)
        headers = getattr(exc, "headers", None) or {}

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        content: dict[str, Any] = {
            "error": True,
            "message": str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            or exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
            else "Internal server error",
            "status_code": exc.status_code,
            "request_id": request_id,
        }
        if "X-Error-Code" in headers:
            content["code"] = headers["X-Error-Code"]
        if "Retry-After" in headers:
            content["retryable"] = True

        return ORJSONResponse(
            status_code=exc.status_code, content=content, headers=headers
        )

    @app.exception_handler(ProgressionError)
    async def progression_exception_handler(
        request: Request, exc: ProgressionError
    ) -> ORJSONResponse:
        """Domain errors that escaped a route's own translation."""
        return await http_exception_handler(request, handle_progression_error(exc))

    async def store_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Persistence failures: nothing was written, the call may be retried."""
        request_id = _get_request_id_safe(request)

        logger.error(
            "store_unavailable",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": True,
                "message": "Storage temporarily unavailable. Please retry.",
                "status_code": 503,
                "code": "store_unavailable",
                "retryable": True,
                "request_id": request_id,
            },
            headers={"Retry-After": "1"},
        )

    for store_error in STORE_ERRORS:
        app.add_exception_handler(store_error, store_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Never exposes stack traces or internal error details to users.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(worker_router)
    app.include_router(enrollments_router)
    app.include_router(certificates_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Certify API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
