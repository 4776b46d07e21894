#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Wires the AppContext into a FastAPI app: lifespan-managed startup/shutdown,
request-id middleware, routers and the exception handlers that turn domain
errors into HTTP responses.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from driveindex.application.api.middleware.request_id import RequestIDMiddleware
from driveindex.application.api.routes import admin_router, analytics_router, health_router
from driveindex.context import AppContext
from driveindex.core.config.constants import HEADER_REQUEST_ID
from driveindex.core.config.settings import get_settings
from driveindex.core.exceptions import DriveIndexError, RetryExhaustedError, SessionExpiredError
from driveindex.core.logging.logger import get_logger, get_request_id, setup_logging

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).

    A context handed to ``create_app`` is used as is; otherwise one is built
    from settings.
    """
    settings = get_settings()
    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting Drive Index API",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    context: AppContext | None = getattr(app.state, "context", None)
    if context is None:
        context = AppContext(settings)
        app.state.context = context

    await context.start()
    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Shutting down application")
        await context.close()
        logger.info("Application shutdown complete")


# ============================================================================
# Exception Handlers
# ============================================================================


def _error_response(status_code: int, exc: DriveIndexError) -> JSONResponse:
    request_id = exc.request_id or get_request_id()
    content = exc.to_dict()
    content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content, headers={HEADER_REQUEST_ID: request_id or ""})


async def session_expired_handler(request: Request, exc: SessionExpiredError):
    logger.warning("Storage session expired", error_type=type(exc).__name__)
    return _error_response(401, exc)


async def upstream_unavailable_handler(request: Request, exc: RetryExhaustedError):
    logger.error("Upstream unavailable", error_type=type(exc).__name__, details=exc.details)
    return _error_response(503, exc)


async def drive_index_error_handler(request: Request, exc: DriveIndexError):
    logger.error(f"Unhandled application error: {exc.message}", error_type=type(exc).__name__)
    return _error_response(500, exc)


# ============================================================================
# Application Factory
# ============================================================================


def create_app(context: AppContext | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: Pre-built context (tests); built at startup when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Caching and resilience core for a cloud drive index",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    app.add_middleware(RequestIDMiddleware)

    # Most specific first; Starlette resolves handlers along the MRO anyway
    app.add_exception_handler(SessionExpiredError, session_expired_handler)
    app.add_exception_handler(RetryExhaustedError, upstream_unavailable_handler)
    app.add_exception_handler(DriveIndexError, drive_index_error_handler)

    app.include_router(health_router)
    app.include_router(analytics_router)
    app.include_router(admin_router)

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "driveindex.application.app:create_app",
        factory=True,
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
