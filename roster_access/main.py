"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from roster_access.core.config import settings
from roster_access.core.errors import (
    AccessError,
    AssignmentRejected,
    AttemptNotPending,
    CommitFailed,
    IdentityNotFound,
    InvariantViolation,
    RecordNotFound,
    StoreUnavailable,
)
from roster_access.api.routes import router as api_router
from roster_access.utils.context import RequestIdMiddleware, configure_logging

logger = structlog.get_logger()

_STATUS_CODES: dict[type[AccessError], int] = {
    RecordNotFound: status.HTTP_404_NOT_FOUND,
    IdentityNotFound: status.HTTP_404_NOT_FOUND,
    AssignmentRejected: 422,
    AttemptNotPending: status.HTTP_409_CONFLICT,
    CommitFailed: status.HTTP_409_CONFLICT,
    InvariantViolation: status.HTTP_409_CONFLICT,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    from roster_access.models.database import close_db

    logger.info("app_started", environment=settings.environment, version=settings.app_version)
    yield
    await close_db()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.add_middleware(RequestIdMiddleware)

    # Routes
    app.include_router(api_router, prefix="/api")

    # Exception handlers
    @app.exception_handler(AccessError)
    async def access_error_handler(request: Request, exc: AccessError):
        status_code = _STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
        content = {"error": exc.code, "message": str(exc)}
        if isinstance(exc, (CommitFailed, AttemptNotPending)) and exc.attempt is not None:
            content["attempt"] = exc.attempt.model_dump(mode="json")
        if status_code >= 500:
            logger.error("request_failed", error=exc.code, path=request.url.path)
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": str(exc) if settings.debug else "An error occurred",
            },
        )

    @app.get("/health")
    async def health_check():
        """Quick health check endpoint (for load balancers)."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("roster_access.main:app", host="0.0.0.0", port=8000)
