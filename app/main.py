"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api.router import api_router
from app.errors import (
    AuthorizationError,
    ConflictError,
    DetectorUnavailable,
    LifecycleError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from app.models.database import close_db
from app.observability.logging import setup_logging

logger = structlog.get_logger(__name__)

# Most specific first; DuplicateReportError falls under ConflictError
ERROR_STATUS = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (TransitionError, 409),
    (ConflictError, 409),
    (DetectorUnavailable, 503),
)


def status_for(error: LifecycleError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # Startup
    setup_logging()

    # Sentry init if configured
    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1,
        )

    logger.info("startup", version=settings.APP_VERSION, sink=settings.NOTIFICATION_SINK)
    yield

    # Shutdown
    await close_db()


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "request_refused",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.error_code,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Facility Maintenance Report Lifecycle",
        description="Report intake, duplicate detection and role-gated repair workflow.",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics endpoint
    if settings.PROMETHEUS_ENABLED:
        from prometheus_client import make_asgi_app
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    app.add_exception_handler(LifecycleError, lifecycle_error_handler)

    # Include all API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()
