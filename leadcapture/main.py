"""
LeadCapture - lead ingestion and webhook dispatch service.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from leadcapture.config import get_settings
from leadcapture.database import dispose_engine
from leadcapture.api.router import api_router
from leadcapture.utils import background
from leadcapture.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("leadcapture")

SHUTDOWN_DRAIN_SECONDS = 10.0


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("LeadCapture starting up (env=%s)", settings.app_env)

    if not settings.recaptcha_configured:
        logger.warning(
            "RECAPTCHA_SITE_KEY/RECAPTCHA_SECRET_KEY not set - "
            "anti-spam verification is disabled for every form."
        )
    if not settings.sendgrid_api_key:
        logger.warning("SENDGRID_API_KEY not set - new-lead email alerts are disabled.")

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    yield

    # Graceful shutdown - let in-flight notifications finish
    pending = background.pending_count()
    logger.info("LeadCapture shutting down - draining %d background tasks...", pending)
    cancelled = await background.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    if cancelled:
        logger.warning("Cancelled %d background tasks still running at shutdown", cancelled)
    await dispose_engine()
    logger.info("LeadCapture shutdown complete")


def _cors_origins(settings) -> list[str]:
    """ALLOWED_ORIGINS (comma-separated) or any origin when unset."""
    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    return origins or ["*"]


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="LeadCapture",
        description="Lead ingestion and webhook dispatch service",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Public submissions come from forms embedded on tenant sites
    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID", "X-Tenant-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
