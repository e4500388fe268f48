"""
Booking Reconciliation Engine - Main Application Entry Point

Turns at-least-once "payment succeeded" events into exactly-once bookings:
- Deterministic booking references as idempotency keys
- Storage uniqueness constraints as the only coordination between writers
- Best-effort customer/admin notifications that never undo a booking
- Structured logging with request and payment correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI

from reconciler.core.config import get_settings
from reconciler.core.logging import setup_logging, get_logger
from reconciler.core.metrics import metrics_endpoint
from reconciler.api.router import api_router
from reconciler.api.middleware import RequestLoggingMiddleware
from reconciler.services.delivery_cache import get_redis, close_redis, get_cache_stats
from reconciler.services.sender_factory import close_email_sender

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        email_backend=settings.EMAIL_BACKEND,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without settled-payment cache")

    yield

    await close_email_sender()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Payment-to-booking reconciliation with exactly-once booking materialization",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"])
def metrics():
    return metrics_endpoint()
