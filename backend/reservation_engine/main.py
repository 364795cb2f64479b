"""
Table Reservation Engine - Main Application Entry Point

HTTP adapter over the reservation engine:
- Booking lifecycle (create, approve, deny, cancel, arrive, seat, complete)
- Availability checks, range calendars and next-free-slot lookups
- Waitlist ordering, promotion, notification and wait estimates
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reservation_engine.core.config import get_settings
from reservation_engine.core.logging import setup_logging, get_logger
from reservation_engine.core.metrics import metrics_endpoint
from reservation_engine.api.errors import register_error_handlers
from reservation_engine.api.router import api_router
from reservation_engine.api.middleware import RequestLoggingMiddleware
from reservation_engine.db.session import dispose_engine, get_session_factory
from reservation_engine.services.cache_service import get_redis, close_redis, get_cache_stats
from reservation_engine.services.container import build_services

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
    )

    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(get_session_factory())

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without availability cache")

    yield

    # Let in-flight notifications finish before tearing down connections
    await app.state.services.event_bus.drain()
    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Restaurant table reservations with availability, table assignment and waitlists",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
register_error_handlers(app)

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


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()
