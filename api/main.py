"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, cards
from core.config import settings
from core.logging import PIPELINE_LOGGER, setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.runner import SyncRunner
from ingestion.scheduler import SyncScheduler

setup_logging(settings.LOG_FILE)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Card Price Sync API",
    description="Card search and price history backed by the daily price sync",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# The daily sync runs inside the API process only when enabled
scheduler = SyncScheduler(
    runner_factory=lambda: SyncRunner(logger=logging.getLogger(PIPELINE_LOGGER))
)


# Include routers
app.include_router(health.router)
app.include_router(cards.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Card Price Sync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Card Price Sync API")
    if settings.SCHEDULER_ENABLED:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Card Price Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "search": "/cards?name=",
            "random": "/cards/random",
            "detail": "/cards/{uuid}"
        }
    }
