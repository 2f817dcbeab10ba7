"""
Class Monitoring Engine
FastAPI Application Entry Point

On startup:
1. Configures logging
2. Starts the alert reconciliation loop when ALERT_RECONCILE_INTERVAL_SECONDS > 0
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classwatch.config import settings
from classwatch.database import engine, AsyncSessionLocal
from classwatch.services.alert_service import reconcile_periodically
from classwatch.api.events import router as events_router
from classwatch.api.alerts import router as alerts_router
from classwatch.api.session_monitor import router as session_monitor_router
from classwatch.api.reports import router as reports_router

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("class-monitoring")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: background reconciler on startup, clean shutdown."""
    logger.info("Starting %s...", settings.APP_NAME)
    logger.info("Skipping create_all; ensure Alembic migrations are applied (alembic upgrade head)")

    reconcile_task = None
    if settings.ALERT_RECONCILE_INTERVAL_SECONDS > 0:
        reconcile_task = asyncio.create_task(
            reconcile_periodically(AsyncSessionLocal, settings.ALERT_RECONCILE_INTERVAL_SECONDS)
        )
        logger.info("Alert reconciler running every %ss", settings.ALERT_RECONCILE_INTERVAL_SECONDS)

    logger.info("%s is ready!", settings.APP_NAME)

    yield

    # Shutdown
    logger.info("Shutting down...")
    if reconcile_task is not None:
        reconcile_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reconcile_task
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Live class monitoring: event ingestion, threshold alerts, session summaries and period reports",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routes
app.include_router(events_router)
app.include_router(alerts_router)
app.include_router(session_monitor_router)
app.include_router(reports_router)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "online",
        "app": settings.APP_NAME,
        "module": "Class Monitoring",
        "version": "1.0.0",
    }


@app.get("/api/v1/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected",
        "app": settings.APP_NAME,
        "version": "1.0.0",
    }
