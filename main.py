"""
RecordFlow - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recordflow import __version__
from recordflow.config import settings
from recordflow.database import async_session_maker, close_db, init_db
from recordflow.routers import adjustments, approvals, audit
from recordflow.services.approval_service import seed_default_stages
from recordflow.services.notification_service import NotificationService
from recordflow.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - use migrations in production)
    if not settings.is_production:
        await init_db()
        logger.info("Database tables initialized")

    app.state.session_factory = async_session_maker
    app.state.notifier = NotificationService(settings)

    try:
        await seed_default_stages(async_session_maker, settings)
    except Exception as e:
        logger.warning(f"Default stage seeding skipped: {e}")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Record review workflows, resource adjustments and audit trails",
    version=__version__,
    docs_url="/api/docs" if not settings.is_production else None,
    redoc_url="/api/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)


# ===========================================
# API ROUTES
# ===========================================

# Approval workflow
app.include_router(approvals.router, prefix="/api/v1/records", tags=["Approvals"])

# Audit trail and changelog
app.include_router(audit.router, prefix="/api/v1/records", tags=["Audit Trail"])

# Resource adjustments (hours removal)
app.include_router(adjustments.router, prefix="/api/v1/adjustments", tags=["Resource Adjustments"])


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "app": settings.app_name, "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
