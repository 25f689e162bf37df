"""
Awareness Tracker - FastAPI Backend

Main application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tracker.core.config import settings
from tracker.db.postgres import init_db, close_db, get_db
from tracker.services.user_service import user_service
from tracker.middleware.rate_limit import setup_rate_limiting

# Import routers
from tracker.api.v1 import auth, clicks, email_settings, health, send, tracking

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    logger.info("Environment: %s", settings.environment)
    logger.info("SMTP default: %s:%s (secure=%s)", settings.smtp_host, settings.smtp_port, settings.smtp_secure)

    # Validate production settings
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error("CRITICAL: %s", e)
        raise  # Stop startup in production with invalid config

    if settings.smtp_password == "change-me":
        logger.warning("Using default email configuration; save SMTP settings via /email-config")

    await init_db()
    logger.info("Database connected and tables created")

    async with get_db() as session:
        await user_service.ensure_default_admin(session)

    yield

    # Shutdown
    await close_db()
    logger.info("Database disconnected")
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Awareness Tracker API

    Sends security-awareness emails with per-recipient tracking links and
    aggregates the resulting clicks.

    ## Authentication

    Use `/api/v1/auth/signin` to get a JWT token.
    Include it in requests as: `Authorization: Bearer <token>`

    `/log` is public: the landing page behind every tracking link posts to it.
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
allowed_origins = [settings.frontend_url]
if settings.environment == "development":
    allowed_origins.extend([
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)

# Rate limiting
setup_rate_limiting(app)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


# Include routers
app.include_router(health.router)  # Health check at /health (no /api/v1 prefix)
app.include_router(tracking.router)  # Public click logging at /log
app.include_router(auth.router, prefix=settings.api_v1_prefix)
app.include_router(clicks.router, prefix=settings.api_v1_prefix)
app.include_router(send.router, prefix=settings.api_v1_prefix, tags=["Send"])
app.include_router(email_settings.router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "tracker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
