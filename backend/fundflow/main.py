"""
FundFlow - Outreach Backend

Main application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fundflow.core.config import settings
from fundflow.core.errors import register_exception_handlers
from fundflow.db.postgres import init_db, close_db
from fundflow.db.redis import redis_client
from fundflow.middleware.rate_limit import setup_rate_limiting
from fundflow.services.stats_refresh import stats_refresh_queue

# Import routers
from fundflow.api.v1 import contacts, health, outreach, outreach_campaigns, segments, tracking

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    logger.info("Environment: %s", settings.environment)
    logger.info("PostgreSQL: %s:%s", settings.postgres_host, settings.postgres_port)
    logger.info("Tracking base URL: %s", settings.tracking_base_url)

    try:
        settings.validate_production_settings()
        logger.info("Production settings validated successfully")
    except ValueError as e:
        if settings.environment == "production":
            logger.error("CRITICAL: %s", e)
            raise
        else:
            logger.warning("Production settings validation: %s", e)

    if settings.environment == "development":
        try:
            await init_db()
            logger.info("PostgreSQL connected and tables created")
        except Exception as e:
            logger.error("PostgreSQL initialization failed: %s", e)

    yield

    # Shutdown
    await stats_refresh_queue.drain()
    logger.info("Stats refresh queue drained")
    await redis_client.close()
    logger.info("Redis disconnected")
    await close_db()
    logger.info("PostgreSQL disconnected")
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    FundFlow Outreach API

    Donor outreach for fundraising campaigns.

    ## Features

    - **Segments & Contacts**: The organizer's address book
    - **Outreach Campaigns**: Invitations, updates and thank-you emails
    - **Tracking**: Open pixel and click redirect with donation attribution
    - **Analytics**: Per campaign, per contact and per organizer

    ## Authentication

    Tokens are issued by the platform auth service.
    Include them in requests as: `Authorization: Bearer <token>`
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# In development, allow localhost variants
allowed_origins = [settings.frontend_url]
if settings.environment == "development":
    allowed_origins.extend([
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)

setup_rate_limiting(app)
register_exception_handlers(app)


@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


# Health and tracking live outside /api/v1
app.include_router(health.router)
app.include_router(tracking.router)
app.include_router(outreach.router, prefix=settings.api_v1_prefix)
app.include_router(outreach_campaigns.router, prefix=settings.api_v1_prefix)
app.include_router(segments.router, prefix=settings.api_v1_prefix)
app.include_router(contacts.router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fundflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
