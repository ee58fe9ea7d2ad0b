"""
Health probes for load balancers and the tracking host.

Postgres is required for every route. Redis backs stats snapshots and
first-click classification; without it tracking keeps working, so a Redis
outage reports ``degraded`` instead of failing the probe.
"""

import logging

from fastapi import APIRouter, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fundflow.core.config import settings
from fundflow.db.postgres import async_session_maker
from fundflow.db.redis import redis_client
from fundflow.services.stats_refresh import stats_refresh_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


async def _postgres_check() -> dict:
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Health check: PostgreSQL unreachable: %s", e)
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "database": settings.postgres_db}


async def _redis_check() -> dict:
    if await redis_client.ping():
        return {"status": "healthy", "db": settings.redis_db}
    logger.warning("Health check: Redis unreachable at %s:%s", settings.redis_host, settings.redis_port)
    return {"status": "unhealthy"}


@router.get("")
async def health_check():
    """
    Database and Redis probes plus tracking host details.

    HTTP Status Codes:
        - 200: healthy, or degraded when only Redis is down
        - 503: PostgreSQL is down
    """
    checks = {
        "postgres": await _postgres_check(),
        "redis": await _redis_check(),
    }

    if checks["postgres"]["status"] != "healthy":
        status = "unhealthy"
    elif checks["redis"]["status"] != "healthy":
        status = "degraded"
    else:
        status = "healthy"

    body = {
        "status": status,
        "version": settings.app_version,
        "environment": settings.environment,
        "tracking_base_url": settings.tracking_base_url,
        "pending_stats_refreshes": stats_refresh_queue.pending,
        "checks": checks,
    }
    if status == "unhealthy":
        raise HTTPException(status_code=503, detail=body)
    return body


@router.get("/ready")
async def readiness_check():
    postgres = await _postgres_check()
    if postgres["status"] != "healthy":
        raise HTTPException(status_code=503, detail={"status": "not_ready", **postgres})
    return {"status": "ready"}


@router.get("/live")
async def liveness_check():
    return {"status": "alive", "version": settings.app_version}
