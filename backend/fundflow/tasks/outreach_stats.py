"""
Periodic outreach stats work: snapshot refresh and recipient reconciliation.

Each task runs the async services under ``asyncio.run``. The engine pool
and the Redis client are bound to the loop that opened them, so both are
released before the loop closes.
"""

import asyncio
import logging
from uuid import UUID

from celery import shared_task
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from fundflow.core.errors import AppError
from fundflow.db.postgres import engine, get_db
from fundflow.db.redis import redis_client

logger = logging.getLogger(__name__)


async def _release_connections():
    await redis_client.close()
    await engine.dispose()


@shared_task(bind=True, queue="stats")
def refresh_outreach_stats(self, outreach_campaign_id: str):
    async def _refresh():
        from fundflow.services.outreach_stats_service import outreach_stats_service

        try:
            async with get_db() as session:
                snapshot = await outreach_stats_service.refresh_snapshot(session, UUID(outreach_campaign_id))
            return snapshot["totals"]
        finally:
            await _release_connections()

    return asyncio.run(_refresh())


@shared_task(bind=True, queue="stats")
def refresh_active_outreach_stats(self):
    async def _refresh_all():
        from fundflow.services.outreach_stats_service import outreach_stats_service

        refreshed = 0
        failed = 0
        try:
            async with get_db() as session:
                ids = await outreach_stats_service.active_outreach_campaign_ids(session)

            for outreach_campaign_id in ids:
                try:
                    async with get_db() as session:
                        await outreach_stats_service.refresh_snapshot(session, outreach_campaign_id)
                    refreshed += 1
                except (AppError, SQLAlchemyError, RedisError) as e:
                    failed += 1
                    logger.error("Stats refresh failed for outreach campaign %s: %s", outreach_campaign_id, e)
        finally:
            await _release_connections()

        logger.info("Refreshed %d outreach stats snapshots (%d failed)", refreshed, failed)
        return {"refreshed": refreshed, "failed": failed}

    return asyncio.run(_refresh_all())


@shared_task(bind=True, queue="stats")
def reconcile_outreach_recipients(self, apply: bool = True):
    async def _reconcile():
        from fundflow.services.outreach_stats_service import outreach_stats_service

        checked = 0
        mismatched = 0
        try:
            async with get_db() as session:
                ids = await outreach_stats_service.active_outreach_campaign_ids(session)

            for outreach_campaign_id in ids:
                try:
                    async with get_db() as session:
                        result = await outreach_stats_service.reconcile_recipients(
                            session, outreach_campaign_id, apply=apply
                        )
                except SQLAlchemyError as e:
                    logger.error("Reconciliation failed for outreach campaign %s: %s", outreach_campaign_id, e)
                    continue
                checked += result["checked"]
                mismatched += result["mismatched"]
        finally:
            await _release_connections()

        logger.info("Reconciled %d recipients, %d mismatched (apply=%s)", checked, mismatched, apply)
        return {"checked": checked, "mismatched": mismatched}

    return asyncio.run(_reconcile())
