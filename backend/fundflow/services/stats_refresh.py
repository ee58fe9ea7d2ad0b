"""
In-process queue for fire-and-forget stats refreshes.

Tracking endpoints and send flows publish the outreach campaign they
touched; each publish schedules a task that recomputes the snapshot in
its own session. Publishing outside an event loop enqueues the Celery
refresh task instead. Failures are logged and never reach the publisher.
Pending tasks are awaited on application shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set
from uuid import UUID

from kombu.exceptions import OperationalError

from fundflow.db.postgres import get_db

logger = logging.getLogger(__name__)


class StatsRefreshQueue:
    """Schedules snapshot refreshes on the running event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def publish(self, outreach_campaign_id: Optional[UUID]) -> Optional[asyncio.Task]:
        """Schedule a refresh. No-op for tokens outside an outreach campaign."""
        if not outreach_campaign_id:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._enqueue(outreach_campaign_id)
            return None

        task = loop.create_task(self._refresh(outreach_campaign_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _enqueue(self, outreach_campaign_id: UUID) -> None:
        """Outside an event loop, hand the refresh to the Celery stats queue."""
        from fundflow.celery_app import celery_app
        from fundflow.tasks.outreach_stats import refresh_outreach_stats

        try:
            celery_app.send_task(refresh_outreach_stats.name, args=[str(outreach_campaign_id)], queue="stats")
        except OperationalError as e:
            logger.warning("Stats refresh for %s not enqueued: %s", outreach_campaign_id, e)

    async def _refresh(self, outreach_campaign_id: UUID) -> None:
        from fundflow.services.outreach_stats_service import outreach_stats_service

        try:
            async with get_db() as session:
                await outreach_stats_service.refresh_snapshot(session, outreach_campaign_id)
        except Exception as e:
            logger.error("Stats refresh failed for outreach campaign %s: %s", outreach_campaign_id, e)

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for pending refreshes, cancelling any still running after ``timeout``."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d stats refreshes on shutdown", len(still_running))


# Singleton instance
stats_refresh_queue = StatsRefreshQueue()
