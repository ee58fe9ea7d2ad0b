"""
Celery task tests.
"""

import pytest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from fundflow.core.errors import NotFoundError


class TestOutreachStatsTasks:

    @pytest.fixture
    def env(self):
        @asynccontextmanager
        async def fake_get_db():
            yield MagicMock()

        with patch("fundflow.tasks.outreach_stats.get_db", new=fake_get_db), \
             patch("fundflow.tasks.outreach_stats.engine") as engine, \
             patch("fundflow.tasks.outreach_stats.redis_client") as redis, \
             patch("fundflow.services.outreach_stats_service.outreach_stats_service") as stats:
            engine.dispose = AsyncMock()
            redis.close = AsyncMock()
            yield {"engine": engine, "redis": redis, "stats": stats}

    def test_beat_schedule(self):
        from fundflow.celery_app import celery_app

        schedule = celery_app.conf.beat_schedule
        assert schedule["refresh-active-outreach-stats"]["task"] == (
            "fundflow.tasks.outreach_stats.refresh_active_outreach_stats"
        )
        assert schedule["reconcile-outreach-recipients"]["options"] == {"queue": "stats"}

    def test_refresh_active_continues_past_failures(self, env):
        from fundflow.tasks.outreach_stats import refresh_active_outreach_stats

        ids = [uuid4(), uuid4(), uuid4()]
        env["stats"].active_outreach_campaign_ids = AsyncMock(return_value=ids)
        env["stats"].refresh_snapshot = AsyncMock(side_effect=[{}, NotFoundError("Outreach campaign"), {}])

        result = refresh_active_outreach_stats.run()

        assert result == {"refreshed": 2, "failed": 1}
        env["engine"].dispose.assert_awaited_once()
        env["redis"].close.assert_awaited_once()

    def test_reconcile_sums_mismatches(self, env):
        from fundflow.tasks.outreach_stats import reconcile_outreach_recipients

        env["stats"].active_outreach_campaign_ids = AsyncMock(return_value=[uuid4(), uuid4()])
        env["stats"].reconcile_recipients = AsyncMock(side_effect=[
            {"checked": 10, "mismatched": 2},
            OperationalError("SELECT", {}, Exception("timeout")),
        ])

        result = reconcile_outreach_recipients.run(apply=False)

        assert result == {"checked": 10, "mismatched": 2}
        assert env["stats"].reconcile_recipients.await_args_list[0].kwargs["apply"] is False

    def test_connections_released_on_error(self, env):
        from fundflow.tasks.outreach_stats import refresh_outreach_stats

        env["stats"].refresh_snapshot = AsyncMock(side_effect=NotFoundError("Outreach campaign"))

        with pytest.raises(NotFoundError):
            refresh_outreach_stats.run(str(uuid4()))

        env["engine"].dispose.assert_awaited_once()
