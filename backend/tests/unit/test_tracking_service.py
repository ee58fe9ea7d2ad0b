"""
Tests for open/click recording, click de-duplication and stats refresh
publishing.
"""

import asyncio
import pytest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

from redis.exceptions import ConnectionError as RedisConnectionError

from fundflow.models import EmailEventType

from tests.conftest import make_session, make_token


class TestTrackingService:

    @pytest.fixture
    def session(self):
        return make_session()

    @pytest.fixture
    def deps(self, session):
        @asynccontextmanager
        async def fake_get_db():
            yield session

        with patch("fundflow.services.tracking_service.get_db", new=fake_get_db), \
             patch("fundflow.services.tracking_service.link_token_service") as tokens, \
             patch("fundflow.services.tracking_service.email_event_service") as events, \
             patch("fundflow.services.tracking_service.recipient_service") as recipients, \
             patch("fundflow.services.tracking_service.redis_client") as redis, \
             patch("fundflow.services.tracking_service.stats_refresh_queue") as queue:
            events.record_event = AsyncMock()
            tokens.increment_click_count = AsyncMock(return_value=1)
            recipients.mark_engagement = AsyncMock()
            redis.set_if_absent = AsyncMock(return_value=True)
            yield {"tokens": tokens, "events": events, "recipients": recipients, "redis": redis, "queue": queue}

    @pytest.mark.asyncio
    async def test_open_records_event_and_marks_recipient(self, deps, session):
        from fundflow.services.tracking_service import tracking_service

        outreach_campaign_id = uuid4()
        contact_id = uuid4()
        token = make_token(uuid4(), contact_id=contact_id, outreach_campaign_id=outreach_campaign_id)
        deps["tokens"].get_link_token = AsyncMock(return_value=token)

        await tracking_service.record_open(UUID(token["id"]), user_agent="Mail/1.0", ip_address="10.0.0.1")

        args = deps["events"].record_event.await_args
        assert args.args[2] == contact_id
        assert args.args[3] == EmailEventType.OPEN
        assert args.kwargs["ip_address"] == "10.0.0.1"
        deps["recipients"].mark_engagement.assert_awaited_once_with(
            session, outreach_campaign_id, contact_id, opened=True, clicked=False
        )
        deps["queue"].publish.assert_called_once_with(outreach_campaign_id)

    @pytest.mark.asyncio
    async def test_click_counts_every_click_but_marks_first_only(self, deps):
        from fundflow.services.tracking_service import tracking_service

        token = make_token(uuid4(), contact_id=uuid4(), outreach_campaign_id=uuid4())
        deps["tokens"].get_link_token = AsyncMock(return_value=token)
        deps["tokens"].increment_click_count = AsyncMock(side_effect=[1, 2])
        deps["redis"].set_if_absent = AsyncMock(side_effect=[True, False])

        await tracking_service.record_click(UUID(token["id"]))
        url = await tracking_service.record_click(UUID(token["id"]))

        assert deps["tokens"].increment_click_count.await_count == 2
        assert deps["events"].record_event.await_count == 2
        deps["recipients"].mark_engagement.assert_awaited_once()
        assert deps["recipients"].mark_engagement.await_args.kwargs["clicked"] is True
        assert f"lt={token['id']}" in url
        assert f"cid={token['contact_id']}" in url

    @pytest.mark.asyncio
    async def test_redis_down_treats_click_as_first(self, deps):
        from fundflow.services.tracking_service import tracking_service

        token = make_token(uuid4(), contact_id=uuid4(), outreach_campaign_id=uuid4())
        deps["tokens"].get_link_token = AsyncMock(return_value=token)
        deps["redis"].set_if_absent = AsyncMock(side_effect=RedisConnectionError("down"))

        await tracking_service.record_click(UUID(token["id"]))

        deps["recipients"].mark_engagement.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_click_redirect_honours_redirect_param(self, deps):
        from fundflow.services.tracking_service import tracking_service

        token = make_token(uuid4(), utm_source="social_media")
        deps["tokens"].get_link_token = AsyncMock(return_value=token)

        url = await tracking_service.record_click(UUID(token["id"]), "https://app.fundflow.test/campaign/ab12cd")

        assert url.startswith("https://app.fundflow.test/campaign/ab12cd?utm_source=social_media")
        deps["redis"].set_if_absent.assert_not_awaited()
        deps["queue"].publish.assert_called_once_with(None)


class TestStatsRefreshQueue:

    @pytest.mark.asyncio
    async def test_publish_without_outreach_campaign_is_noop(self):
        from fundflow.services.stats_refresh import StatsRefreshQueue

        queue = StatsRefreshQueue()

        assert queue.publish(None) is None
        assert queue.pending == 0

    def test_publish_outside_event_loop_enqueues_celery_refresh(self):
        from fundflow.services.stats_refresh import StatsRefreshQueue

        outreach_campaign_id = uuid4()
        with patch("fundflow.celery_app.celery_app.send_task") as send_task:
            queue = StatsRefreshQueue()
            assert queue.publish(outreach_campaign_id) is None

        send_task.assert_called_once_with(
            "fundflow.tasks.outreach_stats.refresh_outreach_stats",
            args=[str(outreach_campaign_id)],
            queue="stats",
        )
        assert queue.pending == 0

    def test_unreachable_broker_is_logged(self, caplog):
        from kombu.exceptions import OperationalError

        from fundflow.services.stats_refresh import StatsRefreshQueue

        with patch("fundflow.celery_app.celery_app.send_task", side_effect=OperationalError("broker down")):
            assert StatsRefreshQueue().publish(uuid4()) is None

        assert "not enqueued" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_failure_is_swallowed(self):
        from fundflow.services.stats_refresh import StatsRefreshQueue

        @asynccontextmanager
        async def fake_get_db():
            yield MagicMock()

        with patch("fundflow.services.stats_refresh.get_db", new=fake_get_db), \
             patch("fundflow.services.outreach_stats_service.outreach_stats_service.refresh_snapshot",
                   new=AsyncMock(side_effect=RuntimeError("redis gone"))):
            queue = StatsRefreshQueue()
            task = queue.publish(uuid4())
            await task

        assert task.exception() is None
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending(self):
        from fundflow.services.stats_refresh import StatsRefreshQueue

        refreshed = []

        async def slow_refresh(session, outreach_campaign_id):
            await asyncio.sleep(0.01)
            refreshed.append(outreach_campaign_id)

        @asynccontextmanager
        async def fake_get_db():
            yield MagicMock()

        with patch("fundflow.services.stats_refresh.get_db", new=fake_get_db), \
             patch("fundflow.services.outreach_stats_service.outreach_stats_service.refresh_snapshot",
                   new=slow_refresh):
            queue = StatsRefreshQueue()
            ids = [uuid4(), uuid4()]
            for outreach_campaign_id in ids:
                queue.publish(outreach_campaign_id)
            await queue.drain(timeout=1.0)

        assert sorted(refreshed) == sorted(ids)
        assert queue.pending == 0
