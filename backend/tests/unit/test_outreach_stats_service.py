"""
Tests for outreach campaign stats, the Redis snapshot cache and recipient
reconciliation.
"""

import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from redis.exceptions import ConnectionError as RedisConnectionError

from fundflow.models import EmailEventType
from fundflow.services.outreach_stats_service import OutreachStatsService, stats_cache_key


def _rows(rows):
    result = MagicMock()
    result.all.return_value = rows
    return result


def _outreach_campaign():
    oc = MagicMock()
    oc.id = uuid4()
    oc.campaign_id = uuid4()
    oc.name = "Spring Drive"
    oc.description = None
    oc.status = "active"
    oc.created_at = datetime(2026, 3, 1, 9, 0)
    oc.updated_at = None
    return oc


def _recipient(contact_id, opened=False, clicked=False, donated=False, donated_amount=None):
    recipient = MagicMock()
    recipient.id = uuid4()
    recipient.contact_id = contact_id
    recipient.email = f"{contact_id.hex[:6]}@example.com"
    recipient.opened = opened
    recipient.clicked = clicked
    recipient.donated = donated
    recipient.donated_amount = donated_amount
    return recipient


@pytest.fixture
def recipients():
    with patch("fundflow.services.outreach_stats_service.recipient_service") as recipients:
        yield recipients


class TestComputeStats:

    @pytest.mark.asyncio
    async def test_totals_and_rates(self, mock_session, recipients):
        oc = _outreach_campaign()
        mock_session.execute.side_effect = [
            _rows([("sent", 2), ("open", 1), ("click", 1)]),
            _rows([("sent", 2), ("failed", 1)]),
            _rows([]),
        ]
        mock_session.scalar.return_value = 3
        recipients.donation_totals = AsyncMock(return_value={"donations": 1, "total_amount": 50.0})

        stats = await OutreachStatsService().compute_stats(mock_session, oc)

        assert stats["totals"] == {
            "recipients": 3,
            "sends": 2,
            "failed": 1,
            "unique_opens": 1,
            "unique_clicks": 1,
            "total_clicks": 3,
            "donations": 1,
            "total_amount": 50.0,
        }
        assert stats["rates"] == {"open_rate": 50.0, "click_rate": 50.0, "conversion_rate": 50.0}
        assert stats["outreach_campaign_id"] == str(oc.id)
        assert stats["created_at"] == "2026-03-01T09:00:00"
        assert stats["recipients"] == []

    @pytest.mark.asyncio
    async def test_nothing_sent_gives_zero_rates(self, mock_session, recipients):
        mock_session.execute.side_effect = [_rows([]), _rows([]), _rows([])]
        mock_session.scalar.return_value = None
        recipients.donation_totals = AsyncMock(return_value={"donations": 0, "total_amount": 0.0})

        stats = await OutreachStatsService().compute_stats(mock_session, _outreach_campaign())

        assert stats["totals"]["sends"] == 0
        assert stats["totals"]["total_clicks"] == 0
        assert stats["rates"] == {"open_rate": 0.0, "click_rate": 0.0, "conversion_rate": 0.0}


class TestOptimizedStats:

    @pytest.fixture(autouse=True)
    def owned(self):
        with patch(
            "fundflow.services.outreach_stats_service.get_owned_outreach_campaign", new=AsyncMock()
        ) as owned:
            yield owned

    @pytest.fixture
    def redis(self):
        with patch("fundflow.services.outreach_stats_service.redis_client") as redis:
            redis.get_json = AsyncMock(return_value=None)
            redis.set_json = AsyncMock()
            yield redis

    @pytest.mark.asyncio
    async def test_cache_hit_skips_computation(self, mock_session, organizer_id, redis):
        oc_id = uuid4()
        redis.get_json.return_value = {"totals": {"sends": 4}}
        service = OutreachStatsService()

        with patch.object(service, "build_snapshot", new=AsyncMock()) as build:
            stats = await service.get_optimized_stats(mock_session, oc_id, organizer_id)

        assert stats == {"totals": {"sends": 4}, "cached": True}
        redis.get_json.assert_awaited_once_with(stats_cache_key(oc_id))
        build.assert_not_awaited()
        redis.set_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_miss_computes_and_stores(self, mock_session, organizer_id, redis):
        oc_id = uuid4()
        service = OutreachStatsService()

        with patch.object(service, "build_snapshot", new=AsyncMock(return_value={"totals": {"sends": 2}})):
            stats = await service.get_optimized_stats(mock_session, oc_id, organizer_id)

        assert stats["cached"] is False
        assert stats["totals"] == {"sends": 2}
        key, stored = redis.set_json.await_args.args
        assert key == f"outreach:stats:{oc_id}"
        assert stored["totals"] == {"sends": 2}

    @pytest.mark.asyncio
    async def test_redis_down_falls_back_to_computing(self, mock_session, organizer_id, redis):
        redis.get_json.side_effect = RedisConnectionError("connection refused")
        redis.set_json.side_effect = RedisConnectionError("connection refused")
        service = OutreachStatsService()

        with patch.object(service, "build_snapshot", new=AsyncMock(return_value={"totals": {"sends": 1}})) as build:
            stats = await service.get_optimized_stats(mock_session, uuid4(), organizer_id)

        assert stats == {"totals": {"sends": 1}, "cached": False}
        build.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ownership_checked_before_cache(self, mock_session, organizer_id, redis, owned):
        from fundflow.core.errors import NotFoundError

        owned.side_effect = NotFoundError("Outreach campaign")

        with pytest.raises(NotFoundError):
            await OutreachStatsService().get_optimized_stats(mock_session, uuid4(), organizer_id)

        redis.get_json.assert_not_awaited()


class TestReconcileRecipients:

    def _engagement(self, recipients, rows, opened, clicked, donated):
        async def contacts_with_event(session, oc_id, event_type):
            return set(clicked if event_type == EmailEventType.CLICK else opened)

        recipients.list_recipients = AsyncMock(return_value=rows)
        recipients.contacts_with_event = AsyncMock(side_effect=contacts_with_event)
        recipients.donations_by_contact = AsyncMock(return_value=donated)

    @pytest.mark.asyncio
    async def test_reports_mismatches_without_writing(self, mock_session, recipients):
        in_sync, stale = uuid4(), uuid4()
        rows = [_recipient(in_sync, opened=True), _recipient(stale, opened=True)]
        self._engagement(recipients, rows, opened={in_sync}, clicked={stale}, donated={stale: Decimal("20")})

        report = await OutreachStatsService().reconcile_recipients(mock_session, uuid4())

        assert report["checked"] == 2
        assert report["mismatched"] == 1
        assert report["applied"] is False
        mismatch = report["mismatches"][0]
        assert mismatch["contact_id"] == str(stale)
        assert mismatch["current"] == {"opened": True, "clicked": False, "donated": False, "donated_amount": 0.0}
        # A click implies an open
        assert mismatch["expected"] == {"opened": True, "clicked": True, "donated": True, "donated_amount": 20.0}
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_apply_rewrites_only_mismatching_rows(self, mock_session, recipients):
        in_sync, stale = uuid4(), uuid4()
        rows = [
            _recipient(in_sync),
            _recipient(stale, opened=True, clicked=True, donated=True, donated_amount=Decimal("5.00")),
        ]
        self._engagement(recipients, rows, opened=set(), clicked=set(), donated={})

        report = await OutreachStatsService().reconcile_recipients(mock_session, uuid4(), apply=True)

        assert report["mismatched"] == 1
        assert report["applied"] is True
        mock_session.execute.assert_awaited_once()
        params = mock_session.execute.await_args.args[0].compile().params
        assert params["opened"] is False
        assert params["clicked"] is False
        assert params["donated"] is False
        assert params["donated_amount"] == Decimal("0.00")
