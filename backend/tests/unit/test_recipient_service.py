"""
Tests for outreach campaign recipients: adding segment contacts and
resolving donors.
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from fundflow.models import RecipientStatus
from fundflow.services.recipient_service import RecipientService


def _rows(rows):
    result = MagicMock()
    result.all.return_value = rows
    return result


def _scalars(values):
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


class TestAddRecipients:

    @pytest.fixture
    def insert(self):
        with patch("fundflow.services.recipient_service.insert") as insert:
            yield insert

    @pytest.mark.asyncio
    async def test_duplicate_email_across_segments_is_added_once(self, insert, mock_session, organizer_id):
        oc_id = uuid4()
        first, second, third = uuid4(), uuid4(), uuid4()
        mock_session.execute.side_effect = [
            _rows([(first, "sam@example.com"), (second, " Sam@Example.com "), (third, "kim@example.com")]),
            _scalars([]),
            _scalars([uuid4(), uuid4()]),
        ]

        result = await RecipientService().add_recipients(mock_session, oc_id, organizer_id, [uuid4(), uuid4()])

        assert result == {"added": 2}
        rows = insert.return_value.values.call_args.args[0]
        assert [r["contact_id"] for r in rows] == [first, third]
        assert [r["email"] for r in rows] == ["sam@example.com", "kim@example.com"]
        assert all(r["status"] == RecipientStatus.PENDING.value for r in rows)
        assert all(r["outreach_campaign_id"] == oc_id for r in rows)

    @pytest.mark.asyncio
    async def test_email_already_in_campaign_is_skipped(self, insert, mock_session, organizer_id):
        mock_session.execute.side_effect = [
            _rows([(uuid4(), "SAM@example.com")]),
            _scalars(["sam@example.com"]),
        ]

        result = await RecipientService().add_recipients(mock_session, uuid4(), organizer_id)

        assert result == {"added": 0}
        insert.assert_not_called()
        assert mock_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_segment_list_adds_nothing(self, insert, mock_session, organizer_id):
        result = await RecipientService().add_recipients(mock_session, uuid4(), organizer_id, [])

        assert result == {"added": 0}
        mock_session.execute.assert_not_awaited()


class TestDonors:

    @pytest.mark.asyncio
    async def test_donors_carry_their_attributed_total(self, mock_session):
        service = RecipientService()
        sam, kim = uuid4(), uuid4()
        amounts = {sam: Decimal("25.00"), kim: Decimal("40.50")}
        mock_session.execute.return_value = _rows([(sam, "Sam", "sam@example.com"), (kim, None, "kim@example.com")])

        with patch.object(service, "donations_by_contact", new=AsyncMock(return_value=amounts)):
            donors = await service.get_donors(mock_session, uuid4())

        assert donors == [
            {"contact_id": sam, "name": "Sam", "email": "sam@example.com", "donated_amount": Decimal("25.00")},
            {"contact_id": kim, "name": None, "email": "kim@example.com", "donated_amount": Decimal("40.50")},
        ]

    @pytest.mark.asyncio
    async def test_no_donations_means_no_donors(self, mock_session):
        service = RecipientService()

        with patch.object(service, "donations_by_contact", new=AsyncMock(return_value={})):
            donors = await service.get_donors(mock_session, uuid4())

        assert donors == []
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_donation_totals_default_to_zero(self, mock_session):
        result = MagicMock()
        result.one.return_value = (0, None)
        mock_session.execute.return_value = result

        totals = await RecipientService().donation_totals(mock_session, uuid4())

        assert totals == {"donations": 0, "total_amount": 0.0}
