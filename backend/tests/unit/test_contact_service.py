"""
Tests for segments and contacts.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from fundflow.core.errors import ConflictError, ValidationError
from fundflow.schemas.contacts import BulkContactRow, SegmentCreate

from tests.conftest import make_integrity_error


class TestBulkContacts:

    @pytest.fixture
    def service(self):
        from fundflow.services.contact_service import ContactService
        return ContactService()

    @pytest.fixture(autouse=True)
    def owned_segment(self):
        with patch("fundflow.services.contact_service.get_owned_segment", new=AsyncMock()) as owned:
            yield owned

    def _existing(self, session, emails):
        result = MagicMock()
        result.scalars.return_value.all.return_value = emails
        session.execute.return_value = result

    @pytest.mark.asyncio
    async def test_existing_emails_are_skipped(self, service, mock_session, organizer_id):
        self._existing(mock_session, ["a@example.com", "B@example.com"])
        rows = [
            BulkContactRow(name="A", email="a@example.com"),
            BulkContactRow(name="B", email="b@example.com"),
            BulkContactRow(name="C", email="c@example.com"),
            BulkContactRow(name="D", email="D@Example.com"),
        ]

        result = await service.bulk_create_contacts(mock_session, uuid4(), organizer_id, rows)

        assert result["created_count"] == 2
        assert result["skipped_existing"] == 2
        assert [c["email"] for c in result["created"]] == ["c@example.com", "d@example.com"]
        assert result["errors"] == []
        assert mock_session.add.call_count == 2
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_rows_are_reported(self, service, mock_session, organizer_id):
        self._existing(mock_session, [])
        rows = [
            BulkContactRow(name="", email="x@example.com"),
            BulkContactRow(name="N" * 101, email="y@example.com"),
            BulkContactRow(name="No Email"),
            BulkContactRow(name="Bad", email="bad-address"),
            BulkContactRow(name="Ok", email="ok@example.com"),
            BulkContactRow(name="Again", email="OK@example.com"),
        ]

        result = await service.bulk_create_contacts(mock_session, uuid4(), organizer_id, rows)

        reasons = [(e["index"], e["reason"]) for e in result["errors"]]
        assert reasons == [
            (0, "Name is required"),
            (1, "Name must be at most 100 characters"),
            (2, "Email is required"),
            (3, "Invalid email"),
            (5, "Duplicate email in payload"),
        ]
        assert result["created_count"] == 1

    @pytest.mark.asyncio
    async def test_no_valid_rows(self, service, mock_session, organizer_id):
        with pytest.raises(ValidationError) as exc:
            await service.bulk_create_contacts(
                mock_session, uuid4(), organizer_id, [BulkContactRow(name="", email="")]
            )

        assert exc.value.message == "No valid contacts to add"
        mock_session.execute.assert_not_awaited()


class TestSegments:

    @pytest.mark.asyncio
    async def test_duplicate_segment_name(self, mock_session, organizer_id):
        from fundflow.services.contact_service import ContactService

        mock_session.flush.side_effect = make_integrity_error("23505")

        with pytest.raises(ConflictError) as exc:
            await ContactService().create_segment(mock_session, organizer_id, SegmentCreate(name="Donors"))

        assert exc.value.message == "Segment name already exists for this organizer"

    @pytest.mark.asyncio
    async def test_create_segment_strips_name(self, mock_session, organizer_id):
        from fundflow.services.contact_service import ContactService

        segment = await ContactService().create_segment(mock_session, organizer_id, SegmentCreate(name="  Donors "))

        assert segment["name"] == "Donors"
        assert segment["contact_count"] == 0
        assert segment["organizer_id"] == str(organizer_id)
