"""
Tests for the link token store.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from fundflow.core.errors import NotFoundError, ValidationError
from fundflow.models import LinkToken, LinkTokenType
from fundflow.schemas.outreach import (
    AllContactsTarget,
    ContactTarget,
    LinkTokenCreate,
    UTMParams,
)


class TestLinkTokenService:

    @pytest.fixture
    def service(self):
        from fundflow.services.link_token_service import LinkTokenService
        return LinkTokenService()

    @pytest.fixture
    def owned(self):
        with patch("fundflow.services.link_token_service.get_owned_campaign", new=AsyncMock()) as campaign, \
             patch("fundflow.services.link_token_service.get_owned_contact", new=AsyncMock()) as contact, \
             patch("fundflow.services.link_token_service.get_owned_segment", new=AsyncMock()) as segment:
            yield {"campaign": campaign, "contact": contact, "segment": segment}

    @pytest.mark.asyncio
    async def test_create_for_contact(self, service, owned, mock_session, organizer_id):
        contact_id = uuid4()
        data = LinkTokenCreate(
            campaign_id=uuid4(),
            type=LinkTokenType.INVITE,
            target=ContactTarget(contact_id=contact_id),
            utm=UTMParams(utm_source="outreach"),
        )

        token = await service.create_link_token(mock_session, data, organizer_id)

        owned["contact"].assert_awaited_once_with(mock_session, contact_id, organizer_id)
        added = mock_session.add.call_args[0][0]
        assert isinstance(added, LinkToken)
        assert added.contact_id == contact_id
        assert added.clicks_count == 0
        assert token["type"] == "invite"
        assert token["utm_source"] == "outreach"

    @pytest.mark.asyncio
    async def test_all_contacts_target_rejected(self, service, owned, mock_session, organizer_id):
        data = LinkTokenCreate(campaign_id=uuid4(), type=LinkTokenType.INVITE, target=AllContactsTarget())

        with pytest.raises(ValidationError):
            await service.create_link_token(mock_session, data, organizer_id)
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_target_required_unless_share(self, service, owned, mock_session, organizer_id):
        with pytest.raises(ValidationError):
            await service.create_link_token(
                mock_session, LinkTokenCreate(campaign_id=uuid4(), type=LinkTokenType.UPDATE), organizer_id
            )

        token = await service.create_link_token(
            mock_session, LinkTokenCreate(campaign_id=uuid4(), type=LinkTokenType.SHARE), organizer_id
        )
        assert token["type"] == "share"
        assert token["contact_id"] is None

    @pytest.mark.asyncio
    async def test_unowned_campaign_is_not_found(self, service, owned, mock_session, organizer_id):
        owned["campaign"].side_effect = NotFoundError("Campaign")
        data = LinkTokenCreate(campaign_id=uuid4(), type=LinkTokenType.SHARE)

        with pytest.raises(NotFoundError):
            await service.create_link_token(mock_session, data, organizer_id)

    @pytest.mark.asyncio
    async def test_increment_click_count(self, service, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = 3
        mock_session.execute.return_value = result

        assert await service.increment_click_count(mock_session, uuid4()) == 3

    @pytest.mark.asyncio
    async def test_increment_missing_token(self, service, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = result

        with pytest.raises(NotFoundError):
            await service.increment_click_count(mock_session, uuid4())

    @pytest.mark.asyncio
    async def test_get_missing_token(self, service, mock_session):
        result = MagicMock()
        result.first.return_value = None
        mock_session.execute.return_value = result

        with pytest.raises(NotFoundError):
            await service.get_link_token(mock_session, uuid4())
