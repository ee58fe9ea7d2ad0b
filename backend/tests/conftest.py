"""
pytest configuration and fixtures for FundFlow backend tests.
"""

import pytest
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

# Set environment variables before importing fundflow modules
import os
os.environ["ENVIRONMENT"] = "testing"
os.environ["DEBUG"] = "false"
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["REDIS_DB"] = "15"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key"
os.environ["FRONTEND_URL"] = "https://app.fundflow.test"
os.environ["TRACKING_BASE_URL"] = "https://api.fundflow.test"


class FakeEmailProvider:
    """Records messages instead of sending them; fails for listed addresses.

    ``raise_for`` maps addresses to an exception the provider raises
    instead of returning a result.
    """

    def __init__(self, fail_for: Optional[List[str]] = None, raise_for: Optional[dict] = None):
        self.fail_for = set(fail_for or [])
        self.raise_for = dict(raise_for or {})
        self.sent = []

    async def send_email(self, message):
        from fundflow.services.email_provider import SendResult

        if message.to in self.raise_for:
            raise self.raise_for[message.to]
        if message.to in self.fail_for:
            return SendResult(success=False, error="550 mailbox unavailable", tracking_id=message.tracking_id)
        self.sent.append(message)
        return SendResult(success=True, message_id=f"<msg-{len(self.sent)}@fundflow.test>", tracking_id=message.tracking_id)

    async def verify_connection(self) -> bool:
        return True


def make_session():
    """Mock AsyncSession; begin_nested() works as an async context manager."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.rollback = AsyncMock()
    session.add = MagicMock()
    return session


def make_campaign(**overrides):
    campaign = MagicMock()
    campaign.id = overrides.get("id", uuid4())
    campaign.organizer_id = overrides.get("organizer_id", uuid4())
    campaign.name = overrides.get("name", "Spring Drive")
    campaign.description = overrides.get("description", "Raising funds for the spring season")
    campaign.share_link = overrides.get("share_link", "ab12cd")
    return campaign


def make_token(campaign_id, contact_id=None, outreach_campaign_id=None, **overrides) -> dict:
    token = {
        "id": str(uuid4()),
        "campaign_id": str(campaign_id),
        "contact_id": str(contact_id) if contact_id else None,
        "segment_id": None,
        "outreach_campaign_id": str(outreach_campaign_id) if outreach_campaign_id else None,
        "type": "invite",
        "prefill_amount": None,
        "personalized_message": None,
        "utm_source": None,
        "utm_medium": None,
        "utm_campaign": None,
        "utm_content": None,
        "clicks_count": 0,
    }
    token.update(overrides)
    return token


@pytest.fixture
def mock_session():
    return make_session()


@pytest.fixture
def fake_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def organizer_id():
    return uuid4()


@pytest.fixture
def campaign(organizer_id):
    return make_campaign(organizer_id=organizer_id)


class FakeDriverError(Exception):
    """Driver exception carrying a SQLSTATE, as asyncpg errors do."""

    def __init__(self, sqlstate: str, column_name: Optional[str] = None):
        super().__init__(f"SQLSTATE {sqlstate}")
        self.sqlstate = sqlstate
        self.column_name = column_name


def make_integrity_error(sqlstate: str, column_name: Optional[str] = None):
    from sqlalchemy.exc import IntegrityError

    return IntegrityError("UPDATE", {}, FakeDriverError(sqlstate, column_name))
