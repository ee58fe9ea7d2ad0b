"""
SQLAlchemy models for PostgreSQL persistence.
"""

from fundflow.models.user import User
from fundflow.models.campaign import Campaign, Donation, DonationStatus
from fundflow.models.contact import Contact, Segment
from fundflow.models.outreach import (
    EmailEvent,
    EmailEventType,
    LinkToken,
    LinkTokenType,
    OutreachCampaign,
    OutreachCampaignRecipient,
    OutreachCampaignStatus,
    RecipientStatus,
)

__all__ = [
    "User",
    "Campaign",
    "Donation",
    "DonationStatus",
    "Contact",
    "Segment",
    "EmailEvent",
    "EmailEventType",
    "LinkToken",
    "LinkTokenType",
    "OutreachCampaign",
    "OutreachCampaignRecipient",
    "OutreachCampaignStatus",
    "RecipientStatus",
]
