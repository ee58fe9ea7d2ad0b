"""
Ownership lookups shared by the outreach services.

Every write re-checks that the organizer owns the campaign, segment or
contact it touches. A row that exists but belongs to someone else is
reported exactly like a missing one.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.errors import NotFoundError
from fundflow.models import Campaign, Contact, OutreachCampaign, Segment, User


async def find_campaign_by_id(session: AsyncSession, campaign_id: UUID) -> Optional[Campaign]:
    result = await session.execute(select(Campaign).where(Campaign.id == campaign_id))
    return result.scalar_one_or_none()


async def get_owned_campaign(session: AsyncSession, campaign_id: UUID, organizer_id: UUID) -> Campaign:
    """Return the campaign if the organizer owns it, else raise NotFoundError."""
    campaign = await find_campaign_by_id(session, campaign_id)
    if campaign is None or campaign.organizer_id != organizer_id:
        raise NotFoundError("Campaign")
    return campaign


async def get_owned_segment(session: AsyncSession, segment_id: UUID, organizer_id: UUID) -> Segment:
    result = await session.execute(
        select(Segment).where(Segment.id == segment_id, Segment.organizer_id == organizer_id)
    )
    segment = result.scalar_one_or_none()
    if segment is None:
        raise NotFoundError("Segment")
    return segment


async def get_owned_contact(session: AsyncSession, contact_id: UUID, organizer_id: UUID) -> Contact:
    """Contacts are owned through their segment."""
    result = await session.execute(
        select(Contact)
        .join(Segment, Contact.segment_id == Segment.id)
        .where(Contact.id == contact_id, Segment.organizer_id == organizer_id)
    )
    contact = result.scalar_one_or_none()
    if contact is None:
        raise NotFoundError("Contact")
    return contact


async def get_owned_outreach_campaign(
    session: AsyncSession,
    outreach_campaign_id: UUID,
    organizer_id: UUID,
) -> tuple[OutreachCampaign, Campaign]:
    """Return the outreach campaign with its parent campaign."""
    result = await session.execute(
        select(OutreachCampaign, Campaign)
        .join(Campaign, OutreachCampaign.campaign_id == Campaign.id)
        .where(OutreachCampaign.id == outreach_campaign_id, Campaign.organizer_id == organizer_id)
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Outreach campaign")
    return row[0], row[1]


async def get_organizer(session: AsyncSession, organizer_id: UUID) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == organizer_id))
    return result.scalar_one_or_none()
