"""
Email event log.

Events are insert-only. Several opens or clicks per token are normal
(every pixel load and every click is a row); unique counts are derived
with COUNT(DISTINCT contact_id).
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.errors import NotFoundError
from fundflow.models import Campaign, Contact, EmailEvent, EmailEventType, LinkToken
from fundflow.services.metrics import percentage
from fundflow.services.ownership import (
    get_owned_campaign,
    get_owned_contact,
    get_owned_outreach_campaign,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class EmailEventService:
    """Record and query sent/open/click events."""

    async def record_event(
        self,
        session: AsyncSession,
        link_token_id: UUID,
        contact_id: Optional[UUID],
        event_type: EmailEventType,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> EmailEvent:
        """Append one event. Only database constraint failures can raise."""
        event = EmailEvent(
            link_token_id=link_token_id,
            contact_id=contact_id,
            type=event_type.value,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        session.add(event)
        await session.flush()
        logger.debug("Recorded %s event for link token %s", event_type.value, link_token_id)
        return event

    async def events_by_link_token(
        self,
        session: AsyncSession,
        link_token_id: UUID,
        organizer_id: UUID,
    ) -> List[Dict[str, Any]]:
        owned = await session.execute(
            select(LinkToken.id)
            .join(Campaign, LinkToken.campaign_id == Campaign.id)
            .where(LinkToken.id == link_token_id, Campaign.organizer_id == organizer_id)
        )
        if owned.scalar_one_or_none() is None:
            raise NotFoundError("Link token")

        result = await session.execute(
            select(EmailEvent, Contact.name, Contact.email)
            .outerjoin(Contact, EmailEvent.contact_id == Contact.id)
            .where(EmailEvent.link_token_id == link_token_id)
            .order_by(EmailEvent.created_at.desc())
        )
        return [
            self._event_to_dict(event, contact_name=name, contact_email=email)
            for event, name, email in result.all()
        ]

    async def events_by_campaign(
        self,
        session: AsyncSession,
        campaign_id: UUID,
        organizer_id: UUID,
    ) -> List[Dict[str, Any]]:
        """All events of a campaign's tokens, with the token type attached."""
        await get_owned_campaign(session, campaign_id, organizer_id)

        result = await session.execute(
            select(EmailEvent, LinkToken.type, Contact.name, Contact.email)
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .outerjoin(Contact, EmailEvent.contact_id == Contact.id)
            .where(LinkToken.campaign_id == campaign_id)
            .order_by(EmailEvent.created_at.desc())
        )
        return [
            self._event_to_dict(event, link_type=link_type, contact_name=name, contact_email=email)
            for event, link_type, name, email in result.all()
        ]

    async def events_by_outreach_campaign(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        event_type: Optional[EmailEventType] = None,
    ) -> Dict[str, Any]:
        """Paginated events of one outreach campaign, newest first."""
        await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)

        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = [LinkToken.outreach_campaign_id == outreach_campaign_id]
        if event_type is not None:
            conditions.append(EmailEvent.type == event_type.value)

        total = await session.scalar(
            select(func.count(EmailEvent.id))
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .where(and_(*conditions))
        ) or 0

        result = await session.execute(
            select(EmailEvent, LinkToken.type, Contact.name, Contact.email)
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .outerjoin(Contact, EmailEvent.contact_id == Contact.id)
            .where(and_(*conditions))
            .order_by(EmailEvent.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        events = [
            self._event_to_dict(event, link_type=link_type, contact_name=name, contact_email=email)
            for event, link_type, name, email in result.all()
        ]

        total_pages = math.ceil(total / limit) if total else 0
        return {
            "events": events,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    async def events_by_link_token_and_contact(
        self,
        session: AsyncSession,
        link_token_id: UUID,
        contact_id: UUID,
    ) -> List[Dict[str, Any]]:
        """One contact's events on one token, oldest first. No ownership check."""
        result = await session.execute(
            select(EmailEvent)
            .where(EmailEvent.link_token_id == link_token_id, EmailEvent.contact_id == contact_id)
            .order_by(EmailEvent.created_at.asc())
        )
        return [self._event_to_dict(event) for event in result.scalars().all()]

    async def stats_by_campaign(self, session: AsyncSession, campaign_id: UUID) -> Dict[str, Any]:
        """Per-type counts and unique contacts, plus open and click rates.

        Rates are 0 when their denominator is 0.
        """
        result = await session.execute(
            select(
                EmailEvent.type,
                func.count(EmailEvent.id),
                func.count(func.distinct(EmailEvent.contact_id)),
            )
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .where(LinkToken.campaign_id == campaign_id)
            .group_by(EmailEvent.type)
        )

        stats: Dict[str, Any] = {
            event_type.value: {"count": 0, "unique_contacts": 0}
            for event_type in EmailEventType
        }
        for event_type, count, unique_contacts in result.all():
            stats[event_type] = {"count": count or 0, "unique_contacts": unique_contacts or 0}

        unique_sends = stats["sent"]["unique_contacts"]
        unique_opens = stats["open"]["unique_contacts"]
        unique_clicks = stats["click"]["unique_contacts"]

        stats["open_rate"] = percentage(unique_opens, unique_sends)
        stats["click_rate"] = percentage(unique_clicks, unique_opens)
        return stats

    async def unique_opens_by_contact(
        self,
        session: AsyncSession,
        contact_id: UUID,
        organizer_id: UUID,
    ) -> int:
        """Number of distinct tokens the contact has opened."""
        await get_owned_contact(session, contact_id, organizer_id)
        count = await session.scalar(
            select(func.count(func.distinct(EmailEvent.link_token_id))).where(
                EmailEvent.contact_id == contact_id,
                EmailEvent.type == EmailEventType.OPEN.value,
            )
        )
        return count or 0

    def _event_to_dict(self, event: EmailEvent, **extra: Any) -> Dict[str, Any]:
        data = {
            "id": str(event.id),
            "link_token_id": str(event.link_token_id),
            "contact_id": str(event.contact_id) if event.contact_id else None,
            "type": event.type,
            "user_agent": event.user_agent,
            "ip_address": event.ip_address,
            "created_at": event.created_at.isoformat() if event.created_at else None,
        }
        data.update(extra)
        return data


# Singleton instance
email_event_service = EmailEventService()
