"""
Link token store.

A link token is created for every (campaign, recipient, message type)
send. Its id is embedded in the tracking pixel and click URLs, and the
click endpoint is the only writer of ``clicks_count``. Repeat sends to
the same contact deliberately create new tokens.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.errors import NotFoundError, ValidationError
from fundflow.models import Campaign, Contact, LinkToken, LinkTokenType, Segment
from fundflow.schemas.outreach import (
    AllContactsTarget,
    ContactTarget,
    LinkTokenCreate,
    LinkTokenFilters,
    SegmentTarget,
)
from fundflow.services.ownership import (
    find_campaign_by_id,
    get_owned_campaign,
    get_owned_contact,
    get_owned_segment,
)

logger = logging.getLogger(__name__)


class LinkTokenService:
    """Persistence and ownership rules for link tokens."""

    async def create_link_token(
        self,
        session: AsyncSession,
        data: LinkTokenCreate,
        organizer_id: UUID,
    ) -> Dict[str, Any]:
        """Create a token after checking the organizer owns every referenced row.

        Parameters
        ----------
        session : AsyncSession
            Request session; the ownership reads and the insert share its
            transaction.
        data : LinkTokenCreate
            Token attributes. ``target`` must be a contact or a segment unless
            the token is a ``share`` token.
        organizer_id : UUID
            Caller.

        Returns
        -------
        dict
            The created token.

        Raises
        ------
        NotFoundError
            If the campaign, contact or segment is missing or not owned.
        ValidationError
            If the target is missing or is the all-contacts variant.
        """
        await get_owned_campaign(session, data.campaign_id, organizer_id)

        contact_id: Optional[UUID] = None
        segment_id: Optional[UUID] = None
        target = data.target

        if isinstance(target, ContactTarget):
            await get_owned_contact(session, target.contact_id, organizer_id)
            contact_id = target.contact_id
        elif isinstance(target, SegmentTarget):
            await get_owned_segment(session, target.segment_id, organizer_id)
            segment_id = target.segment_id
        elif isinstance(target, AllContactsTarget):
            raise ValidationError("A link token addresses one contact or one segment", field="target")
        elif data.type != LinkTokenType.SHARE:
            raise ValidationError("contact or segment target is required", field="target")

        token = self._build_token(data, contact_id=contact_id, segment_id=segment_id)
        session.add(token)
        await session.flush()

        logger.info(
            "Link token %s created for campaign %s (type=%s, contact=%s, segment=%s)",
            token.id, data.campaign_id, data.type.value, contact_id, segment_id,
        )
        return self._link_token_to_dict(token)

    async def create_public_share_token(
        self,
        session: AsyncSession,
        data: LinkTokenCreate,
    ) -> Dict[str, Any]:
        """Create a ``share`` token without an organizer; only the campaign must exist."""
        campaign = await find_campaign_by_id(session, data.campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign")

        token = self._build_token(data.model_copy(update={"type": LinkTokenType.SHARE}))
        session.add(token)
        await session.flush()

        logger.info("Public share token %s created for campaign %s", token.id, data.campaign_id)
        return self._link_token_to_dict(token)

    async def get_link_token(
        self,
        session: AsyncSession,
        link_token_id: UUID,
        organizer_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        """Fetch a token with its contact and segment names.

        ``organizer_id=None`` skips the ownership check; the public tracking
        endpoints read tokens this way.
        """
        query = (
            select(
                LinkToken,
                Contact.name.label("contact_name"),
                Contact.email.label("contact_email"),
                Segment.name.label("segment_name"),
            )
            .outerjoin(Contact, LinkToken.contact_id == Contact.id)
            .outerjoin(Segment, LinkToken.segment_id == Segment.id)
            .where(LinkToken.id == link_token_id)
        )
        if organizer_id is not None:
            query = query.join(Campaign, LinkToken.campaign_id == Campaign.id).where(
                Campaign.organizer_id == organizer_id
            )

        result = await session.execute(query)
        row = result.first()
        if row is None:
            raise NotFoundError("Link token")

        token, contact_name, contact_email, segment_name = row
        data = self._link_token_to_dict(token)
        data.update(
            contact_name=contact_name,
            contact_email=contact_email,
            segment_name=segment_name,
        )
        return data

    async def list_by_campaign(
        self,
        session: AsyncSession,
        campaign_id: UUID,
        organizer_id: UUID,
        filters: Optional[LinkTokenFilters] = None,
    ) -> List[Dict[str, Any]]:
        """List a campaign's tokens, newest first."""
        await get_owned_campaign(session, campaign_id, organizer_id)

        query = (
            select(LinkToken, Contact.name, Contact.email, Segment.name)
            .outerjoin(Contact, LinkToken.contact_id == Contact.id)
            .outerjoin(Segment, LinkToken.segment_id == Segment.id)
            .where(LinkToken.campaign_id == campaign_id)
        )
        if filters:
            if filters.type is not None:
                query = query.where(LinkToken.type == filters.type.value)
            if filters.contact_id is not None:
                query = query.where(LinkToken.contact_id == filters.contact_id)
            if filters.segment_id is not None:
                query = query.where(LinkToken.segment_id == filters.segment_id)
            if filters.has_clicks is True:
                query = query.where(LinkToken.clicks_count > 0)
            elif filters.has_clicks is False:
                query = query.where(LinkToken.clicks_count == 0)

        result = await session.execute(query.order_by(LinkToken.created_at.desc()))
        tokens = []
        for token, contact_name, contact_email, segment_name in result.all():
            data = self._link_token_to_dict(token)
            data.update(contact_name=contact_name, contact_email=contact_email, segment_name=segment_name)
            tokens.append(data)
        return tokens

    async def list_by_outreach_campaign(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
    ) -> List[Dict[str, Any]]:
        result = await session.execute(
            select(LinkToken)
            .where(LinkToken.outreach_campaign_id == outreach_campaign_id)
            .order_by(LinkToken.created_at.desc())
        )
        return [self._link_token_to_dict(token) for token in result.scalars().all()]

    async def increment_click_count(self, session: AsyncSession, link_token_id: UUID) -> int:
        """Atomically bump ``clicks_count`` and return the new value."""
        result = await session.execute(
            update(LinkToken)
            .where(LinkToken.id == link_token_id)
            .values(clicks_count=LinkToken.clicks_count + 1, last_clicked_at=datetime.utcnow())
            .returning(LinkToken.clicks_count)
        )
        clicks = result.scalar_one_or_none()
        if clicks is None:
            raise NotFoundError("Link token")
        return clicks

    async def delete_link_token(self, session: AsyncSession, link_token_id: UUID, organizer_id: UUID) -> None:
        """Delete a token the organizer owns."""
        await self.get_link_token(session, link_token_id, organizer_id)
        await session.execute(delete(LinkToken).where(LinkToken.id == link_token_id))
        logger.info("Link token %s deleted by organizer %s", link_token_id, organizer_id)

    async def delete_link_token_unsafe(self, session: AsyncSession, link_token_id: UUID) -> bool:
        """Hard delete with no ownership check.

        Only used to compensate for a token whose email failed to send.
        """
        result = await session.execute(delete(LinkToken).where(LinkToken.id == link_token_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_token(
        self,
        data: LinkTokenCreate,
        contact_id: Optional[UUID] = None,
        segment_id: Optional[UUID] = None,
    ) -> LinkToken:
        return LinkToken(
            campaign_id=data.campaign_id,
            contact_id=contact_id,
            segment_id=segment_id,
            outreach_campaign_id=data.outreach_campaign_id,
            type=data.type.value,
            prefill_amount=data.prefill_amount,
            personalized_message=data.personalized_message,
            utm_source=data.utm.utm_source,
            utm_medium=data.utm.utm_medium,
            utm_campaign=data.utm.utm_campaign,
            utm_content=data.utm.utm_content,
            clicks_count=0,
            created_at=datetime.utcnow(),
        )

    def _link_token_to_dict(self, token: LinkToken) -> Dict[str, Any]:
        return {
            "id": str(token.id),
            "campaign_id": str(token.campaign_id),
            "contact_id": str(token.contact_id) if token.contact_id else None,
            "segment_id": str(token.segment_id) if token.segment_id else None,
            "outreach_campaign_id": str(token.outreach_campaign_id) if token.outreach_campaign_id else None,
            "type": token.type,
            "prefill_amount": float(token.prefill_amount) if token.prefill_amount is not None else None,
            "personalized_message": token.personalized_message,
            "utm_source": token.utm_source,
            "utm_medium": token.utm_medium,
            "utm_campaign": token.utm_campaign,
            "utm_content": token.utm_content,
            "clicks_count": token.clicks_count or 0,
            "created_at": token.created_at.isoformat() if token.created_at else None,
            "last_clicked_at": token.last_clicked_at.isoformat() if token.last_clicked_at else None,
        }


# Singleton instance
link_token_service = LinkTokenService()
