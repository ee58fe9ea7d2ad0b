"""
Outreach campaign recipients.

Recipient rows carry the send status of each contact in an outreach
campaign plus a mirror of its engagement (opened / clicked / donated).
The mirror is written on the hot path by the tracking endpoints and is
rebuilt from email_events and donations by reconciliation; analytics
that need donation totals read the donations table directly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.models import (
    Contact,
    Donation,
    DonationStatus,
    EmailEvent,
    EmailEventType,
    LinkToken,
    OutreachCampaignRecipient,
    RecipientStatus,
    Segment,
)

logger = logging.getLogger(__name__)


class RecipientService:
    """Recipient rows and the engagement facts behind them."""

    async def add_recipients(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        segment_ids: Optional[Iterable[UUID]] = None,
    ) -> Dict[str, int]:
        """Add contacts of the given segments, or of every segment when
        ``segment_ids`` is None.

        Contacts with a blank email are skipped, and so is any email already
        present in the campaign: a person listed in two segments is added once.

        Returns
        -------
        dict
            ``{"added": n}``
        """
        query = (
            select(Contact.id, Contact.email)
            .join(Segment, Contact.segment_id == Segment.id)
            .where(Segment.organizer_id == organizer_id)
            .where(func.length(func.trim(Contact.email)) > 0)
            .order_by(Contact.created_at.asc(), Contact.id.asc())
        )
        if segment_ids is not None:
            segment_ids = list(segment_ids)
            if not segment_ids:
                return {"added": 0}
            query = query.where(Contact.segment_id.in_(segment_ids))

        candidates = (await session.execute(query)).all()

        existing = await session.execute(
            select(OutreachCampaignRecipient.email).where(
                OutreachCampaignRecipient.outreach_campaign_id == outreach_campaign_id
            )
        )
        seen: Set[str] = {email.strip().lower() for email in existing.scalars().all()}

        rows = []
        for contact_id, email in candidates:
            key = email.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            rows.append({
                "outreach_campaign_id": outreach_campaign_id,
                "contact_id": contact_id,
                "email": email.strip(),
                "status": RecipientStatus.PENDING.value,
            })

        if not rows:
            return {"added": 0}

        stmt = (
            insert(OutreachCampaignRecipient)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["outreach_campaign_id", "contact_id"])
            .returning(OutreachCampaignRecipient.id)
        )
        result = await session.execute(stmt)
        added = len(result.scalars().all())

        logger.info("Added %d recipients to outreach campaign %s", added, outreach_campaign_id)
        return {"added": added}

    async def list_recipients(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        statuses: Optional[Iterable[RecipientStatus]] = None,
    ) -> List[OutreachCampaignRecipient]:
        query = select(OutreachCampaignRecipient).where(
            OutreachCampaignRecipient.outreach_campaign_id == outreach_campaign_id
        )
        if statuses is not None:
            query = query.where(OutreachCampaignRecipient.status.in_([s.value for s in statuses]))
        result = await session.execute(query.order_by(OutreachCampaignRecipient.created_at.asc()))
        return list(result.scalars().all())

    async def get_failed_recipients(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
    ) -> List[OutreachCampaignRecipient]:
        return await self.list_recipients(session, outreach_campaign_id, [RecipientStatus.FAILED])

    async def mark_send_result(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        contact_id: UUID,
        email: str,
        status: RecipientStatus,
        failure_reason: Optional[str] = None,
    ) -> None:
        """Record the outcome of one send, creating the row if needed."""
        now = datetime.utcnow()
        stmt = insert(OutreachCampaignRecipient).values(
            outreach_campaign_id=outreach_campaign_id,
            contact_id=contact_id,
            email=email,
            status=status.value,
            last_send_at=now,
            failure_reason=failure_reason,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["outreach_campaign_id", "contact_id"],
            set_={
                "status": status.value,
                "last_send_at": now,
                "failure_reason": failure_reason,
                "updated_at": now,
            },
        )
        await session.execute(stmt)

    async def mark_engagement(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        contact_id: UUID,
        opened: bool = False,
        clicked: bool = False,
    ) -> int:
        """Set the opened/clicked mirror flags. A click implies an open."""
        values: Dict[str, Any] = {"updated_at": datetime.utcnow()}
        if opened or clicked:
            values["opened"] = True
        if clicked:
            values["clicked"] = True
        result = await session.execute(
            update(OutreachCampaignRecipient)
            .where(
                OutreachCampaignRecipient.outreach_campaign_id == outreach_campaign_id,
                OutreachCampaignRecipient.contact_id == contact_id,
            )
            .values(**values)
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Engagement facts (email_events and donations)
    # ------------------------------------------------------------------

    async def contacts_with_event(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        event_type: EmailEventType,
    ) -> Set[UUID]:
        result = await session.execute(
            select(EmailEvent.contact_id)
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .where(
                LinkToken.outreach_campaign_id == outreach_campaign_id,
                EmailEvent.type == event_type.value,
                EmailEvent.contact_id.is_not(None),
            )
            .distinct()
        )
        return set(result.scalars().all())

    def _attributed_donations(self, outreach_campaign_id: UUID):
        """Completed donations attributed to a token of the outreach campaign."""
        donor_contact = func.coalesce(Donation.contact_id, LinkToken.contact_id)
        return (
            select(donor_contact.label("contact_id"), Donation.amount, Donation.donation_date)
            .join(LinkToken, Donation.link_token_id == LinkToken.id)
            .where(
                LinkToken.outreach_campaign_id == outreach_campaign_id,
                Donation.status == DonationStatus.COMPLETED.value,
            )
        )

    async def donations_by_contact(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
    ) -> Dict[UUID, Decimal]:
        """Total attributed donation amount per contact."""
        sub = self._attributed_donations(outreach_campaign_id).subquery()
        result = await session.execute(
            select(sub.c.contact_id, func.sum(sub.c.amount))
            .where(sub.c.contact_id.is_not(None))
            .group_by(sub.c.contact_id)
        )
        return {contact_id: amount or Decimal("0") for contact_id, amount in result.all()}

    async def donation_totals(self, session: AsyncSession, outreach_campaign_id: UUID) -> Dict[str, Any]:
        sub = self._attributed_donations(outreach_campaign_id).subquery()
        result = await session.execute(
            select(func.count(), func.coalesce(func.sum(sub.c.amount), 0)).select_from(sub)
        )
        count, amount = result.one()
        return {"donations": count or 0, "total_amount": float(amount or 0)}

    async def get_donors(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
    ) -> List[Dict[str, Any]]:
        """Distinct donor contacts with their donated total."""
        amounts = await self.donations_by_contact(session, outreach_campaign_id)
        if not amounts:
            return []
        result = await session.execute(
            select(Contact.id, Contact.name, Contact.email).where(Contact.id.in_(list(amounts)))
        )
        return [
            {"contact_id": cid, "name": name, "email": email, "donated_amount": amounts[cid]}
            for cid, name, email in result.all()
        ]


# Singleton instance
recipient_service = RecipientService()
