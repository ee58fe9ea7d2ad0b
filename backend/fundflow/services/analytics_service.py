"""
Outreach analytics for campaigns, organizers and contacts.

Donation figures always come from the donations table: a donation counts
for outreach when it is completed and carries a link token or contact
attribution. The recipients cache is never read here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.errors import AppError
from fundflow.db.postgres import get_db
from fundflow.models import (
    Campaign,
    Contact,
    Donation,
    DonationStatus,
    EmailEvent,
    EmailEventType,
    LinkToken,
    OutreachCampaign,
    Segment,
)
from fundflow.services.email_event_service import email_event_service
from fundflow.services.metrics import format_percentage, percentage, to_float
from fundflow.services.ownership import get_owned_campaign, get_owned_contact
from fundflow.services.social_media_service import social_media_service

logger = logging.getLogger(__name__)

TOP_SEGMENTS = 5
TOP_CONTACTS = 5
TOP_CAMPAIGNS = 10

EVENT_TYPES = [t.value for t in EmailEventType]


def _empty_counts() -> Dict[str, int]:
    return {"sends": 0, "opens": 0, "clicks": 0}


class AnalyticsService:
    """Read-side rollups across tokens, events and donations."""

    async def campaign_analytics(
        self,
        session: AsyncSession,
        campaign_id: UUID,
        organizer_id: UUID,
    ) -> Dict[str, Any]:
        """Outreach analytics for one campaign.

        Parameters
        ----------
        session : AsyncSession
            Database session.
        campaign_id : UUID
            Campaign to report on; must be owned by ``organizer_id``.
        organizer_id : UUID
            Caller.

        Returns
        -------
        dict
            Token and outreach-campaign counts, event totals and rates,
            attributed donations, social share stats, and breakdowns by
            link type, contact and segment.
        """
        await get_owned_campaign(session, campaign_id, organizer_id)

        event_stats = await email_event_service.stats_by_campaign(session, campaign_id)
        total_link_tokens = await session.scalar(
            select(func.count(LinkToken.id)).where(LinkToken.campaign_id == campaign_id)
        ) or 0
        outreach_campaigns = await session.scalar(
            select(func.count(OutreachCampaign.id)).where(OutreachCampaign.campaign_id == campaign_id)
        ) or 0

        attribution = await self._donation_attribution(session, campaign_id)
        social = await social_media_service.social_stats(session, campaign_id, organizer_id)

        unique_clicks = event_stats["click"]["unique_contacts"]
        analytics = {
            "campaign_id": str(campaign_id),
            "total_link_tokens": total_link_tokens,
            "outreach_campaigns": outreach_campaigns,
            "total_sends": event_stats["sent"]["count"],
            "total_opens": event_stats["open"]["count"],
            "total_clicks": event_stats["click"]["count"],
            "total_donations": attribution["total_donations"],
            "total_donation_amount": attribution["total_amount"],
            "total_social_shares": social["total_social_shares"],
            "total_social_clicks": social["total_social_clicks"],
            "open_rate": event_stats["open_rate"],
            "click_rate": event_stats["click_rate"],
            "conversion_rate": percentage(attribution["total_donations"], unique_clicks),
            "social_engagement_rate": percentage(social["total_social_clicks"], social["total_social_shares"]),
            "email_events": event_stats,
            "donation_attribution": attribution,
            "social_media_stats": social,
        }
        analytics.update(await self._breakdowns(session, campaign_id))

        logger.info(
            "Outreach analytics for campaign %s: %d tokens, %d sends",
            campaign_id, total_link_tokens, analytics["total_sends"],
        )
        return analytics

    async def _breakdowns(self, session: AsyncSession, campaign_id: UUID) -> Dict[str, Any]:
        tokens = await session.execute(
            select(LinkToken.type, func.count(LinkToken.id), func.coalesce(func.sum(LinkToken.clicks_count), 0))
            .where(LinkToken.campaign_id == campaign_id)
            .group_by(LinkToken.type)
        )
        by_type: Dict[str, Dict[str, int]] = {}
        for link_type, count, clicks in tokens.all():
            by_type[link_type] = {"count": count, "clicks": int(clicks), "opens": 0, "sends": 0}

        events = await session.execute(
            select(
                LinkToken.type,
                EmailEvent.contact_id,
                Contact.name,
                Contact.email,
                Segment.id,
                Segment.name,
                EmailEvent.type,
                func.count(EmailEvent.id),
            )
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .outerjoin(Contact, EmailEvent.contact_id == Contact.id)
            .outerjoin(Segment, Contact.segment_id == Segment.id)
            .where(LinkToken.campaign_id == campaign_id)
            .group_by(
                LinkToken.type, EmailEvent.contact_id, Contact.name, Contact.email,
                Segment.id, Segment.name, EmailEvent.type,
            )
        )

        field = {"sent": "sends", "open": "opens", "click": "clicks"}
        by_contact: Dict[str, Dict[str, Any]] = {}
        by_segment: Dict[str, Dict[str, Any]] = {}
        for link_type, contact_id, name, email, segment_id, segment_name, event_type, count in events.all():
            key = field[event_type]
            # Token clicks are already counted from clicks_count
            if key != "clicks":
                by_type.setdefault(link_type, {"count": 0, "clicks": 0, "opens": 0, "sends": 0})[key] += count
            if contact_id is not None:
                entry = by_contact.setdefault(
                    str(contact_id),
                    {"contact_name": name, "contact_email": email, **_empty_counts()},
                )
                entry[key] += count
            if segment_id is not None:
                entry = by_segment.setdefault(
                    str(segment_id),
                    {"segment_name": segment_name, **_empty_counts()},
                )
                entry[key] += count

        return {"by_type": by_type, "by_contact": by_contact, "by_segment": by_segment}

    async def _donation_attribution(self, session: AsyncSession, campaign_id: UUID) -> Dict[str, Any]:
        result = await session.execute(
            select(Donation)
            .where(
                Donation.campaign_id == campaign_id,
                Donation.status == DonationStatus.COMPLETED.value,
                or_(Donation.link_token_id.is_not(None), Donation.contact_id.is_not(None)),
            )
            .order_by(Donation.donation_date.desc())
        )
        donations = list(result.scalars().all())
        return {
            "total_donations": len(donations),
            "total_amount": round(sum(to_float(d.amount) for d in donations), 2),
            "donations": [self._donation_to_dict(d) for d in donations],
        }

    # ------------------------------------------------------------------
    # Organizer
    # ------------------------------------------------------------------

    async def organizer_analytics(self, session: AsyncSession, organizer_id: UUID) -> Dict[str, Any]:
        """Roll up outreach across every campaign of an organizer.

        Campaigns are analysed concurrently, each in its own session. A
        campaign whose analytics fail contributes a zero row.
        """
        result = await session.execute(
            select(Campaign.id, Campaign.name).where(Campaign.organizer_id == organizer_id)
        )
        campaigns = result.all()

        rows = await asyncio.gather(
            *(self._campaign_row(campaign_id, name, organizer_id) for campaign_id, name in campaigns)
        )
        return self.aggregate_organizer(list(rows))

    async def _campaign_row(self, campaign_id: UUID, name: str, organizer_id: UUID) -> Dict[str, Any]:
        row = {
            "campaign_id": str(campaign_id),
            "campaign_name": name,
            "emails_sent": 0,
            "opens": 0,
            "clicks": 0,
            "donations": 0,
            "revenue": 0.0,
            "outreach_campaigns": 0,
            "by_segment": {},
            "by_contact": {},
        }
        try:
            async with get_db() as session:
                analytics = await self.campaign_analytics(session, campaign_id, organizer_id)
        except (AppError, SQLAlchemyError) as e:
            logger.warning("Analytics failed for campaign %s: %s", campaign_id, e)
            return row

        row.update(
            emails_sent=analytics["total_sends"],
            opens=analytics["total_opens"],
            clicks=analytics["total_clicks"],
            donations=analytics["total_donations"],
            revenue=analytics["total_donation_amount"],
            outreach_campaigns=analytics["outreach_campaigns"],
            by_segment=analytics["by_segment"],
            by_contact=analytics["by_contact"],
        )
        return row

    def aggregate_organizer(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Combine per-campaign rows into the organizer summary."""
        totals = {"emails_sent": 0, "opens": 0, "clicks": 0, "donations": 0, "revenue": 0.0, "outreach_campaigns": 0}
        segments: Dict[str, Dict[str, Any]] = {}
        contacts: Dict[str, Dict[str, Any]] = {}

        for row in rows:
            for key in totals:
                totals[key] += row.get(key) or 0
            for segment_id, data in (row.get("by_segment") or {}).items():
                entry = segments.setdefault(
                    segment_id,
                    {"segment_id": segment_id, "name": data.get("segment_name") or "Segment", "clicks": 0, "opens": 0},
                )
                entry["clicks"] += data.get("clicks", 0)
                entry["opens"] += data.get("opens", 0)
            for contact_id, data in (row.get("by_contact") or {}).items():
                entry = contacts.setdefault(
                    contact_id,
                    {
                        "contact_id": contact_id,
                        "name": data.get("contact_name") or data.get("contact_email") or "Contact",
                        "email": data.get("contact_email"),
                        "clicks": 0,
                        "opens": 0,
                    },
                )
                entry["clicks"] += data.get("clicks", 0)
                entry["opens"] += data.get("opens", 0)

        def engagement(item: Dict[str, Any]) -> int:
            return item["clicks"] + item["opens"]

        breakdown = [
            {k: v for k, v in row.items() if k not in ("by_segment", "by_contact")}
            for row in rows
            if row.get("emails_sent")
        ]
        breakdown.sort(key=lambda r: r["emails_sent"], reverse=True)

        return {
            **totals,
            "revenue": round(totals["revenue"], 2),
            "open_rate": format_percentage(totals["opens"], totals["emails_sent"]),
            "click_rate": format_percentage(totals["clicks"], totals["emails_sent"]),
            "top_segments": sorted(segments.values(), key=engagement, reverse=True)[:TOP_SEGMENTS],
            "top_contacts": sorted(contacts.values(), key=engagement, reverse=True)[:TOP_CONTACTS],
            "campaign_breakdown": breakdown[:TOP_CAMPAIGNS],
        }

    # ------------------------------------------------------------------
    # Contact
    # ------------------------------------------------------------------

    async def contact_analytics(self, session: AsyncSession, contact_id: UUID, organizer_id: UUID) -> Dict[str, Any]:
        """Donations and email engagement of one contact."""
        contact = await get_owned_contact(session, contact_id, organizer_id)

        result = await session.execute(
            select(Donation)
            .join(Campaign, Donation.campaign_id == Campaign.id)
            .where(
                Donation.contact_id == contact_id,
                Donation.status == DonationStatus.COMPLETED.value,
                Campaign.organizer_id == organizer_id,
            )
            .order_by(Donation.donation_date.desc())
        )
        donations = list(result.scalars().all())
        total = sum(to_float(d.amount) for d in donations)

        events = await session.execute(
            select(EmailEvent.type, func.count(EmailEvent.id))
            .where(EmailEvent.contact_id == contact_id)
            .group_by(EmailEvent.type)
        )
        event_counts = {event_type: 0 for event_type in EVENT_TYPES}
        event_counts.update({event_type: count for event_type, count in events.all()})

        last: Optional[Donation] = donations[0] if donations else None
        return {
            "contact_id": str(contact.id),
            "contact_name": contact.name,
            "contact_email": contact.email,
            "total_donations": len(donations),
            "total_donation_amount": round(total, 2),
            "average_donation_amount": round(total / len(donations), 2) if donations else 0.0,
            "last_donation_date": last.donation_date.isoformat() if last and last.donation_date else None,
            "email_events": event_counts,
            "unique_opens": await email_event_service.unique_opens_by_contact(session, contact_id, organizer_id),
            "donations": [self._donation_to_dict(d) for d in donations],
        }

    def _donation_to_dict(self, donation: Donation) -> Dict[str, Any]:
        return {
            "id": str(donation.id),
            "campaign_id": str(donation.campaign_id),
            "amount": to_float(donation.amount),
            "status": donation.status,
            "is_anonymous": bool(donation.is_anonymous),
            "donation_date": donation.donation_date.isoformat() if donation.donation_date else None,
            "link_token_id": str(donation.link_token_id) if donation.link_token_id else None,
            "contact_id": str(donation.contact_id) if donation.contact_id else None,
        }


# Singleton instance
analytics_service = AnalyticsService()
