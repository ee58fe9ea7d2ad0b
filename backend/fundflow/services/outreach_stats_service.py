"""
Outreach campaign statistics, snapshots and recipient reconciliation.

Totals are computed from the fact tables: email_events for sends, opens
and clicks, link_tokens for click counters, donations for revenue. The
recipients table only contributes the audience (who is in the campaign
and whether their last send failed).

Snapshots of the computed stats are cached in Redis under
``outreach:stats:{id}`` and refreshed by the stats refresh queue and the
periodic Celery job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.config import settings
from fundflow.core.errors import NotFoundError
from fundflow.db.redis import redis_client
from fundflow.models import (
    Contact,
    Donation,
    DonationStatus,
    EmailEvent,
    EmailEventType,
    LinkToken,
    OutreachCampaign,
    OutreachCampaignRecipient,
    OutreachCampaignStatus,
    RecipientStatus,
)
from fundflow.services.metrics import percentage, to_float
from fundflow.services.ownership import get_owned_outreach_campaign
from fundflow.services.recipient_service import recipient_service

logger = logging.getLogger(__name__)

REALTIME_WINDOW = timedelta(hours=24)


def stats_cache_key(outreach_campaign_id) -> str:
    return f"outreach:stats:{outreach_campaign_id}"


class OutreachStatsService:
    """Aggregate reads over one outreach campaign."""

    async def get_outreach_campaign_stats(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
    ) -> Dict[str, Any]:
        """Fresh stats for an outreach campaign the organizer owns."""
        outreach_campaign, _ = await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        stats = await self.compute_stats(session, outreach_campaign)

        logger.info(
            "Outreach campaign %s stats: sends=%d opens=%d clicks=%d donations=%d",
            outreach_campaign_id,
            stats["totals"]["sends"],
            stats["totals"]["unique_opens"],
            stats["totals"]["unique_clicks"],
            stats["totals"]["donations"],
        )
        return stats

    async def compute_stats(self, session: AsyncSession, outreach_campaign: OutreachCampaign) -> Dict[str, Any]:
        """Totals, rates and per-recipient details.

        Rates are percentages over distinct contacts that were sent to,
        rounded to 2 decimals, and 0 when nothing was sent.
        """
        oc_id = outreach_campaign.id
        token_scope = LinkToken.outreach_campaign_id == oc_id

        event_rows = await session.execute(
            select(EmailEvent.type, func.count(func.distinct(EmailEvent.contact_id)))
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .where(token_scope)
            .group_by(EmailEvent.type)
        )
        unique_by_type = {event_type: count or 0 for event_type, count in event_rows.all()}

        total_clicks = await session.scalar(
            select(func.coalesce(func.sum(LinkToken.clicks_count), 0)).where(token_scope)
        ) or 0

        status_rows = await session.execute(
            select(OutreachCampaignRecipient.status, func.count(OutreachCampaignRecipient.id))
            .where(OutreachCampaignRecipient.outreach_campaign_id == oc_id)
            .group_by(OutreachCampaignRecipient.status)
        )
        by_status = {status: count for status, count in status_rows.all()}

        donation_totals = await recipient_service.donation_totals(session, oc_id)

        sends = unique_by_type.get(EmailEventType.SENT.value, 0)
        unique_opens = unique_by_type.get(EmailEventType.OPEN.value, 0)
        unique_clicks = unique_by_type.get(EmailEventType.CLICK.value, 0)

        totals = {
            "recipients": sum(by_status.values()),
            "sends": sends,
            "failed": by_status.get(RecipientStatus.FAILED.value, 0),
            "unique_opens": unique_opens,
            "unique_clicks": unique_clicks,
            "total_clicks": int(total_clicks),
            "donations": donation_totals["donations"],
            "total_amount": donation_totals["total_amount"],
        }
        rates = {
            "open_rate": percentage(unique_opens, sends),
            "click_rate": percentage(unique_clicks, sends),
            "conversion_rate": percentage(totals["donations"], sends),
        }

        return {
            "outreach_campaign_id": str(oc_id),
            "campaign_id": str(outreach_campaign.campaign_id),
            "name": outreach_campaign.name,
            "description": outreach_campaign.description,
            "status": outreach_campaign.status,
            "created_at": outreach_campaign.created_at.isoformat() if outreach_campaign.created_at else None,
            "updated_at": outreach_campaign.updated_at.isoformat() if outreach_campaign.updated_at else None,
            "totals": totals,
            "rates": rates,
            "recipients": await self._recipient_details(session, oc_id),
        }

    async def _recipient_details(self, session: AsyncSession, outreach_campaign_id: UUID) -> List[Dict[str, Any]]:
        recipients = await session.execute(
            select(OutreachCampaignRecipient, Contact.name)
            .outerjoin(Contact, OutreachCampaignRecipient.contact_id == Contact.id)
            .where(OutreachCampaignRecipient.outreach_campaign_id == outreach_campaign_id)
            .order_by(OutreachCampaignRecipient.created_at.asc())
        )
        rows = recipients.all()
        if not rows:
            return []

        activity = await session.execute(
            select(
                EmailEvent.contact_id,
                func.count(EmailEvent.id).filter(EmailEvent.type == EmailEventType.OPEN.value),
                func.count(EmailEvent.id).filter(EmailEvent.type == EmailEventType.CLICK.value),
                func.max(EmailEvent.created_at),
            )
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .where(LinkToken.outreach_campaign_id == outreach_campaign_id, EmailEvent.contact_id.is_not(None))
            .group_by(EmailEvent.contact_id)
        )
        by_contact = {
            contact_id: (opens or 0, clicks or 0, last_at)
            for contact_id, opens, clicks, last_at in activity.all()
        }
        donated = await recipient_service.donations_by_contact(session, outreach_campaign_id)

        details = []
        for recipient, name in rows:
            opens, clicks, last_at = by_contact.get(recipient.contact_id, (0, 0, None))
            amount = donated.get(recipient.contact_id)
            details.append({
                "contact_id": str(recipient.contact_id),
                "email": recipient.email,
                "name": name or "Unknown",
                "status": recipient.status,
                "sent_at": recipient.last_send_at.isoformat() if recipient.last_send_at else None,
                "failure_reason": recipient.failure_reason,
                "has_opened": opens > 0 or clicks > 0,
                "has_clicked": clicks > 0,
                "has_donated": amount is not None,
                "donated_amount": to_float(amount),
                "total_clicks": clicks,
                "last_event_at": last_at.isoformat() if last_at else None,
            })
        return details

    async def realtime_metrics(self, session: AsyncSession, outreach_campaign_id: UUID) -> Dict[str, Any]:
        """Distinct opens, clicks and donations over the last 24 hours."""
        since = datetime.utcnow() - REALTIME_WINDOW

        events = await session.execute(
            select(EmailEvent.type, func.count(func.distinct(EmailEvent.contact_id)))
            .join(LinkToken, EmailEvent.link_token_id == LinkToken.id)
            .where(LinkToken.outreach_campaign_id == outreach_campaign_id, EmailEvent.created_at >= since)
            .group_by(EmailEvent.type)
        )
        recent = {event_type: count or 0 for event_type, count in events.all()}

        donations = await session.execute(
            select(func.count(Donation.id), func.coalesce(func.sum(Donation.amount), 0))
            .join(LinkToken, Donation.link_token_id == LinkToken.id)
            .where(
                LinkToken.outreach_campaign_id == outreach_campaign_id,
                Donation.status == DonationStatus.COMPLETED.value,
                Donation.donation_date >= since,
            )
        )
        donation_count, donation_amount = donations.one()

        return {
            "opens_last_24h": recent.get(EmailEventType.OPEN.value, 0),
            "clicks_last_24h": recent.get(EmailEventType.CLICK.value, 0),
            "donations_last_24h": donation_count or 0,
            "amount_last_24h": to_float(donation_amount),
        }

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def build_snapshot(self, session: AsyncSession, outreach_campaign_id: UUID) -> Dict[str, Any]:
        result = await session.execute(
            select(OutreachCampaign).where(OutreachCampaign.id == outreach_campaign_id)
        )
        outreach_campaign = result.scalar_one_or_none()
        if outreach_campaign is None:
            raise NotFoundError("Outreach campaign")

        snapshot = await self.compute_stats(session, outreach_campaign)
        snapshot["realtime"] = await self.realtime_metrics(session, outreach_campaign_id)
        snapshot["generated_at"] = datetime.utcnow().isoformat()
        return snapshot

    async def refresh_snapshot(self, session: AsyncSession, outreach_campaign_id: UUID) -> Dict[str, Any]:
        """Recompute and cache the snapshot of one outreach campaign."""
        snapshot = await self.build_snapshot(session, outreach_campaign_id)
        await redis_client.set_json(stats_cache_key(outreach_campaign_id), snapshot, ex=settings.stats_cache_ttl)
        logger.debug("Stats snapshot refreshed for outreach campaign %s", outreach_campaign_id)
        return snapshot

    async def get_optimized_stats(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
    ) -> Dict[str, Any]:
        """Cached snapshot, computed and stored on a miss.

        Redis being down degrades to computing the stats on every call.
        """
        await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)

        try:
            cached = await redis_client.get_json(stats_cache_key(outreach_campaign_id))
        except RedisError as e:
            logger.warning("Stats cache read failed for %s: %s", outreach_campaign_id, e)
            cached = None

        if cached:
            cached["cached"] = True
            return cached

        snapshot = await self.build_snapshot(session, outreach_campaign_id)
        try:
            await redis_client.set_json(stats_cache_key(outreach_campaign_id), snapshot, ex=settings.stats_cache_ttl)
        except RedisError as e:
            logger.warning("Stats cache write failed for %s: %s", outreach_campaign_id, e)

        snapshot["cached"] = False
        return snapshot

    async def active_outreach_campaign_ids(self, session: AsyncSession) -> List[UUID]:
        result = await session.execute(
            select(OutreachCampaign.id).where(OutreachCampaign.status == OutreachCampaignStatus.ACTIVE.value)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile_recipients(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        apply: bool = False,
    ) -> Dict[str, Any]:
        """Compare recipient engagement flags with email_events and donations.

        Parameters
        ----------
        session : AsyncSession
            Database session.
        outreach_campaign_id : UUID
            Outreach campaign to check. Ownership is checked by the caller.
        apply : bool
            Rewrite mismatching rows with the recomputed values.

        Returns
        -------
        dict
            ``checked``, ``mismatched``, ``applied`` and the mismatching rows
            with their current and expected values.
        """
        recipients = await recipient_service.list_recipients(session, outreach_campaign_id)
        clicked = await recipient_service.contacts_with_event(session, outreach_campaign_id, EmailEventType.CLICK)
        opened = await recipient_service.contacts_with_event(session, outreach_campaign_id, EmailEventType.OPEN)
        opened |= clicked
        donated = await recipient_service.donations_by_contact(session, outreach_campaign_id)

        mismatches = []
        for recipient in recipients:
            amount = donated.get(recipient.contact_id, Decimal("0"))
            expected = {
                "opened": recipient.contact_id in opened,
                "clicked": recipient.contact_id in clicked,
                "donated": recipient.contact_id in donated,
                "donated_amount": Decimal(amount).quantize(Decimal("0.01")),
            }
            current = {
                "opened": bool(recipient.opened),
                "clicked": bool(recipient.clicked),
                "donated": bool(recipient.donated),
                "donated_amount": Decimal(recipient.donated_amount or 0).quantize(Decimal("0.01")),
            }
            if expected == current:
                continue

            mismatches.append({
                "recipient_id": str(recipient.id),
                "contact_id": str(recipient.contact_id),
                "email": recipient.email,
                "current": {**current, "donated_amount": float(current["donated_amount"])},
                "expected": {**expected, "donated_amount": float(expected["donated_amount"])},
            })
            if apply:
                await session.execute(
                    update(OutreachCampaignRecipient)
                    .where(OutreachCampaignRecipient.id == recipient.id)
                    .values(**expected, updated_at=datetime.utcnow())
                )

        if mismatches:
            logger.info(
                "Reconciled outreach campaign %s: %d of %d recipients out of sync (applied=%s)",
                outreach_campaign_id, len(mismatches), len(recipients), apply,
            )

        return {
            "outreach_campaign_id": str(outreach_campaign_id),
            "checked": len(recipients),
            "mismatched": len(mismatches),
            "applied": apply,
            "mismatches": mismatches,
        }


# Singleton instance
outreach_stats_service = OutreachStatsService()
