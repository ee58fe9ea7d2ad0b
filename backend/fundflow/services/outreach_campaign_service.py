"""
Outreach campaign CRUD.

Listing reads its totals from the recipients table so the campaign list
stays a single grouped query; the stats endpoints recompute from the fact
tables instead.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy import Integer, cast, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.errors import integrity_error
from fundflow.models import (
    OutreachCampaign,
    OutreachCampaignRecipient,
    OutreachCampaignStatus,
    RecipientStatus,
)
from fundflow.schemas.outreach import OutreachCampaignCreate, OutreachCampaignPatch
from fundflow.services.ownership import get_owned_campaign, get_owned_outreach_campaign

logger = logging.getLogger(__name__)

NAME_TAKEN = "An outreach campaign with this name already exists for this campaign"


class OutreachCampaignService:
    """Create, list, update and archive outreach campaigns."""

    async def create(
        self,
        session: AsyncSession,
        campaign_id: UUID,
        organizer_id: UUID,
        data: OutreachCampaignCreate,
    ) -> Dict[str, Any]:
        await get_owned_campaign(session, campaign_id, organizer_id)

        outreach_campaign = OutreachCampaign(
            campaign_id=campaign_id,
            name=data.name.strip(),
            description=data.description,
            status=data.status.value,
        )
        try:
            async with session.begin_nested():
                session.add(outreach_campaign)
                await session.flush()
        except IntegrityError as e:
            raise integrity_error(e, NAME_TAKEN) from e

        logger.info("Outreach campaign %s created for campaign %s", outreach_campaign.id, campaign_id)
        return self._outreach_campaign_to_dict(outreach_campaign)

    async def list_for_campaign(
        self,
        session: AsyncSession,
        campaign_id: UUID,
        organizer_id: UUID,
    ) -> List[Dict[str, Any]]:
        """Outreach campaigns of a campaign with recipient totals, newest first."""
        await get_owned_campaign(session, campaign_id, organizer_id)

        r = OutreachCampaignRecipient
        totals = (
            select(
                r.outreach_campaign_id.label("outreach_campaign_id"),
                func.count(r.id).label("recipients"),
                func.count(r.id).filter(r.status == RecipientStatus.SENT.value).label("sends"),
                func.count(r.id).filter(r.status == RecipientStatus.FAILED.value).label("failed"),
                func.sum(cast(r.opened, Integer)).label("unique_opens"),
                func.sum(cast(r.clicked, Integer)).label("unique_clicks"),
                func.sum(cast(r.donated, Integer)).label("donations"),
                func.sum(r.donated_amount).label("total_amount"),
            )
            .group_by(r.outreach_campaign_id)
            .subquery()
        )

        result = await session.execute(
            select(OutreachCampaign, totals)
            .outerjoin(totals, totals.c.outreach_campaign_id == OutreachCampaign.id)
            .where(OutreachCampaign.campaign_id == campaign_id)
            .order_by(OutreachCampaign.created_at.desc())
        )

        campaigns = []
        for row in result.all():
            data = self._outreach_campaign_to_dict(row[0])
            data["totals"] = {
                "recipients": row.recipients or 0,
                "sends": row.sends or 0,
                "failed": row.failed or 0,
                "unique_opens": row.unique_opens or 0,
                "unique_clicks": row.unique_clicks or 0,
                "donations": row.donations or 0,
                "total_amount": float(row.total_amount or 0),
            }
            campaigns.append(data)
        return campaigns

    async def get(self, session: AsyncSession, outreach_campaign_id: UUID, organizer_id: UUID) -> Dict[str, Any]:
        outreach_campaign, _ = await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        return self._outreach_campaign_to_dict(outreach_campaign)

    async def update(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        patch: OutreachCampaignPatch,
    ) -> Dict[str, Any]:
        """Apply only the fields present in ``patch``."""
        await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)

        values = patch.model_dump(exclude_unset=True)
        if values.get("name") is not None:
            values["name"] = values["name"].strip()
        if values.get("status") is not None:
            values["status"] = OutreachCampaignStatus(values["status"]).value

        return await self._apply(session, outreach_campaign_id, organizer_id, values)

    async def archive(self, session: AsyncSession, outreach_campaign_id: UUID, organizer_id: UUID) -> Dict[str, Any]:
        await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        data = await self._apply(
            session, outreach_campaign_id, organizer_id, {"status": OutreachCampaignStatus.ARCHIVED.value}
        )
        logger.info("Outreach campaign %s archived", outreach_campaign_id)
        return data

    async def _apply(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        values: Dict[str, Any],
    ) -> Dict[str, Any]:
        if values:
            values["updated_at"] = datetime.utcnow()
            try:
                async with session.begin_nested():
                    await session.execute(
                        update(OutreachCampaign)
                        .where(OutreachCampaign.id == outreach_campaign_id)
                        .values(**values)
                    )
            except IntegrityError as e:
                raise integrity_error(e, NAME_TAKEN) from e

        outreach_campaign, _ = await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        return self._outreach_campaign_to_dict(outreach_campaign)

    def _outreach_campaign_to_dict(self, outreach_campaign: OutreachCampaign) -> Dict[str, Any]:
        return {
            "id": str(outreach_campaign.id),
            "campaign_id": str(outreach_campaign.campaign_id),
            "name": outreach_campaign.name,
            "description": outreach_campaign.description,
            "status": outreach_campaign.status,
            "created_at": outreach_campaign.created_at.isoformat() if outreach_campaign.created_at else None,
            "updated_at": outreach_campaign.updated_at.isoformat() if outreach_campaign.updated_at else None,
        }


# Singleton instance
outreach_campaign_service = OutreachCampaignService()
