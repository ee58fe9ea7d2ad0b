"""
Outreach campaign API endpoints.

An outreach campaign is a named batch of sends for one fundraising
campaign, with its own recipient list, sends and stats.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.security import TokenData, require_auth
from fundflow.db.postgres import get_db_session
from fundflow.models import EmailEventType
from fundflow.schemas.outreach import (
    AddRecipientsRequest,
    OutreachCampaignCreate,
    OutreachCampaignPatch,
    SendInvitationsRequest,
    SendThanksRequest,
    SendUpdatesRequest,
)
from fundflow.services.email_event_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, email_event_service
from fundflow.services.link_token_service import link_token_service
from fundflow.services.outreach_campaign_service import outreach_campaign_service
from fundflow.services.outreach_service import outreach_service
from fundflow.services.outreach_stats_service import outreach_stats_service
from fundflow.services.ownership import get_owned_outreach_campaign

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/outreach", tags=["Outreach Campaigns"])


# ============================================================================
# CRUD
# ============================================================================


@router.post("/campaigns/{campaign_id}/outreach-campaigns", status_code=201)
async def create_outreach_campaign(
    campaign_id: UUID,
    request: OutreachCampaignCreate,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    outreach_campaign = await outreach_campaign_service.create(session, campaign_id, user.organizer_id, request)
    return {"success": True, "data": outreach_campaign}


@router.get("/campaigns/{campaign_id}/outreach-campaigns")
async def list_outreach_campaigns(
    campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    campaigns = await outreach_campaign_service.list_for_campaign(session, campaign_id, user.organizer_id)
    return {"success": True, "data": campaigns, "count": len(campaigns)}


@router.get("/outreach-campaigns/{outreach_campaign_id}")
async def get_outreach_campaign(
    outreach_campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    outreach_campaign = await outreach_campaign_service.get(session, outreach_campaign_id, user.organizer_id)
    return {"success": True, "data": outreach_campaign}


@router.patch("/outreach-campaigns/{outreach_campaign_id}")
async def update_outreach_campaign(
    outreach_campaign_id: UUID,
    request: OutreachCampaignPatch,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Partial update: only the fields sent are changed."""
    outreach_campaign = await outreach_campaign_service.update(
        session, outreach_campaign_id, user.organizer_id, request
    )
    return {"success": True, "data": outreach_campaign}


@router.post("/outreach-campaigns/{outreach_campaign_id}/archive")
async def archive_outreach_campaign(
    outreach_campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    outreach_campaign = await outreach_campaign_service.archive(session, outreach_campaign_id, user.organizer_id)
    return {"success": True, "data": outreach_campaign}


# ============================================================================
# Recipients & Sending
# ============================================================================


@router.post("/outreach-campaigns/{outreach_campaign_id}/recipients")
async def add_recipients(
    outreach_campaign_id: UUID,
    request: AddRecipientsRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Add contacts from the given segments, or from every segment with ``all``."""
    segment_ids = None if request.all else request.segment_ids
    result = await outreach_service.add_recipients(session, outreach_campaign_id, user.organizer_id, segment_ids)
    return {"success": True, "data": result}


@router.post("/outreach-campaigns/{outreach_campaign_id}/send-invitations")
async def send_invitations(
    outreach_campaign_id: UUID,
    request: SendInvitationsRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    result = await outreach_service.send_invitations(session, outreach_campaign_id, user.organizer_id, request)
    return {"success": True, "data": result}


@router.post("/outreach-campaigns/{outreach_campaign_id}/resend-failed")
async def resend_failed(
    outreach_campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    result = await outreach_service.resend_failed(session, outreach_campaign_id, user.organizer_id)
    return {"success": True, "data": result}


@router.post("/outreach-campaigns/{outreach_campaign_id}/send-updates")
async def send_updates(
    outreach_campaign_id: UUID,
    request: SendUpdatesRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    result = await outreach_service.send_updates(session, outreach_campaign_id, user.organizer_id, request)
    return {"success": True, "data": result}


@router.post("/outreach-campaigns/{outreach_campaign_id}/send-thanks")
async def send_thanks(
    outreach_campaign_id: UUID,
    request: SendThanksRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    result = await outreach_service.send_thanks(session, outreach_campaign_id, user.organizer_id, request)
    return {"success": True, "data": result}


# ============================================================================
# Events & Stats
# ============================================================================


@router.get("/outreach-campaigns/{outreach_campaign_id}/link-tokens")
async def list_outreach_link_tokens(
    outreach_campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    await get_owned_outreach_campaign(session, outreach_campaign_id, user.organizer_id)
    tokens = await link_token_service.list_by_outreach_campaign(session, outreach_campaign_id)
    return {"success": True, "data": tokens, "count": len(tokens)}


@router.get("/outreach-campaigns/{outreach_campaign_id}/events")
async def list_events(
    outreach_campaign_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    type: Optional[EmailEventType] = Query(None),
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    events = await email_event_service.events_by_outreach_campaign(
        session, outreach_campaign_id, user.organizer_id, page=page, limit=limit, event_type=type
    )
    return {"success": True, "data": events}


@router.get("/outreach-campaigns/{outreach_campaign_id}/stats")
async def get_stats(
    outreach_campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    stats = await outreach_stats_service.get_outreach_campaign_stats(session, outreach_campaign_id, user.organizer_id)
    return {"success": True, "data": stats}


@router.get("/outreach-campaigns/{outreach_campaign_id}/stats/optimized")
async def get_optimized_stats(
    outreach_campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Cached stats snapshot with last-24h activity."""
    stats = await outreach_stats_service.get_optimized_stats(session, outreach_campaign_id, user.organizer_id)
    return {"success": True, "data": stats}


@router.post("/outreach-campaigns/{outreach_campaign_id}/reconcile")
async def reconcile_recipients(
    outreach_campaign_id: UUID,
    apply: bool = Query(False, description="Rewrite mismatching recipient rows"),
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    await get_owned_outreach_campaign(session, outreach_campaign_id, user.organizer_id)
    result = await outreach_stats_service.reconcile_recipients(session, outreach_campaign_id, apply=apply)
    return {"success": True, "data": result}
