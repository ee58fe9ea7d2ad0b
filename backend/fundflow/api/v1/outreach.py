"""
Outreach API endpoints.

Link tokens, direct email sends, analytics and social share links.

Routes (under /api/v1/outreach):
    POST   /link-tokens                                   - Create a link token
    GET    /campaigns/{campaign_id}/link-tokens           - List a campaign's tokens
    DELETE /link-tokens/{link_token_id}                   - Delete a token
    GET    /link-tokens/{link_token_id}/events            - Events of a token
    GET    /link-tokens/{link_token_id}/contacts/{contact_id}/events
    GET    /campaigns/{campaign_id}/events                - Events of a campaign
    POST   /send-email                                    - Send to a contact, segment or all contacts
    GET    /analytics/organizer                           - Organizer rollup
    GET    /analytics/{campaign_id}                       - Campaign analytics
    GET    /contacts/{contact_id}/analytics               - Contact analytics
    POST   /social-media/campaigns/{campaign_id}/links    - Generate share links
    GET    /social-media/campaigns/{campaign_id}/social-stats
    POST   /public/share-links                            - Public share link (no auth)
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.config import settings
from fundflow.core.security import TokenData, require_auth
from fundflow.db.postgres import get_db_session
from fundflow.middleware.rate_limit import client_key, limiter
from fundflow.models import LinkTokenType
from fundflow.schemas.outreach import (
    LinkTokenCreate,
    LinkTokenFilters,
    PublicShareRequest,
    SendEmailRequest,
    SocialLinksRequest,
)
from fundflow.services.analytics_service import analytics_service
from fundflow.services.email_event_service import email_event_service
from fundflow.services.link_token_service import link_token_service
from fundflow.services.outreach_service import outreach_service
from fundflow.services.social_media_service import social_media_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/outreach", tags=["Outreach"])


# ============================================================================
# Link Tokens
# ============================================================================


@router.post("/link-tokens", status_code=201)
async def create_link_token(
    request: LinkTokenCreate,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a link token and return it with its tracking URL."""
    token = await outreach_service.create_link_token(session, request, user.organizer_id)
    return {"success": True, "data": token}


@router.get("/campaigns/{campaign_id}/link-tokens")
async def list_link_tokens(
    campaign_id: UUID,
    type: Optional[LinkTokenType] = Query(None),
    contact_id: Optional[UUID] = Query(None),
    segment_id: Optional[UUID] = Query(None),
    has_clicks: Optional[bool] = Query(None),
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    filters = LinkTokenFilters(type=type, contact_id=contact_id, segment_id=segment_id, has_clicks=has_clicks)
    tokens = await link_token_service.list_by_campaign(session, campaign_id, user.organizer_id, filters)
    return {"success": True, "data": tokens, "count": len(tokens)}


@router.delete("/link-tokens/{link_token_id}")
async def delete_link_token(
    link_token_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    await link_token_service.delete_link_token(session, link_token_id, user.organizer_id)
    return {"success": True, "message": "Link token deleted"}


@router.get("/link-tokens/{link_token_id}/events")
async def get_link_token_events(
    link_token_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    events = await email_event_service.events_by_link_token(session, link_token_id, user.organizer_id)
    return {"success": True, "data": events, "count": len(events)}


@router.get("/link-tokens/{link_token_id}/contacts/{contact_id}/events")
async def get_link_token_contact_events(
    link_token_id: UUID,
    contact_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Events of one contact on one token."""
    await link_token_service.get_link_token(session, link_token_id, user.organizer_id)
    events = await email_event_service.events_by_link_token_and_contact(session, link_token_id, contact_id)
    return {"success": True, "data": events, "count": len(events)}


@router.get("/campaigns/{campaign_id}/events")
async def get_campaign_events(
    campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    events = await email_event_service.events_by_campaign(session, campaign_id, user.organizer_id)
    return {"success": True, "data": events, "count": len(events)}


# ============================================================================
# Sending
# ============================================================================


@router.post("/send-email")
async def send_outreach_email(
    request: SendEmailRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Send an invite, update or thank-you to the requested target.

    Individual send failures are reported in ``results``; the request
    itself still succeeds.
    """
    result = await outreach_service.send_outreach_email(session, user.organizer_id, request)
    return {"success": True, "data": result}


# ============================================================================
# Analytics
# ============================================================================


@router.get("/analytics/organizer")
async def get_organizer_analytics(
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    analytics = await analytics_service.organizer_analytics(session, user.organizer_id)
    return {"success": True, "data": analytics}


@router.get("/analytics/{campaign_id}")
async def get_campaign_analytics(
    campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    analytics = await analytics_service.campaign_analytics(session, campaign_id, user.organizer_id)
    return {"success": True, "data": analytics}


@router.get("/contacts/{contact_id}/analytics")
async def get_contact_analytics(
    contact_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    analytics = await analytics_service.contact_analytics(session, contact_id, user.organizer_id)
    return {"success": True, "data": analytics}


# ============================================================================
# Social Sharing
# ============================================================================


@router.post("/social-media/campaigns/{campaign_id}/links")
async def generate_social_links(
    campaign_id: UUID,
    request: SocialLinksRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    links = await social_media_service.generate_social_links(
        session,
        campaign_id,
        user.organizer_id,
        platform=request.platform,
        custom_message=request.custom_message,
        utm_source=request.utm_source,
        utm_medium=request.utm_medium,
    )
    return {"success": True, "data": links}


@router.get("/social-media/campaigns/{campaign_id}/social-stats")
async def get_social_stats(
    campaign_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    stats = await social_media_service.social_stats(session, campaign_id, user.organizer_id)
    return {"success": True, "data": stats}


@router.post("/public/share-links", status_code=201)
@limiter.limit(settings.public_share_rate_limit, key_func=client_key)
async def create_public_share_link(
    request: Request,
    payload: PublicShareRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Share link for a campaign page visitor. No authentication."""
    link = await social_media_service.create_public_share(session, payload.campaign_id, payload.platform)
    return {"success": True, "data": link}
