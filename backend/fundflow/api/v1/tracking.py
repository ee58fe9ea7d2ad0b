"""
Public tracking endpoints.

Unauthenticated: the pixel is embedded in outgoing emails and the click
URL is what every outreach and share link points at. Neither endpoint
ever fails towards the visitor; recording errors are logged and the pixel
or a redirect is still returned.

Routes:
    GET /t/pixel/{link_token_id}.png  - 1x1 PNG (records open)
    GET /t/click/{link_token_id}      - 302 redirect (records click)
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse, Response

from fundflow.core.config import settings
from fundflow.middleware.rate_limit import client_ip, client_key, limiter
from fundflow.services.tracking_service import PIXEL_HEADERS, TRACKING_PIXEL, tracking_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/t", tags=["Tracking"])


@router.get("/pixel/{link_token_id}.png")
@limiter.limit(settings.tracking_rate_limit, key_func=client_key)
async def track_open(request: Request, link_token_id: str):
    """Record an email open and return a 1x1 transparent PNG.

    Embedded in emails as: <img src="{tracking_url}" width="1" height="1" />
    """
    try:
        await tracking_service.record_open(
            UUID(link_token_id),
            user_agent=request.headers.get("user-agent"),
            ip_address=client_ip(request),
        )
    except Exception as exc:
        logger.error("Error recording open for %s: %s", link_token_id, exc)

    return Response(content=TRACKING_PIXEL, media_type="image/png", headers=PIXEL_HEADERS)


@router.get("/click/{link_token_id}")
@limiter.limit(settings.tracking_rate_limit, key_func=client_key)
async def track_click(
    request: Request,
    link_token_id: str,
    redirect: Optional[str] = Query(None, description="Landing page; defaults to the campaign page"),
):
    """Record a link click and redirect to the landing page with UTM and
    attribution parameters appended."""
    try:
        url = await tracking_service.record_click(
            UUID(link_token_id),
            redirect,
            user_agent=request.headers.get("user-agent"),
            ip_address=client_ip(request),
        )
    except Exception as exc:
        logger.error("Error recording click for %s: %s", link_token_id, exc)
        url = redirect or settings.frontend_url

    return RedirectResponse(url=url, status_code=302)
