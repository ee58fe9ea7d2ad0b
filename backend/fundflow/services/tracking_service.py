"""
Open and click tracking.

The pixel and click endpoints are public and must never fail from the
recipient's point of view, so every method here runs in its own session
and the endpoints fall back to a blank pixel / plain redirect on error.

Opens are at-least-once: every pixel load inserts a row and image proxies
re-fetching the pixel count again. Unique opens are derived at read time.

Clicks always increment the token's counter. Whether a click is the first
one for its (token, contact) pair is decided with a Redis ``SET NX``; only
the first click updates the recipient row. When Redis is unreachable the
click is treated as a first click.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from fundflow.core.config import settings
from fundflow.db.postgres import get_db
from fundflow.db.redis import redis_client
from fundflow.models import EmailEventType
from fundflow.services.email_event_service import email_event_service
from fundflow.services.link_token_service import link_token_service
from fundflow.services.recipient_service import recipient_service
from fundflow.services.stats_refresh import stats_refresh_queue
from fundflow.services.tracking_links import build_click_redirect_url

logger = logging.getLogger(__name__)

# Transparent 1x1 PNG
TRACKING_PIXEL = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def click_dedup_key(link_token_id, contact_id) -> str:
    return f"tracking:click:first:{link_token_id}:{contact_id}"


class TrackingService:
    """Record opens and clicks against link tokens."""

    async def record_open(
        self,
        link_token_id: UUID,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record an ``open`` event for a pixel load.

        Returns
        -------
        dict
            The link token that was opened.

        Raises
        ------
        NotFoundError
            If the token does not exist.
        """
        async with get_db() as session:
            token = await link_token_service.get_link_token(session, link_token_id)
            await email_event_service.record_event(
                session,
                link_token_id,
                _as_uuid(token["contact_id"]),
                EmailEventType.OPEN,
                user_agent=user_agent,
                ip_address=ip_address,
            )

        logger.info("Email open tracked: link_token=%s contact=%s ip=%s", link_token_id, token["contact_id"], ip_address)

        await self._sync_recipient(token, opened=True)
        stats_refresh_queue.publish(_as_uuid(token["outreach_campaign_id"]))
        return token

    async def record_click(
        self,
        link_token_id: UUID,
        redirect: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> str:
        """Count a click, record a ``click`` event and build the landing URL.

        Parameters
        ----------
        link_token_id : UUID
            Token from the click URL.
        redirect : str, optional
            Landing page requested by the link; defaults to the campaign page.
        user_agent, ip_address : str, optional
            Request metadata stored on the event.

        Returns
        -------
        str
            URL to redirect the visitor to.
        """
        async with get_db() as session:
            token = await link_token_service.get_link_token(session, link_token_id)
            clicks = await link_token_service.increment_click_count(session, link_token_id)
            await email_event_service.record_event(
                session,
                link_token_id,
                _as_uuid(token["contact_id"]),
                EmailEventType.CLICK,
                user_agent=user_agent,
                ip_address=ip_address,
            )

        first_click = await self._is_first_click(link_token_id, token["contact_id"])
        logger.info(
            "Link click tracked: link_token=%s contact=%s clicks=%d first=%s",
            link_token_id, token["contact_id"], clicks, first_click,
        )

        if first_click:
            await self._sync_recipient(token, clicked=True)
        stats_refresh_queue.publish(_as_uuid(token["outreach_campaign_id"]))

        return build_click_redirect_url(token, redirect)

    async def _is_first_click(self, link_token_id: UUID, contact_id: Optional[str]) -> bool:
        if not contact_id:
            return False
        try:
            return await redis_client.set_if_absent(
                click_dedup_key(link_token_id, contact_id), "1", ex=settings.click_dedup_ttl
            )
        except RedisError as e:
            logger.warning("Click dedup unavailable for %s, treating as first click: %s", link_token_id, e)
            return True

    async def _sync_recipient(self, token: Dict[str, Any], opened: bool = False, clicked: bool = False) -> None:
        """Best-effort update of the recipient engagement mirror."""
        outreach_campaign_id = _as_uuid(token["outreach_campaign_id"])
        contact_id = _as_uuid(token["contact_id"])
        if outreach_campaign_id is None or contact_id is None:
            return
        try:
            async with get_db() as session:
                await recipient_service.mark_engagement(
                    session, outreach_campaign_id, contact_id, opened=opened, clicked=clicked
                )
        except SQLAlchemyError as e:
            logger.error(
                "Failed to update recipient engagement for outreach campaign %s contact %s: %s",
                outreach_campaign_id, contact_id, e,
            )


def _as_uuid(value) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    return UUID(value)


# Singleton instance
tracking_service = TrackingService()
