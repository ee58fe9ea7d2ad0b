"""
Social share links.

Each generated link is a ``share`` link token tagged with
``utm_campaign=social_{platform}``; the platform share URL wraps the
token's click-tracking URL, so clicks coming back from a platform are
counted on that token.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.models import Campaign, LinkToken, LinkTokenType
from fundflow.schemas.outreach import LinkTokenCreate, SocialPlatform, UTMParams
from fundflow.services.link_token_service import link_token_service
from fundflow.services.metrics import percentage
from fundflow.services.ownership import find_campaign_by_id, get_owned_campaign
from fundflow.services.tracking_links import campaign_public_url, generate_tracking_link

logger = logging.getLogger(__name__)

TOP_PLATFORMS = 3
DEFAULT_UTM_SOURCE = "social_media"
DEFAULT_UTM_MEDIUM = "social"


def _share_message(campaign_name: str, url: str, custom_message: Optional[str]) -> str:
    if custom_message:
        return f"{custom_message}\n\n{campaign_name}\n{url}"
    return f"Check out this campaign: {campaign_name}\n{url}"


def platform_share_url(
    platform: SocialPlatform,
    url: str,
    campaign_name: str,
    custom_message: Optional[str] = None,
) -> str:
    """URL that opens the platform's share dialog for ``url``."""
    encoded_url = quote(url, safe="")
    if platform == SocialPlatform.WHATSAPP:
        return f"https://wa.me/?text={quote(_share_message(campaign_name, url, custom_message), safe='')}"
    if platform == SocialPlatform.FACEBOOK:
        return f"https://www.facebook.com/sharer/sharer.php?u={encoded_url}"
    if platform == SocialPlatform.TWITTER:
        text = f"{custom_message} {campaign_name}" if custom_message else f"Check out this campaign: {campaign_name}"
        return f"https://twitter.com/intent/tweet?text={quote(text, safe='')}&url={encoded_url}"
    if platform == SocialPlatform.LINKEDIN:
        return f"https://www.linkedin.com/sharing/share-offsite/?url={encoded_url}"
    text = _share_message(campaign_name, url, custom_message)
    return f"https://t.me/share/url?url={encoded_url}&text={quote(text, safe='')}"


def social_utm(platform: SocialPlatform, source: str = DEFAULT_UTM_SOURCE, medium: str = DEFAULT_UTM_MEDIUM) -> UTMParams:
    return UTMParams(
        utm_source=source,
        utm_medium=medium,
        utm_campaign=f"social_{platform.value}",
        utm_content=f"{platform.value}_share",
    )


class SocialMediaService:
    """Generate share links and report how they perform."""

    async def generate_social_links(
        self,
        session: AsyncSession,
        campaign_id: UUID,
        organizer_id: UUID,
        platform: Optional[SocialPlatform] = None,
        custom_message: Optional[str] = None,
        utm_source: str = DEFAULT_UTM_SOURCE,
        utm_medium: str = DEFAULT_UTM_MEDIUM,
    ) -> Dict[str, Any]:
        """Create one share token per platform (or only ``platform``)."""
        campaign = await get_owned_campaign(session, campaign_id, organizer_id)
        base_url = campaign_public_url(campaign.share_link, campaign.name)
        platforms = [platform] if platform else list(SocialPlatform)

        links = {}
        for p in platforms:
            utm = social_utm(p, utm_source, utm_medium)
            token = await link_token_service.create_link_token(
                session,
                LinkTokenCreate(campaign_id=campaign_id, type=LinkTokenType.SHARE, utm=utm),
                organizer_id,
            )
            links[p.value] = self._link(p, campaign, base_url, token["id"], utm, custom_message)

        logger.info("Generated %d social links for campaign %s", len(links), campaign_id)
        return {
            "campaign_id": str(campaign_id),
            "campaign_name": campaign.name,
            "base_url": base_url,
            "social_links": links,
            "generated_at": datetime.utcnow().isoformat(),
        }

    async def create_public_share(
        self,
        session: AsyncSession,
        campaign_id: UUID,
        platform: SocialPlatform,
    ) -> Dict[str, Any]:
        """Share link for anyone viewing the campaign; no organizer involved."""
        utm = social_utm(platform)
        token = await link_token_service.create_public_share_token(
            session, LinkTokenCreate(campaign_id=campaign_id, type=LinkTokenType.SHARE, utm=utm)
        )
        campaign = await find_campaign_by_id(session, campaign_id)
        base_url = campaign_public_url(campaign.share_link, campaign.name)
        return self._link(platform, campaign, base_url, token["id"], utm)

    async def social_stats(self, session: AsyncSession, campaign_id: UUID, organizer_id: UUID) -> Dict[str, Any]:
        """Share tokens grouped by platform, with the top platforms by click rate."""
        await get_owned_campaign(session, campaign_id, organizer_id)
        result = await session.execute(
            select(LinkToken.utm_campaign, LinkToken.clicks_count).where(
                LinkToken.campaign_id == campaign_id,
                LinkToken.type == LinkTokenType.SHARE.value,
            )
        )
        return self.summarize(campaign_id, result.all())

    def summarize(self, campaign_id, rows) -> Dict[str, Any]:
        """Aggregate ``(utm_campaign, clicks_count)`` rows of share tokens."""
        by_platform: Dict[str, Dict[str, Any]] = {}
        for utm_campaign, clicks in rows:
            name = (utm_campaign or "").replace("social_", "", 1) or "unknown"
            entry = by_platform.setdefault(name, {"shares": 0, "clicks": 0, "click_rate": 0.0})
            entry["shares"] += 1
            entry["clicks"] += clicks or 0

        for entry in by_platform.values():
            entry["click_rate"] = percentage(entry["clicks"], entry["shares"])

        top: List[Dict[str, Any]] = [
            {"platform": name, "click_rate": entry["click_rate"], "clicks": entry["clicks"]}
            for name, entry in sorted(by_platform.items(), key=lambda item: item[1]["click_rate"], reverse=True)
        ][:TOP_PLATFORMS]

        return {
            "campaign_id": str(campaign_id),
            "total_social_shares": sum(e["shares"] for e in by_platform.values()),
            "total_social_clicks": sum(e["clicks"] for e in by_platform.values()),
            "by_platform": by_platform,
            "top_performing_platforms": top,
        }

    def _link(
        self,
        platform: SocialPlatform,
        campaign: Campaign,
        base_url: str,
        link_token_id: str,
        utm: UTMParams,
        custom_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        tracking_url = generate_tracking_link(base_url, link_token_id, utm.as_query())
        return {
            "platform": platform.value,
            "type": LinkTokenType.SHARE.value,
            "link_token_id": link_token_id,
            "url": platform_share_url(platform, tracking_url, campaign.name, custom_message),
            "tracking_url": tracking_url,
        }


# Singleton instance
social_media_service = SocialMediaService()
