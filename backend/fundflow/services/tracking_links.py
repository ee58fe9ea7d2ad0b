"""
Tracking URL construction.

Outgoing links point at the click endpoint with the campaign page in a
``redirect`` parameter:

    {tracking_base_url}/t/click/{link_token_id}?utm_source=..&redirect={campaign page}

The click endpoint then sends the visitor on to the campaign page with
the token's UTM, prefill and attribution parameters appended.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from fundflow.core.config import settings

SLUG_MAX_LENGTH = 80

# Order in which token attributes are appended to the landing URL
REDIRECT_PARAM_ORDER = (
    ("utm_source", "utm_source"),
    ("utm_medium", "utm_medium"),
    ("utm_campaign", "utm_campaign"),
    ("utm_content", "utm_content"),
    ("prefill_amount", "prefillAmount"),
    ("personalized_message", "message"),
)


def slugify(text: Optional[str]) -> str:
    """Lowercase, spaces to hyphens, drop anything outside [a-z0-9-]."""
    if not text:
        return ""
    slug = re.sub(r"\s+", "-", text.lower().strip())
    return re.sub(r"[^a-z0-9-]", "", slug)


def campaign_public_url(share_link: str, name: Optional[str]) -> str:
    """Public campaign page, e.g. ``/campaign/ab12cd-spring-drive``."""
    return f"{settings.frontend_url}/campaign/{share_link}-{slugify(name)[:SLUG_MAX_LENGTH]}"


def tracking_pixel_url(link_token_id: str) -> str:
    return f"{settings.tracking_base_url}/t/pixel/{link_token_id}.png"


def generate_tracking_link(
    base_url: str,
    link_token_id: str,
    utm_params: Optional[Mapping[str, Optional[str]]] = None,
) -> str:
    """Click-tracking URL for a token; ``base_url`` becomes the redirect target."""
    params = {k: v for k, v in (utm_params or {}).items() if v}
    params["redirect"] = base_url
    return f"{settings.tracking_base_url}/t/click/{link_token_id}?{urlencode(params)}"


def _format_param(value: Any) -> str:
    if isinstance(value, (Decimal, float)):
        number = Decimal(str(value)).normalize()
        return format(number, "f")
    return str(value)


def append_query_params(url: str, params: Mapping[str, Any]) -> str:
    """Append params after any query string the URL already has."""
    filtered = {k: _format_param(v) for k, v in params.items() if v not in (None, "")}
    if not filtered:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(filtered)}"


def build_click_redirect_url(token: Dict[str, Any], redirect: Optional[str]) -> str:
    """Landing URL for a click on ``token``.

    ``redirect`` wins over the default campaign page. The token id (``lt``)
    is always appended, and the contact id (``cid``) when the token has one,
    so checkout can attribute the donation.
    """
    target = redirect or f"{settings.frontend_url}/campaigns/{token['campaign_id']}"

    params: Dict[str, Any] = {}
    for attr, name in REDIRECT_PARAM_ORDER:
        params[name] = token.get(attr)
    params["lt"] = token["id"]
    params["cid"] = token.get("contact_id")

    return append_query_params(target, params)
