"""
Rate limiting middleware using slowapi.

Authenticated routes are keyed by organizer. The public tracking and
share endpoints are keyed by client address, honouring the first
``X-Forwarded-For`` hop set by the proxy in front of the tracking host.
"""

from typing import Optional

from fastapi import HTTPException, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from fundflow.core.config import settings


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def client_key(request: Request) -> str:
    """Key for unauthenticated endpoints."""
    return client_ip(request) or "anonymous"


def _organizer_key(request: Request) -> str:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        try:
            from fundflow.core.security import decode_token
            return f"organizer:{decode_token(auth[7:]).user_id}"
        except HTTPException:
            pass
    return client_key(request)


limiter = Limiter(
    key_func=_organizer_key,
    default_limits=[settings.default_rate_limit],
    storage_uri=settings.rate_limit_storage_uri,
)


def setup_rate_limiting(app):
    """Configure rate limiting for the FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
