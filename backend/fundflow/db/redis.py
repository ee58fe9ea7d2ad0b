"""
Redis access for outreach stats snapshots and first-click markers.

The client is created lazily and bound to the event loop that first uses
it. Celery tasks call ``close()`` before their loop ends so the next
``asyncio.run`` opens a fresh connection pool.
"""

from __future__ import annotations

import json
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from fundflow.core.config import settings


class RedisClient:
    """Thin async wrapper over one ``redis.asyncio`` connection pool."""

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._client: Optional[aioredis.Redis] = None

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self._url or settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
        return self._client

    async def set_if_absent(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        """``SET key value NX``. True when this call created the key."""
        return bool(await self._get_client().set(key, value, ex=ex, nx=True))

    async def get_json(self, key: str) -> Optional[dict]:
        raw = await self._get_client().get(key)
        if raw:
            return json.loads(raw)
        return None

    async def set_json(self, key: str, value: dict, ex: Optional[int] = None):
        """Store ``value`` as JSON. Dates and decimals are written with ``str``."""
        await self._get_client().set(key, json.dumps(value, default=str), ex=ex)

    async def ping(self) -> bool:
        try:
            return bool(await self._get_client().ping())
        except (RedisError, OSError):
            return False

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None


# Singleton instance
redis_client = RedisClient()
