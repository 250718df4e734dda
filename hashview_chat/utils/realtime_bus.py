"""
Optional Redis mirror of in-process presence.

The connection registry is the authority for push decisions inside this
process. When REDIS_URL is set, presence is also written to ``presence:<id>``
keys with a TTL so other services can read it; the gateway refreshes the key
while a user stays connected.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from hashview_chat.core.config import settings


logger = logging.getLogger(__name__)


class NoopBus:

    enabled = False

    async def set_presence(self, user_id: str, ttl_seconds: int = 60) -> None:
        return

    async def clear_presence(self, user_id: str) -> None:
        return

    async def is_present(self, user_id: str) -> bool:
        return False

    async def close(self) -> None:
        return


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url, decode_responses=True)

    async def set_presence(self, user_id: str, ttl_seconds: int = 60) -> None:
        await self._redis.set(f"presence:{user_id}", "online", ex=ttl_seconds)

    async def clear_presence(self, user_id: str) -> None:
        await self._redis.delete(f"presence:{user_id}")

    async def is_present(self, user_id: str) -> bool:
        ttl = await self._redis.ttl(f"presence:{user_id}")
        return bool(ttl and ttl > 0)

    async def close(self) -> None:
        await self._redis.aclose()


def build_bus(url: Optional[str] = None):
    url = url or settings.redis_url
    if not url:
        return NoopBus()
    logger.info("Mirroring presence to Redis")
    return RedisBus(url)
