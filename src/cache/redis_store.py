# src/cache/redis_store.py — v2
"""Redis-based cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Shares results between several editor instances. Entries carry a native
Redis expiry matching their expires_at so stale keys disappear on their own.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError

from neuroadapt.cache.base_cache_store import BaseCacheStore
from neuroadapt.cache.models import CacheEntry

logger = logging.getLogger(__name__)

_KEY_PREFIX = "neuroadapt:cache:"
_INDEX_KEY = "neuroadapt:cache:__index__"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store for shared deployments."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis.asyncio as aioredis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._client = aioredis.Redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve cache entry by key."""
        data = await self._client.get(f"{_KEY_PREFIX}{key}")
        if data is None:
            return None
        try:
            return CacheEntry.model_validate_json(data)
        except PydanticValidationError as e:
            logger.warning("Failed to deserialize cache entry %s: %s", key, e)
            return None

    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store a cache entry with a native expiry."""
        redis_key = f"{_KEY_PREFIX}{key}"
        ttl_s = _seconds_until(entry.expires_at)
        if ttl_s <= 0:
            return
        await self._client.set(redis_key, entry.model_dump_json(), ex=ttl_s)
        # Index of keys for list_entries; expired members are pruned on listing.
        await self._client.sadd(_INDEX_KEY, key)

    async def delete(self, key: str) -> None:
        """Remove a cache entry."""
        await self._client.delete(f"{_KEY_PREFIX}{key}")
        await self._client.srem(_INDEX_KEY, key)

    async def list_entries(self) -> list[CacheEntry]:
        """List all live entries, pruning index members whose key expired."""
        entries: list[CacheEntry] = []
        for key in sorted(await self._client.smembers(_INDEX_KEY)):
            entry = await self.get(key)
            if entry is None:
                await self._client.srem(_INDEX_KEY, key)
                continue
            entries.append(entry)
        return entries

    async def close(self) -> None:
        await self._client.aclose()


def _seconds_until(when: datetime) -> int:
    remaining = (when - datetime.now(timezone.utc)).total_seconds()
    return max(0, math.ceil(remaining))
