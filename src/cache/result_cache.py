# src/cache/result_cache.py — v2
"""Result Cache: validated AdaptedContent keyed by fingerprint, with TTL.

Only successful adaptations are ever stored. Expired entries are treated as
misses and deleted when read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from neuroadapt.cache.base_cache_store import BaseCacheStore
from neuroadapt.cache.memory_store import MemoryCacheStore
from neuroadapt.cache.models import CacheEntry, CacheStats, Fingerprint
from neuroadapt.core.models import AdaptedContent

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultCache:
    """TTL cache over a BaseCacheStore backend.

    Args:
        store: Storage backend. Defaults to an in-memory store.
        default_ttl_s: TTL applied when put() is called without one.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        store: BaseCacheStore | None = None,
        default_ttl_s: float = 300.0,
        clock: Clock | None = None,
    ) -> None:
        if default_ttl_s <= 0:
            raise ValueError("default_ttl_s must be > 0")
        self._store = store if store is not None else MemoryCacheStore()
        self._default_ttl_s = default_ttl_s
        self._clock = clock or _utcnow
        self._stats = CacheStats()

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    async def get(self, fingerprint: Fingerprint) -> AdaptedContent | None:
        """Return cached content, or None on miss or expiry."""
        entry = await self._store.get(fingerprint.key)
        if entry is None:
            self._stats.misses += 1
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry %s expired at %s", fingerprint.short, entry.expires_at)
            await self._store.delete(fingerprint.key)
            self._stats.expired += 1
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return entry.content

    async def put(
        self,
        fingerprint: Fingerprint,
        content: AdaptedContent,
        ttl_s: float | None = None,
        provider: str = "",
    ) -> CacheEntry:
        """Store validated content under a fingerprint."""
        ttl = self._default_ttl_s if ttl_s is None else ttl_s
        if ttl <= 0:
            raise ValueError("ttl_s must be > 0")
        now = self._clock()
        entry = CacheEntry(
            fingerprint=fingerprint,
            content=content,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
            provider=provider,
        )
        await self._store.put(fingerprint.key, entry)
        self._stats.puts += 1
        logger.debug("Cached %s for %.0fs", fingerprint.short, ttl)
        return entry

    async def invalidate(self, fingerprint: Fingerprint) -> None:
        """Drop the entry for one fingerprint."""
        await self._store.delete(fingerprint.key)
        self._stats.invalidations += 1

    async def invalidate_where(self, predicate: Callable[[CacheEntry], bool]) -> int:
        """Drop every entry matching predicate. Returns how many were removed."""
        removed = 0
        for entry in await self._store.list_entries():
            if predicate(entry):
                await self._store.delete(entry.fingerprint.key)
                removed += 1
        self._stats.invalidations += removed
        if removed:
            logger.info("Invalidated %d cache entries", removed)
        return removed

    async def purge_expired(self) -> int:
        """Delete all expired entries. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for entry in await self._store.list_entries():
            if entry.is_expired(now):
                await self._store.delete(entry.fingerprint.key)
                removed += 1
        self._stats.expired += removed
        return removed

    def stats(self) -> CacheStats:
        """Snapshot of hit/miss counters."""
        return self._stats.model_copy()

    async def close(self) -> None:
        await self._store.close()
