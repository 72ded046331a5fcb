# src/cache/base_cache_store.py — v2
"""Abstract cache store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from neuroadapt.cache.models import CacheEntry


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends.

    Stores are plain key/value holders; expiry policy lives in ResultCache.
    """

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve cache entry by fingerprint key."""

    @abstractmethod
    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store cache entry, replacing any previous one."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove cache entry. Missing keys are ignored."""

    @abstractmethod
    async def list_entries(self) -> list[CacheEntry]:
        """List all cached entries."""

    async def clear(self) -> None:
        """Remove every entry."""
        for entry in await self.list_entries():
            await self.delete(entry.fingerprint.key)

    async def close(self) -> None:
        """Release backend resources."""
