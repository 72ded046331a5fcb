# src/cache/memory_store.py — v1
"""In-process cache store (default CACHE_BACKEND=memory)."""

from __future__ import annotations

from neuroadapt.cache.base_cache_store import BaseCacheStore
from neuroadapt.cache.models import CacheEntry


class MemoryCacheStore(BaseCacheStore):
    """Dict-backed store. Entries live as long as the process."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def list_entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
