# src/cache/models.py — v2
"""Cache domain models: Fingerprint, CacheEntry, CacheStats."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from neuroadapt.core.models import AdaptedContent


class Fingerprint(BaseModel):
    """Stable cache key of an AdaptationRequest (SHA-256, 256 bits)."""

    model_config = ConfigDict(frozen=True)

    digest: str
    version: str = "1"

    @property
    def key(self) -> str:
        """Store key, namespaced by fingerprint version."""
        return f"v{self.version}-{self.digest}"

    @property
    def short(self) -> str:
        """First 12 hex chars, for logs."""
        return self.digest[:12]

    def __str__(self) -> str:
        return self.key


class CacheEntry(BaseModel):
    """Validated result stored under a fingerprint."""

    fingerprint: Fingerprint
    content: AdaptedContent
    created_at: datetime
    expires_at: datetime
    provider: str = ""

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheStats(BaseModel):
    """Hit/miss counters of a ResultCache."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    puts: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0
