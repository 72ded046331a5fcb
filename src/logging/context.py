# src/logging/context.py — v2
"""Contextual logging support — attach request_id, fingerprint, provider to log records.

Each orchestration runs in its own asyncio task, which copies the context at
creation, so values set there never leak into other requests.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_fingerprint: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "fingerprint", default=None
)
_provider: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "provider", default=None
)
_attempt: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "attempt", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    request_id: str | None = None
    fingerprint: str | None = None
    provider: str | None = None
    attempt: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        request_id=_request_id.get(),
        fingerprint=_fingerprint.get(),
        provider=_provider.get(),
        attempt=_attempt.get(),
    )


def set_request_context(fingerprint: str, request_id: str | None = None) -> None:
    """Set request-level context (called once per orchestration)."""
    _fingerprint.set(fingerprint)
    _request_id.set(request_id)


def set_attempt_context(provider: str, attempt: int | None = None) -> None:
    """Set attempt-level context (called per provider attempt)."""
    _provider.set(provider)
    _attempt.set(attempt)


def clear_context() -> None:
    """Reset all context variables."""
    _request_id.set(None)
    _fingerprint.set(None)
    _provider.set(None)
    _attempt.set(None)
