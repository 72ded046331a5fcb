# src/llm/retry.py — v3
"""Backoff policy and message-based error classification.

Delays grow exponentially from base_delay_s by multiplier up to cap_s.
Jitter only ever lengthens a delay, and by less than the gap to the next
step, so consecutive delays are non-decreasing.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with bounded jitter."""

    base_delay_s: float = 0.5
    multiplier: float = 2.0
    cap_s: float = 8.0
    jitter: float = 0.25
    rand: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.base_delay_s < 0:
            raise ValueError("base_delay_s must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.cap_s < self.base_delay_s:
            raise ValueError("cap_s must be >= base_delay_s")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")

    @property
    def effective_jitter(self) -> float:
        """Jitter fraction clamped so a jittered delay never exceeds the next step."""
        return min(self.jitter, self.multiplier - 1.0)

    def delay_for(self, retry_index: int) -> float:
        """Delay in seconds before retry number retry_index (0-based)."""
        raw = self.base_delay_s * (self.multiplier ** retry_index)
        if raw >= self.cap_s:
            return self.cap_s
        delay = raw * (1.0 + self.effective_jitter * self.rand())
        return min(delay, self.cap_s)


_AUTH = re.compile(
    r"\b(401|403)\b|\bunauthori[sz]ed\b|\bforbidden\b|\bapi[ _-]?key\b|\bauthenticat"
)
_RATE_LIMIT = re.compile(r"\b429\b|\brate[ _-]?limit|\btoo many requests\b|\bquota\b")
_TIMEOUT = re.compile(r"\btimed? ?out\b")
_SERVER = re.compile(r"\b50[0234]\b|\bserver error\b|\boverloaded\b|\bunavailable\b")
_NETWORK = re.compile(r"\bconnection\b|\bnetwork\b|\bunreachable\b")
_MALFORMED = re.compile(r"\b(400|404|422)\b|\binvalid\b|\bbad request\b")


def classify_error(error: Exception) -> str:
    """Classify an exception into a failure class from its name and message.

    Patterns match whole words. Auth markers are checked first, so a fatal
    auth error is never retried because its text also looks transient.
    """
    msg = str(error).lower()
    name = type(error).__name__.lower()

    if _AUTH.search(msg) or "auth" in name or "permission" in name:
        return "auth"
    if _RATE_LIMIT.search(msg) or "ratelimit" in name:
        return "rate_limited"
    if "timeout" in name or _TIMEOUT.search(msg):
        return "timeout"
    if _SERVER.search(msg):
        return "server_error"
    if "connect" in name or _NETWORK.search(msg):
        return "network_error"
    if _MALFORMED.search(msg) or "badrequest" in name:
        return "malformed_request"
    return "network_error"
