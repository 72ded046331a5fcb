# src/tracking/models.py — v2
"""Tracking domain models: AttemptRecord, ProviderUsage."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class AttemptRecord(BaseModel):
    """One provider attempt, as logged for usage accounting."""

    call_id: str
    timestamp: datetime
    fingerprint: str
    provider: str
    model: str = ""
    attempt_number: int
    status: Literal["success", "retryable", "fatal", "invalid_output"]
    failure_class: str | None = None
    repair: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0


class ProviderUsage(BaseModel):
    """Per-provider totals: each attempt consumes one unit of rate budget."""

    provider: str
    total_attempts: int = 0
    successes: int = 0
    retryable_failures: int = 0
    fatal_failures: int = 0
    invalid_outputs: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    avg_latency_ms: float = 0.0
