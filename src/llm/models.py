# src/llm/models.py — v2
"""LLM-specific types: Message, LLMResponse, attempt outcomes.

A ProviderAttempt is created once per dispatch inside the orchestrator loop
and never reused.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

FailureClass = Literal[
    "rate_limited",
    "auth",
    "malformed_request",
    "server_error",
    "network_error",
    "timeout",
    "invalid_output",
]

RETRYABLE_FAILURES: frozenset[str] = frozenset(
    {"rate_limited", "server_error", "network_error", "timeout", "invalid_output"}
)


class Message(BaseModel):
    """Single message in a conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


class LLMResponse(BaseModel):
    """Normalized response from any LLM provider."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str
    provider: str
    latency_ms: int = 0
    raw_response: Any = None


# === ATTEMPT OUTCOMES ===


class Success(BaseModel):
    """Well-formed provider response; content may still fail validation."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    raw_output: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""


class RetryableFailure(BaseModel):
    """Transient failure: network, timeout, rate limit, 5xx, invalid output."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["retryable"] = "retryable"
    failure_class: FailureClass
    reason: str


class FatalFailure(BaseModel):
    """Permanent failure for this provider: auth or malformed request."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fatal"] = "fatal"
    failure_class: FailureClass
    reason: str


AttemptOutcome = Union[Success, RetryableFailure, FatalFailure]


class ProviderAttempt(BaseModel):
    """One (provider, attempt number) dispatch and its outcome."""

    model_config = ConfigDict(frozen=True)

    provider: str
    attempt_number: int = Field(ge=1)
    outcome: AttemptOutcome = Field(discriminator="kind")
    latency_ms: int = 0
    repair: bool = False

    @property
    def classification(self) -> str:
        """'success', or the failure class of a failed attempt."""
        if isinstance(self.outcome, Success):
            return "success"
        if isinstance(self.outcome, FatalFailure):
            return "fatal"
        return self.outcome.failure_class

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, Success)
