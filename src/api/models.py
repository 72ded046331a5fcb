# src/api/models.py — v2
"""API-level models: FailureSummary, AdaptationResult."""

from __future__ import annotations

from pydantic import BaseModel

from neuroadapt.core.models import AdaptedContent
from neuroadapt.pipeline.errors import ExhaustedError

_FAILURE_MESSAGES: dict[str, str] = {
    "providers_exhausted": "The assignment could not be adapted right now.",
    "overall_timeout": "Adapting the assignment took too long.",
    "abandoned": "The adaptation was stopped before it finished.",
    "shutdown": "The adaptation was interrupted.",
}


class FailureSummary(BaseModel):
    """Renderer-facing failure: no provider-specific detail."""

    message: str
    retryable: bool
    attempt_count: int

    @classmethod
    def from_error(cls, error: ExhaustedError) -> FailureSummary:
        return cls(
            message=_FAILURE_MESSAGES.get(error.reason, _FAILURE_MESSAGES["providers_exhausted"]),
            retryable=error.retryable,
            attempt_count=len(error.attempts),
        )


class AdaptationResult(BaseModel):
    """Return value of AdaptationPipeline.adapt_safely()."""

    fingerprint: str
    content: AdaptedContent | None = None
    failure: FailureSummary | None = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.content is not None
