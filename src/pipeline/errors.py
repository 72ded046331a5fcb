# src/pipeline/errors.py — v2
"""Error taxonomy of the adaptation pipeline.

Provider-level failures are absorbed and classified inside the orchestrator.
Only ExhaustedError (and asyncio.CancelledError for a withdrawn caller)
crosses the pipeline boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from neuroadapt.llm.models import ProviderAttempt


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(PipelineError):
    """Malformed templating input or unparsable provider output.

    Attributes:
        fields: Dotted paths of every missing or malformed field.
    """

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        self.fields = list(fields or [])
        if self.fields:
            message = f"{message} (fields: {', '.join(self.fields)})"
        super().__init__(message)


class ProviderError(PipelineError):
    """A classified provider failure."""

    def __init__(self, provider: str, failure_class: str, reason: str) -> None:
        self.provider = provider
        self.failure_class = failure_class
        self.reason = reason
        super().__init__(f"{provider}: {failure_class} ({reason})")


class RetryableProviderError(ProviderError):
    """Network, timeout or rate-limit failure. Retried up to budget."""


class FatalProviderError(ProviderError):
    """Auth or malformed-request failure. Never retried on that provider."""


class ExhaustedError(PipelineError):
    """All providers, attempts or the time budget were spent.

    Attributes:
        fingerprint: Cache key of the failed request.
        attempts: Full attempt trail, in dispatch order.
        reason: Why the orchestrator stopped ("providers_exhausted",
            "overall_timeout", "abandoned" or "shutdown").
    """

    def __init__(
        self,
        fingerprint: str,
        attempts: list[ProviderAttempt],
        reason: str = "providers_exhausted",
    ) -> None:
        self.fingerprint = fingerprint
        self.attempts = list(attempts)
        self.reason = reason
        trail = "; ".join(
            f"#{a.attempt_number} {a.provider} → {a.classification}" for a in self.attempts
        )
        super().__init__(
            f"Adaptation failed after {len(self.attempts)} attempt(s) ({reason})"
            + (f": {trail}" if trail else "")
        )

    @property
    def retryable(self) -> bool:
        """Whether trying again later could succeed.

        False only when every attempt failed fatally (auth or malformed request).
        """
        if self.reason != "providers_exhausted" or not self.attempts:
            return True
        return any(a.classification != "fatal" for a in self.attempts)

    def summary(self) -> dict[str, int]:
        """Attempt count per classification, e.g. {"rate_limited": 2, "fatal": 1}."""
        counts: dict[str, int] = {}
        for attempt in self.attempts:
            counts[attempt.classification] = counts.get(attempt.classification, 0) + 1
        return counts
