# src/llm/base_client.py — v2
"""Abstract LLM client interface.

Every provider adapter implements complete() and classify_error().
The shared send() turns one prompt into a classified ProviderAttempt so no
caller depends on provider-specific fields or exception types.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from neuroadapt.llm.models import (
    FatalFailure,
    LLMResponse,
    Message,
    ProviderAttempt,
    RetryableFailure,
    Success,
)
from neuroadapt.llm.retry import classify_error
from neuroadapt.pipeline.errors import FatalProviderError, RetryableProviderError

if TYPE_CHECKING:
    from neuroadapt.core.models import GenerationParameters
    from neuroadapt.prompts.models import PromptPayload

logger = logging.getLogger(__name__)


def outcome_for_status(status: int, reason: str) -> RetryableFailure | FatalFailure:
    """Classify an HTTP-like status code."""
    if status == 429:
        return RetryableFailure(failure_class="rate_limited", reason=reason)
    if status == 408:
        return RetryableFailure(failure_class="timeout", reason=reason)
    if status in (401, 403):
        return FatalFailure(failure_class="auth", reason=reason)
    if status >= 500:
        return RetryableFailure(failure_class="server_error", reason=reason)
    return FatalFailure(failure_class="malformed_request", reason=reason)


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Text completion. Raises the provider SDK's own exceptions."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (anthropic, openai, google, ollama, scripted)."""

    @property
    def model(self) -> str:
        return getattr(self, "_model", "")

    @property
    def provider_id(self) -> str:
        """'provider:model' key used in attempt trails."""
        return f"{self.provider_name}:{self.model}" if self.model else self.provider_name

    def classify_error(self, error: Exception) -> RetryableFailure | FatalFailure:
        """Map a provider exception onto the retryable/fatal taxonomy.

        Adapters override this to inspect their SDK's exception types and
        fall back to this message-based heuristic for anything else.
        """
        if isinstance(error, RetryableProviderError):
            return RetryableFailure(failure_class=error.failure_class, reason=error.reason)
        if isinstance(error, FatalProviderError):
            return FatalFailure(failure_class=error.failure_class, reason=error.reason)
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return RetryableFailure(failure_class="timeout", reason=str(error) or "timed out")
        if isinstance(error, (ConnectionError, OSError)):
            return RetryableFailure(failure_class="network_error", reason=str(error))

        failure_class = classify_error(error)
        if failure_class in ("auth", "malformed_request"):
            return FatalFailure(failure_class=failure_class, reason=str(error))
        return RetryableFailure(failure_class=failure_class, reason=str(error))

    async def send(
        self,
        payload: PromptPayload,
        params: GenerationParameters,
        attempt_number: int = 1,
    ) -> ProviderAttempt:
        """Send one prompt and classify the outcome.

        Never raises for provider failures; cancellation propagates.
        """
        start = time.monotonic()
        try:
            response = await self.complete(
                payload.to_messages(),
                system=payload.system,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome = self.classify_error(e)
            logger.debug(
                "%s attempt %d failed: %s (%s)",
                self.provider_id, attempt_number, outcome.failure_class, e,
            )
        else:
            # Validation of the content is the validator's job.
            outcome = Success(
                raw_output=response.content,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                model=response.model,
            )

        return ProviderAttempt(
            provider=self.provider_id,
            attempt_number=attempt_number,
            outcome=outcome,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
