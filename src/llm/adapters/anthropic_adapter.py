# src/llm/adapters/anthropic_adapter.py — v3
"""Anthropic Claude adapter implementing BaseLLMClient.

Uses the official anthropic SDK. SDK exceptions are mapped onto the
retryable/fatal taxonomy by status code.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from neuroadapt.llm.base_client import BaseLLMClient, outcome_for_status
from neuroadapt.llm.models import FatalFailure, LLMResponse, Message, RetryableFailure

logger = logging.getLogger(__name__)


class AnthropicAdapter(BaseLLMClient):
    """Adapter for Anthropic Claude models."""

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        api_key: str | None = None,
        **kwargs: Any,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self.__client = None  # Lazy initialization

    @property
    def _client(self):
        """Lazy-init Anthropic client (only on first API call)."""
        if self.__client is None:
            try:
                import anthropic
            except ImportError as e:
                raise ImportError(
                    "anthropic package required: pip install anthropic"
                ) from e
            # SDK-level retries are disabled; the orchestrator owns retry policy.
            self.__client = anthropic.AsyncAnthropic(
                api_key=self._api_key or "", max_retries=0
            )
        return self.__client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Text completion via Anthropic Messages API."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if system:
            kwargs["system"] = system

        start = time.monotonic()
        response = await self._client.messages.create(**kwargs)
        latency_ms = int((time.monotonic() - start) * 1000)

        return LLMResponse(
            content=self._extract_content(response),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            provider="anthropic",
            latency_ms=latency_ms,
            raw_response=response,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def classify_error(self, error: Exception) -> RetryableFailure | FatalFailure:
        try:
            import anthropic
        except ImportError:
            return super().classify_error(error)

        if isinstance(error, anthropic.APITimeoutError):
            return RetryableFailure(failure_class="timeout", reason=str(error))
        if isinstance(error, anthropic.APIConnectionError):
            return RetryableFailure(failure_class="network_error", reason=str(error))
        if isinstance(error, anthropic.APIStatusError):
            return outcome_for_status(error.status_code, str(error))
        return super().classify_error(error)

    # --- Internal helpers ---

    @staticmethod
    def _extract_content(response: Any) -> str:
        """Concatenate text blocks of an Anthropic response."""
        parts = [
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ]
        return "".join(parts)
