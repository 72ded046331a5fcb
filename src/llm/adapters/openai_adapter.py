# src/llm/adapters/openai_adapter.py — v2
"""OpenAI GPT adapter implementing BaseLLMClient.

Uses the official openai SDK in JSON mode.
"""

from __future__ import annotations

import time
from typing import Any

from neuroadapt.llm.base_client import BaseLLMClient, outcome_for_status
from neuroadapt.llm.models import FatalFailure, LLMResponse, Message, RetryableFailure


class OpenAIAdapter(BaseLLMClient):
    """OpenAI GPT adapter."""

    def __init__(self, model: str = "gpt-4o", api_key: str = "", **kwargs: Any):
        self._model = model
        self._api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            import openai

            self._client = openai.AsyncOpenAI(api_key=self._api_key, max_retries=0)
        return self._client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for m in messages:
            oai_messages.append({"role": m.role, "content": m.content})

        t0 = time.monotonic()
        resp = await self._get_client().chat.completions.create(
            model=self._model,
            messages=oai_messages,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        latency = int((time.monotonic() - t0) * 1000)

        choice = resp.choices[0]
        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider="openai",
            latency_ms=latency,
            raw_response=resp,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def classify_error(self, error: Exception) -> RetryableFailure | FatalFailure:
        try:
            import openai
        except ImportError:
            return super().classify_error(error)

        if isinstance(error, openai.APITimeoutError):
            return RetryableFailure(failure_class="timeout", reason=str(error))
        if isinstance(error, openai.APIConnectionError):
            return RetryableFailure(failure_class="network_error", reason=str(error))
        if isinstance(error, openai.APIStatusError):
            return outcome_for_status(error.status_code, str(error))
        return super().classify_error(error)
