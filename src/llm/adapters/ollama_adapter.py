# src/llm/adapters/ollama_adapter.py — v2
"""Ollama local LLM adapter implementing BaseLLMClient.

Uses the ollama Python SDK with JSON output format.
"""

from __future__ import annotations

import time
from typing import Any

from neuroadapt.llm.base_client import BaseLLMClient, outcome_for_status
from neuroadapt.llm.models import FatalFailure, LLMResponse, Message, RetryableFailure


class OllamaAdapter(BaseLLMClient):
    """Ollama local inference adapter."""

    def __init__(
        self, model: str = "llama3", host: str = "http://localhost:11434", **kwargs: Any,
    ):
        self._model = model
        self._host = host

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        import ollama

        client = ollama.AsyncClient(host=self._host)
        msgs: list[dict[str, str]] = []
        if system:
            msgs.append({"role": "system", "content": system})
        for m in messages:
            msgs.append({"role": m.role, "content": m.content})

        options: dict[str, Any] = {
            "num_predict": max_tokens,
            "temperature": temperature,
        }

        t0 = time.monotonic()
        resp = await client.chat(
            model=self._model, messages=msgs, options=options, format="json",
        )
        latency = int((time.monotonic() - t0) * 1000)

        return LLMResponse(
            content=resp["message"]["content"],
            input_tokens=resp.get("prompt_eval_count", 0) or 0,
            output_tokens=resp.get("eval_count", 0) or 0,
            model=self._model,
            provider="ollama",
            latency_ms=latency,
            raw_response=resp,
        )

    @property
    def provider_name(self) -> str:
        return "ollama"

    def classify_error(self, error: Exception) -> RetryableFailure | FatalFailure:
        try:
            import httpx
            import ollama
        except ImportError:
            return super().classify_error(error)

        if isinstance(error, httpx.TimeoutException):
            return RetryableFailure(failure_class="timeout", reason=str(error))
        if isinstance(error, httpx.TransportError):
            return RetryableFailure(failure_class="network_error", reason=str(error))
        if isinstance(error, ollama.ResponseError) and error.status_code > 0:
            return outcome_for_status(error.status_code, str(error))
        return super().classify_error(error)
