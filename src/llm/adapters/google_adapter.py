# src/llm/adapters/google_adapter.py — v2
"""Google Gemini adapter implementing BaseLLMClient.

Uses google-generativeai SDK. Errors surface as google.api_core exceptions
carrying an HTTP status in their code attribute.
"""

from __future__ import annotations

import time
from typing import Any

from neuroadapt.llm.base_client import BaseLLMClient, outcome_for_status
from neuroadapt.llm.models import FatalFailure, LLMResponse, Message, RetryableFailure


class GoogleAdapter(BaseLLMClient):
    """Google Gemini adapter."""

    def __init__(self, model: str = "gemini-1.5-pro", api_key: str = "", **kwargs: Any):
        self._model = model
        self._api_key = api_key

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        import google.generativeai as genai

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(
            self._model,
            system_instruction=system,
        )

        gen_config: dict[str, Any] = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
            "response_mime_type": "application/json",
        }

        # Convert messages to Gemini format
        contents = []
        for m in messages:
            role = "model" if m.role == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": m.content}]})

        t0 = time.monotonic()
        resp = await model.generate_content_async(
            contents, generation_config=gen_config,
        )
        latency = int((time.monotonic() - t0) * 1000)

        usage = getattr(resp, "usage_metadata", None)
        return LLMResponse(
            content=resp.text or "",
            input_tokens=getattr(usage, "prompt_token_count", 0) if usage else 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) if usage else 0,
            model=self._model,
            provider="google",
            latency_ms=latency,
            raw_response=resp,
        )

    @property
    def provider_name(self) -> str:
        return "google"

    def classify_error(self, error: Exception) -> RetryableFailure | FatalFailure:
        try:
            from google.api_core import exceptions as gexc
        except ImportError:
            return super().classify_error(error)

        if isinstance(error, gexc.DeadlineExceeded):
            return RetryableFailure(failure_class="timeout", reason=str(error))
        if isinstance(error, gexc.GoogleAPICallError) and isinstance(error.code, int):
            return outcome_for_status(error.code, str(error))
        return super().classify_error(error)
