# src/llm/adapters/scripted_adapter.py — v1
"""Deterministic in-process provider.

Plays back a fixed script of responses: a string or dict is returned as the
completion text, an exception instance is raised. Once the script runs out
the last step repeats. Without a script it answers with a minimal valid
adaptation built from the prompt, which makes offline runs possible.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Sequence

from neuroadapt.llm.base_client import BaseLLMClient
from neuroadapt.llm.models import LLMResponse, Message

ScriptStep = Any  # str | dict | Exception


class ScriptedAdapter(BaseLLMClient):
    """Provider that replays scripted outcomes.

    Args:
        model: Model label used in attempt trails.
        responses: Ordered script of completions or exceptions.
        delay_s: Simulated latency per call.
        name: Provider name (lets tests stand up several distinct providers).
    """

    def __init__(
        self,
        model: str = "",
        responses: Sequence[ScriptStep] | None = None,
        delay_s: float = 0.0,
        name: str = "scripted",
        **kwargs: Any,
    ) -> None:
        self._model = model
        self._script = list(responses or [])
        self._delay_s = delay_s
        self._name = name
        self.calls: list[list[Message]] = []

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        index = len(self.calls)
        self.calls.append(list(messages))
        if self._delay_s:
            await asyncio.sleep(self._delay_s)

        if self._script:
            step = self._script[min(index, len(self._script) - 1)]
        else:
            step = canned_adaptation(messages[-1].content if messages else "")

        if isinstance(step, BaseException):
            raise step
        content = step if isinstance(step, str) else json.dumps(step)
        return LLMResponse(
            content=content,
            input_tokens=sum(len(m.content) for m in messages) // 4,
            output_tokens=len(content) // 4,
            model=self._model or self._name,
            provider=self._name,
        )


def canned_adaptation(user_prompt: str) -> dict[str, Any]:
    """Minimal valid adaptation echoing the assignment title."""
    title = "the assignment"
    for line in user_prompt.splitlines():
        if line.startswith("Assignment:"):
            title = line.split(":", 1)[1].strip() or title
            break
    return {
        "sections": [
            {"section_type": "overview", "title": "Goal", "order": 0,
             "body": f"Complete {title}."},
            {"section_type": "checklist", "title": "Checklist", "order": 1,
             "body": "- [ ] Read the requirements\n- [ ] Implement\n- [ ] Test"},
        ],
        "visual_hints": {"emphasis_terms": [], "use_icons": False,
                         "color_coding": False, "spacing": "normal"},
        "complexity_assessment": {"level": "medium", "rationale": "Offline estimate.",
                                  "estimated_minutes": None},
        "focus_areas": [],
    }
