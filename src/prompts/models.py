# src/prompts/models.py — v1
"""Provider-agnostic prompt payload."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from neuroadapt.llm.models import Message


class PromptExample(BaseModel):
    """One few-shot exchange: an input excerpt and the expected JSON answer."""

    model_config = ConfigDict(frozen=True)

    user: str
    assistant: str


class PromptPayload(BaseModel):
    """Rendered prompt shared by every provider adapter."""

    model_config = ConfigDict(frozen=True)

    system: str
    user: str
    examples: tuple[PromptExample, ...] = ()

    def to_messages(self) -> list[Message]:
        """Flatten examples and the user prompt into a chat transcript."""
        messages: list[Message] = []
        for ex in self.examples:
            messages.append(Message(role="user", content=ex.user))
            messages.append(Message(role="assistant", content=ex.assistant))
        messages.append(Message(role="user", content=self.user))
        return messages
