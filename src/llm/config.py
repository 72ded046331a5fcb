# src/llm/config.py — v2
"""Provider preference resolution.

Resolution order:
  1. Per-request order (GenerationParameters.provider_preference_order)
  2. Configured order (NEUROADAPT_PROVIDER_PREFERENCE_ORDER)
  3. Hardcoded fallback (anthropic:claude-sonnet-4-20250514)

Entries are "provider:model"; a bare "provider" uses that provider's
default model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from neuroadapt.config.settings import Settings
    from neuroadapt.core.models import GenerationParameters

_FALLBACK_PROVIDER = "anthropic"
_FALLBACK_MODEL = "claude-sonnet-4-20250514"

DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
    "google": "gemini-1.5-pro",
    "ollama": "llama3",
    "scripted": "scripted",
}


@dataclass(frozen=True)
class LLMAssignment:
    """Resolved LLM provider:model for one slot of the preference order."""

    provider: str
    model: str
    source: str  # "request", "settings", or "fallback"

    @property
    def key(self) -> str:
        """Return 'provider:model' string."""
        return f"{self.provider}:{self.model}"


def parse_assignment(value: str, source: str) -> LLMAssignment | None:
    """Parse 'provider:model' or 'provider'. Returns None if empty."""
    value = value.strip()
    if not value:
        return None
    if ":" in value:
        provider, model = value.split(":", 1)
        provider, model = provider.strip(), model.strip()
    else:
        provider, model = value, ""
    if not provider:
        return None
    return LLMAssignment(
        provider=provider,
        model=model or DEFAULT_MODELS.get(provider, ""),
        source=source,
    )


def resolve_preference_order(
    params: GenerationParameters | None,
    settings: Settings | None,
) -> list[LLMAssignment]:
    """Resolve the ordered provider list for one request.

    Duplicate entries keep their first position.
    """
    candidates: list[LLMAssignment] = []
    if params is not None and params.provider_preference_order:
        candidates = _parse_all(params.provider_preference_order, "request")
    if not candidates and settings is not None:
        candidates = _parse_all(settings.provider_order_list, "settings")
    if not candidates:
        candidates = [
            LLMAssignment(provider=_FALLBACK_PROVIDER, model=_FALLBACK_MODEL, source="fallback")
        ]

    seen: set[str] = set()
    ordered: list[LLMAssignment] = []
    for a in candidates:
        if a.key not in seen:
            seen.add(a.key)
            ordered.append(a)
    return ordered


def _parse_all(values, source: str) -> list[LLMAssignment]:
    parsed = (parse_assignment(v, source) for v in values)
    return [a for a in parsed if a is not None]
