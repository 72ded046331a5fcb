# src/validation/validator.py — v1
"""Response Validator: raw provider output → AdaptedContent.

Applies a bounded, deterministic repair pass before strict validation:
  1. strip surrounding whitespace
  2. drop markdown code fences
  3. cut to the outermost JSON object when prose surrounds it
  4. trim whitespace in string values

Missing or malformed required fields are rejected, never coerced. Every
repair step that changed the input is logged.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from neuroadapt.core.models import AdaptedContent
from neuroadapt.pipeline.errors import ValidationError

logger = logging.getLogger(__name__)


class ResponseValidator:
    """Parse and validate provider output against the AdaptedContent schema."""

    def __init__(self, repair: bool = True) -> None:
        self._repair = repair

    def validate(self, raw_output: str | dict[str, Any]) -> AdaptedContent:
        """Validate raw output.

        Args:
            raw_output: Provider text, or an already-decoded JSON object.

        Returns:
            Immutable AdaptedContent.

        Raises:
            ValidationError: With the dotted path of every bad field.
        """
        if isinstance(raw_output, dict):
            data = raw_output
        else:
            data = self._decode(raw_output)

        if self._repair:
            data = self._trim_strings(data)

        missing = [f for f in ("sections", "complexity_assessment") if f not in data]
        if missing:
            raise ValidationError("Provider output missing required fields", fields=missing)

        try:
            content = AdaptedContent.model_validate(data)
        except PydanticValidationError as e:
            fields = _error_fields(e)
            raise ValidationError("Provider output does not match schema", fields=fields) from e

        return _ordered(content)

    # --- Internal helpers ---

    def _decode(self, raw: str) -> dict[str, Any]:
        text = raw
        if self._repair:
            text = self._repair_text(raw)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Provider output is not valid JSON: {e.msg} at position {e.pos}",
                fields=["$"],
            ) from e
        if not isinstance(data, dict):
            raise ValidationError(
                f"Provider output must be a JSON object, got {type(data).__name__}",
                fields=["$"],
            )
        return data

    def _repair_text(self, raw: str) -> str:
        text = raw.strip()
        if text != raw:
            logger.debug("Repair: stripped surrounding whitespace")

        if text.startswith("```"):
            lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
            text = "\n".join(lines).strip()
            logger.info("Repair: removed markdown code fences")

        if text and not text.startswith("{"):
            start = text.find("{")
            end = text.rfind("}")
            if start != -1 and end > start:
                text = text[start : end + 1]
                logger.info("Repair: extracted JSON object from surrounding prose")
        elif text.startswith("{") and not text.endswith("}"):
            end = text.rfind("}")
            if end != -1:
                text = text[: end + 1]
                logger.info("Repair: dropped trailing text after JSON object")

        return text

    def _trim_strings(self, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, list):
            return [self._trim_strings(v) for v in value]
        if isinstance(value, dict):
            return {k: self._trim_strings(v) for k, v in value.items()}
        return value


def _error_fields(error: PydanticValidationError) -> list[str]:
    fields: list[str] = []
    for err in error.errors():
        path = ".".join(str(p) for p in err["loc"]) or "$"
        if path not in fields:
            fields.append(path)
    return fields


def _ordered(content: AdaptedContent) -> AdaptedContent:
    """Sort sections by explicit order; sections without one keep their position."""
    sections = list(content.sections)
    if all(s.order is None for s in sections):
        return content
    keyed = sorted(
        enumerate(sections),
        key=lambda item: (item[1].order if item[1].order is not None else item[0], item[0]),
    )
    ordered = tuple(s for _, s in keyed)
    if ordered == content.sections:
        return content
    logger.debug("Reordered %d sections by their order field", len(ordered))
    return content.model_copy(update={"sections": ordered})
