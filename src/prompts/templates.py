# src/prompts/templates.py — v1
"""Per-profile prompt templates: Dyslexia, Autism, ADHD, Custom.

Each template decides tone, verbosity and structural hints for its profile
type and supplies few-shot examples. All of them feed the same system/user
text files so every variant yields the same PromptPayload shape.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from neuroadapt.core.models import UserProfile
from neuroadapt.prompts.models import PromptExample

_TEXT_DIR = Path(__file__).parent / "text"

_VERBOSITY_ORDER = ("minimal", "concise", "standard", "detailed")


@lru_cache(maxsize=None)
def load_text(name: str) -> str:
    """Load a packaged prompt text file by stem."""
    return (_TEXT_DIR / f"{name}.txt").read_text(encoding="utf-8")


@dataclass(frozen=True)
class StyleDecision:
    """Tone, verbosity and structure chosen for one profile."""

    tone: str
    verbosity: str
    max_sentence_words: int
    prefer_bullet_lists: bool
    include_checklist: bool


def _at_most(verbosity: str, ceiling: str) -> str:
    if _VERBOSITY_ORDER.index(verbosity) > _VERBOSITY_ORDER.index(ceiling):
        return ceiling
    return verbosity


def _example(excerpt: str, answer: dict) -> PromptExample:
    return PromptExample(
        user=f"Original assignment text:\n{excerpt}\n\nRewrite the assignment for this learner.",
        assistant=json.dumps(answer, sort_keys=True),
    )


_EXCERPT = (
    "Write a function is_palindrome(s) that returns True when s reads the same "
    "forwards and backwards, ignoring case. Add unit tests."
)


class BaseTemplate(ABC):
    """Template for one neurodiversity type."""

    @property
    @abstractmethod
    def profile_type(self) -> str:
        """Neurodiversity type this template handles."""

    @property
    @abstractmethod
    def label(self) -> str:
        """Human-readable profile label used in the system prompt."""

    @abstractmethod
    def decide_style(self, profile: UserProfile) -> StyleDecision:
        """Pick tone, verbosity and structural hints for this profile."""

    def guidance(self, profile: UserProfile) -> str:
        return load_text(self.profile_type).strip()

    def examples(self, profile: UserProfile) -> tuple[PromptExample, ...]:
        return ()


class DyslexiaTemplate(BaseTemplate):
    @property
    def profile_type(self) -> str:
        return "dyslexia"

    @property
    def label(self) -> str:
        return "dyslexia"

    def decide_style(self, profile: UserProfile) -> StyleDecision:
        style = profile.style
        return StyleDecision(
            tone=style.tone,
            verbosity=_at_most(style.verbosity, "concise"),
            max_sentence_words=min(style.max_sentence_words, 15),
            prefer_bullet_lists=True,
            include_checklist=profile.content.include_checklist,
        )

    def examples(self, profile: UserProfile) -> tuple[PromptExample, ...]:
        if not profile.content.include_examples:
            return ()
        return (
            _example(_EXCERPT, {
                "sections": [
                    {"section_type": "overview", "title": "What you will build", "order": 0,
                     "body": "You will write one function. It checks if a word is the same both ways."},
                    {"section_type": "steps", "title": "Steps", "order": 1,
                     "body": "1. Make the function is_palindrome(s).\n2. Change s to lower case.\n"
                             "3. Compare s with s reversed.\n4. Write tests."},
                ],
                "visual_hints": {"emphasis_terms": ["is_palindrome"], "use_icons": False,
                                 "color_coding": False, "spacing": "relaxed"},
                "complexity_assessment": {"level": "low", "rationale": "One short function.",
                                          "estimated_minutes": 30},
                "focus_areas": ["reversing a string"],
            }),
        )


class AutismTemplate(BaseTemplate):
    @property
    def profile_type(self) -> str:
        return "autism"

    @property
    def label(self) -> str:
        return "autism"

    def decide_style(self, profile: UserProfile) -> StyleDecision:
        style = profile.style
        tone = "direct" if style.tone in ("neutral", "playful") else style.tone
        return StyleDecision(
            tone=tone,
            verbosity=style.verbosity,
            max_sentence_words=style.max_sentence_words,
            prefer_bullet_lists=style.prefer_bullet_lists,
            include_checklist=True,
        )

    def examples(self, profile: UserProfile) -> tuple[PromptExample, ...]:
        if not profile.content.include_examples:
            return ()
        return (
            _example(_EXCERPT, {
                "sections": [
                    {"section_type": "overview", "title": "Goal", "order": 0,
                     "body": "Write the function is_palindrome(s). It returns True or False."},
                    {"section_type": "requirements", "title": "Exact requirements", "order": 1,
                     "body": "- Return True when s is equal to s reversed.\n"
                             "- Upper and lower case letters count as equal.\n"
                             "- Write unit tests. \"Unit tests\" means test functions that call "
                             "is_palindrome with fixed inputs."},
                    {"section_type": "checklist", "title": "Done when", "order": 2,
                     "body": "- [ ] is_palindrome exists\n- [ ] case is ignored\n- [ ] tests pass"},
                ],
                "visual_hints": {"emphasis_terms": [], "use_icons": False,
                                 "color_coding": False, "spacing": "normal"},
                "complexity_assessment": {"level": "low", "rationale": "One function and its tests.",
                                          "estimated_minutes": 30},
                "focus_areas": ["case-insensitive comparison"],
            }),
        )


class ADHDTemplate(BaseTemplate):
    @property
    def profile_type(self) -> str:
        return "adhd"

    @property
    def label(self) -> str:
        return "ADHD"

    def decide_style(self, profile: UserProfile) -> StyleDecision:
        style = profile.style
        tone = "encouraging" if style.tone == "neutral" else style.tone
        return StyleDecision(
            tone=tone,
            verbosity=_at_most(style.verbosity, "concise"),
            max_sentence_words=style.max_sentence_words,
            prefer_bullet_lists=True,
            include_checklist=True,
        )

    def examples(self, profile: UserProfile) -> tuple[PromptExample, ...]:
        if not profile.content.include_examples:
            return ()
        return (
            _example(_EXCERPT, {
                "sections": [
                    {"section_type": "overview", "title": "Goal", "order": 0,
                     "body": "**Build is_palindrome(s).** Then prove it works with tests."},
                    {"section_type": "steps", "title": "Quick steps", "order": 1,
                     "body": "1. Write the function (10 min)\n2. Ignore case (5 min)\n"
                             "3. Add three tests (15 min)"},
                    {"section_type": "checklist", "title": "Checklist", "order": 2,
                     "body": "- [ ] function\n- [ ] case\n- [ ] tests"},
                ],
                "visual_hints": {"emphasis_terms": ["is_palindrome"], "use_icons": True,
                                 "color_coding": True, "spacing": "relaxed"},
                "complexity_assessment": {"level": "low", "rationale": "Small, self-contained task.",
                                          "estimated_minutes": 30},
                "focus_areas": ["getting the first test green"],
            }),
        )


class CustomTemplate(BaseTemplate):
    @property
    def profile_type(self) -> str:
        return "custom"

    @property
    def label(self) -> str:
        return "custom"

    def decide_style(self, profile: UserProfile) -> StyleDecision:
        style = profile.style
        return StyleDecision(
            tone=style.tone,
            verbosity=style.verbosity,
            max_sentence_words=style.max_sentence_words,
            prefer_bullet_lists=style.prefer_bullet_lists,
            include_checklist=profile.content.include_checklist,
        )

    def guidance(self, profile: UserProfile) -> str:
        instructions = profile.content.custom_instructions.strip() or "(none given)"
        return load_text("custom").format(custom_instructions=instructions).strip()


_TEMPLATES: dict[str, BaseTemplate] = {
    t.profile_type: t
    for t in (DyslexiaTemplate(), AutismTemplate(), ADHDTemplate(), CustomTemplate())
}


def get_template(profile_type: str) -> BaseTemplate:
    """Return the template registered for a neurodiversity type.

    Raises:
        KeyError: If no template handles this type.
    """
    try:
        return _TEMPLATES[profile_type]
    except KeyError:
        raise KeyError(
            f"No prompt template for profile type {profile_type!r}. "
            f"Available: {', '.join(sorted(_TEMPLATES))}"
        ) from None
