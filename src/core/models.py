# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

Inputs (UserProfile, Assignment, ProjectContext) arrive already validated
from the profile store, the assignment parser and the context collector.
AdaptedContent is the only type handed to the renderer.

No module redefines these types — all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NeurodiversityType = Literal["dyslexia", "autism", "adhd", "custom"]

ComplexityLevel = Literal["very_low", "low", "medium", "high", "very_high"]

COMPLEXITY_LEVELS: tuple[str, ...] = ("very_low", "low", "medium", "high", "very_high")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# === PROFILE ===


class StylePreferences(_Frozen):
    """How the adapted text should read."""

    tone: Literal["neutral", "encouraging", "direct", "playful"] = "neutral"
    verbosity: Literal["minimal", "concise", "standard", "detailed"] = "standard"
    max_sentence_words: int = Field(default=20, ge=5, le=60)
    prefer_bullet_lists: bool = False
    use_icons: bool = False
    font_family: str | None = None
    line_spacing: float = Field(default=1.5, ge=1.0, le=3.0)


class ContentPreferences(_Frozen):
    """What the adapted text should contain."""

    chunk_size: Literal["small", "medium", "large"] = "medium"
    include_examples: bool = True
    include_checklist: bool = False
    include_time_estimates: bool = False
    highlight_keywords: bool = False
    focus_hints: tuple[str, ...] = ()
    custom_instructions: str = ""


class UserProfile(_Frozen):
    """Learner profile snapshot.

    display_name, avatar_color, created_at and updated_at are cosmetic
    metadata and never influence the adaptation.
    """

    profile_id: str
    neurodiversity_type: NeurodiversityType
    style: StylePreferences = Field(default_factory=StylePreferences)
    content: ContentPreferences = Field(default_factory=ContentPreferences)
    display_name: str | None = None
    avatar_color: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# === ASSIGNMENT ===


class ContentBlock(_Frozen):
    """One parsed block of the assignment document."""

    kind: Literal["heading", "paragraph", "list", "code", "requirement", "note"]
    text: str
    level: int | None = None


class Assignment(_Frozen):
    """Parsed programming assignment."""

    assignment_id: str
    title: str
    blocks: tuple[ContentBlock, ...] = ()
    learning_objectives: tuple[str, ...] = ()
    due_date: str | None = None
    parsed_at: datetime | None = None


# === PROJECT CONTEXT ===


class ContextFile(_Frozen):
    """Summary of one project file relevant to the assignment."""

    path: str
    summary: str = ""


class ProjectContext(_Frozen):
    """Snapshot of the learner's project."""

    language: str
    framework: str | None = None
    files: tuple[ContextFile, ...] = ()
    symbols: tuple[str, ...] = ()
    collected_at: datetime | None = None


# === REQUEST ===


class GenerationParameters(_Frozen):
    """Per-request LLM parameters.

    An empty provider_preference_order defers to the configured default.
    Entries are "provider:model" or a bare "provider".
    """

    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0)
    provider_preference_order: tuple[str, ...] = ()


class AdaptationRequest(_Frozen):
    """Immutable input of one adaptation, built once per user action."""

    profile: UserProfile
    assignment: Assignment
    context: ProjectContext
    parameters: GenerationParameters = Field(default_factory=GenerationParameters)
    request_id: str | None = None
    issued_at: datetime | None = None


# === ADAPTED CONTENT ===


class ContentSection(_Frozen):
    """One ordered section of the adapted assignment."""

    section_type: Literal[
        "overview", "steps", "requirements", "example", "checklist", "tip", "glossary", "summary"
    ]
    body: str = Field(min_length=1)
    title: str | None = None
    order: int | None = None


class VisualHints(_Frozen):
    """Rendering hints suggested by the model."""

    emphasis_terms: tuple[str, ...] = ()
    use_icons: bool = False
    color_coding: bool = False
    spacing: Literal["compact", "normal", "relaxed"] = "normal"


class ComplexityAssessment(_Frozen):
    """Model's estimate of how demanding the assignment is."""

    level: ComplexityLevel
    rationale: str = ""
    estimated_minutes: int | None = Field(default=None, ge=0)


class AdaptedContent(_Frozen):
    """Validated, schema-conformant adaptation output."""

    sections: tuple[ContentSection, ...] = Field(min_length=1)
    visual_hints: VisualHints = Field(default_factory=VisualHints)
    complexity_assessment: ComplexityAssessment
    focus_areas: tuple[str, ...] = ()
