# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides sample profiles, assignments, requests, valid provider output and
scripted providers. No external services: every provider is in-process.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import pytest

from neuroadapt.cache.fingerprint import compute_fingerprint
from neuroadapt.cache.models import Fingerprint
from neuroadapt.core.models import (
    AdaptationRequest,
    AdaptedContent,
    Assignment,
    ContentBlock,
    ContentPreferences,
    ContextFile,
    GenerationParameters,
    ProjectContext,
    StylePreferences,
    UserProfile,
)
from neuroadapt.llm.models import LLMResponse
from neuroadapt.prompts.models import PromptPayload


# === FIXTURES: Sample data ===


@pytest.fixture
def sample_profile() -> UserProfile:
    """Dyslexia profile with a few explicit preferences."""
    return UserProfile(
        profile_id="learner-42",
        neurodiversity_type="dyslexia",
        style=StylePreferences(tone="encouraging", verbosity="standard", max_sentence_words=18),
        content=ContentPreferences(chunk_size="small", include_checklist=True),
        display_name="Sam",
        avatar_color="#ff8800",
        created_at=datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_assignment() -> Assignment:
    """Short programming assignment."""
    return Assignment(
        assignment_id="hw-3",
        title="Word Counter",
        blocks=(
            ContentBlock(kind="heading", text="Task", level=2),
            ContentBlock(
                kind="paragraph",
                text="Write a program that counts how often each word appears in a text file.",
            ),
            ContentBlock(kind="requirement", text="Ignore case and punctuation."),
            ContentBlock(kind="code", text="def count_words(path: str) -> dict[str, int]: ..."),
        ),
        learning_objectives=("file I/O", "dictionaries"),
        due_date="2026-11-01",
        parsed_at=datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_context() -> ProjectContext:
    """Python project snapshot."""
    return ProjectContext(
        language="python",
        framework="pytest",
        files=(
            ContextFile(path="word_counter.py", summary="empty module"),
            ContextFile(path="tests/test_word_counter.py"),
        ),
        symbols=("count_words",),
        collected_at=datetime(2026, 10, 1, 12, 5, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_request(sample_profile, sample_assignment, sample_context) -> AdaptationRequest:
    """Complete adaptation request pinned to the scripted provider."""
    return AdaptationRequest(
        profile=sample_profile,
        assignment=sample_assignment,
        context=sample_context,
        parameters=GenerationParameters(provider_preference_order=("scripted",)),
        request_id="req-001",
        issued_at=datetime(2026, 10, 18, 8, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_fingerprint(sample_request) -> Fingerprint:
    return compute_fingerprint(sample_request)


@pytest.fixture
def sample_payload() -> PromptPayload:
    return PromptPayload(system="You rewrite assignments.", user="Assignment: Word Counter")


@pytest.fixture
def sample_params() -> GenerationParameters:
    return GenerationParameters()


# === FIXTURES: Provider output ===


@pytest.fixture
def valid_content_dict() -> dict[str, Any]:
    """Schema-conformant provider output."""
    return {
        "sections": [
            {"section_type": "overview", "title": "Goal", "order": 0,
             "body": "Count every word in a file."},
            {"section_type": "steps", "title": "Steps", "order": 1,
             "body": "1. Open the file.\n2. Split into words.\n3. Count."},
        ],
        "visual_hints": {"emphasis_terms": ["count_words"], "spacing": "relaxed"},
        "complexity_assessment": {"level": "low", "rationale": "One function.",
                                  "estimated_minutes": 40},
        "focus_areas": ["dictionaries"],
    }


@pytest.fixture
def valid_content_json(valid_content_dict) -> str:
    return json.dumps(valid_content_dict)


@pytest.fixture
def sample_content(valid_content_dict) -> AdaptedContent:
    return AdaptedContent.model_validate(valid_content_dict)


@pytest.fixture
def mock_llm_response(valid_content_json) -> LLMResponse:
    """Standard provider response carrying valid content."""
    return LLMResponse(
        content=valid_content_json,
        input_tokens=120,
        output_tokens=80,
        model="claude-sonnet-4-20250514",
        provider="anthropic",
        latency_ms=350,
    )


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
