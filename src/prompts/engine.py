# src/prompts/engine.py — v1
"""Prompt Template Engine: (profile, assignment, context) → PromptPayload.

Rendering is deterministic for identical inputs and fails fast when the
assignment or context lacks what the prompt needs.
"""

from __future__ import annotations

import logging

from neuroadapt.core.models import Assignment, ProjectContext, UserProfile
from neuroadapt.pipeline.errors import ValidationError
from neuroadapt.prompts.models import PromptPayload
from neuroadapt.prompts.templates import get_template, load_text

logger = logging.getLogger(__name__)


def render(
    profile: UserProfile,
    assignment: Assignment,
    context: ProjectContext,
) -> PromptPayload:
    """Render the prompt for one adaptation.

    Args:
        profile: Learner profile snapshot.
        assignment: Parsed assignment.
        context: Project context snapshot.

    Returns:
        PromptPayload with system prompt, user prompt and few-shot examples.

    Raises:
        ValidationError: If required assignment/context fields are missing.
    """
    _check_inputs(assignment, context)

    template = get_template(profile.neurodiversity_type)
    style = template.decide_style(profile)

    system = load_text("system_base").format(
        profile_label=template.label,
        tone=style.tone,
        verbosity=style.verbosity,
        max_sentence_words=style.max_sentence_words,
        variant_guidance=template.guidance(profile),
    ).strip()

    prefs = profile.content
    user = load_text("user").format(
        title=assignment.title.strip(),
        due_line=f"Due: {assignment.due_date}" if assignment.due_date else "",
        objectives=_bullets(assignment.learning_objectives),
        blocks=_format_blocks(assignment),
        language=context.language.strip(),
        framework_line=f"Framework: {context.framework}" if context.framework else "",
        files=_bullets(
            f"{f.path}: {f.summary}" if f.summary else f.path for f in context.files
        ),
        symbols=", ".join(context.symbols) or "(none)",
        chunk_size=prefs.chunk_size,
        include_examples=_yes_no(prefs.include_examples),
        include_checklist=_yes_no(style.include_checklist),
        include_time_estimates=_yes_no(prefs.include_time_estimates),
        highlight_keywords=_yes_no(prefs.highlight_keywords),
        prefer_bullet_lists=_yes_no(style.prefer_bullet_lists),
        focus_line=(
            f"- Focus on: {', '.join(prefs.focus_hints)}" if prefs.focus_hints else ""
        ),
    ).strip()

    payload = PromptPayload(system=system, user=user, examples=template.examples(profile))
    logger.debug(
        "Rendered prompt for %s profile: %d system chars, %d user chars, %d examples",
        profile.neurodiversity_type, len(system), len(user), len(payload.examples),
    )
    return payload


def _check_inputs(assignment: Assignment, context: ProjectContext) -> None:
    missing: list[str] = []
    if not assignment.title.strip():
        missing.append("assignment.title")
    if not assignment.blocks:
        missing.append("assignment.blocks")
    elif not any(b.text.strip() for b in assignment.blocks):
        missing.append("assignment.blocks[].text")
    if not context.language.strip():
        missing.append("context.language")
    if missing:
        raise ValidationError("Cannot render prompt", fields=missing)


def _format_blocks(assignment: Assignment) -> str:
    lines: list[str] = []
    for block in assignment.blocks:
        text = block.text.strip()
        if not text:
            continue
        if block.kind == "heading":
            lines.append("#" * (block.level or 1) + " " + text)
        elif block.kind == "code":
            lines.append(f"```\n{text}\n```")
        elif block.kind == "requirement":
            lines.append(f"[REQUIRED] {text}")
        else:
            lines.append(text)
    return "\n\n".join(lines)


def _bullets(items) -> str:
    rendered = [f"- {item}" for item in items]
    return "\n".join(rendered) if rendered else "- (none)"


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"
