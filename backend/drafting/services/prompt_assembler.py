"""Prompt assembly for background drafting.

Turns project state (project, blueprint, document, sections, notes, todos,
ordered transcript, job request) into a bounded system/user prompt pair.
Every block is a short labeled summary; raw records never reach the model.

Pure functions only: no storage access, no clock.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel

from drafting.models.context import Blueprint, Note, Project, SessionMessage, Todo, TodoStatus
from drafting.models.document import (
    SECTION_STATUS_LABELS,
    Document,
    DocumentSection,
    heading_key,
)
from drafting.models.draft_job import DraftJob
from drafting.models.transcript import TranscriptItem

MAX_EXISTING_DRAFT_CONTEXT_CHARS = 6000
DRAFT_TRUNCATION_MARKER = "\n… existing draft truncated for incremental update."

MAX_PROMPT_CONTEXT_CHARS = 800
CONTEXT_TRUNCATION_MARKER = "\n… context truncated for focus"

MAX_RECENT_NOTES = 8
MAX_FILTERED_EXCERPTS = 12
MAX_UNFILTERED_EXCERPTS = 8
MAX_REFERENCED_MESSAGES = 5
MAX_RENDERED_REFERENCED_MESSAGES = 2

TOKENS_PER_WORD = 1.3
MIN_TOKEN_ESTIMATE = 64

_WHITESPACE = re.compile(r"\s+")


class DraftingPrompt(BaseModel):
    """System/user prompt pair plus a telemetry-only token estimate."""

    system_prompt: str
    user_prompt: str
    estimated_tokens: int


def sanitize_text(value: Optional[str]) -> str:
    """Collapse whitespace runs to single spaces."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def estimate_prompt_tokens(system_prompt: str, user_prompt: str) -> int:
    """Word count times a fixed multiplier, floored at a minimum (0 when empty)."""
    word_count = len(f"{system_prompt}\n{user_prompt}".split())
    if word_count == 0:
        return 0
    return max(MIN_TOKEN_ESTIMATE, round(word_count * TOKENS_PER_WORD))


# ==============================================================================
# Context summaries
# ==============================================================================


def summarize_blueprint(blueprint: Optional[Blueprint]) -> str:
    if blueprint is None:
        return "Blueprint status: unavailable."

    fields = [
        ("Desired outcome", blueprint.desired_outcome),
        ("Target audience", blueprint.target_audience),
        ("Materials inventory", blueprint.materials_inventory),
        ("Communication preferences", blueprint.communication_preferences),
    ]
    lines = [
        f"{label}: {sanitize_text(value)}"
        for label, value in fields
        if value and value.strip()
    ]

    guardrails = []
    voice = blueprint.voice_guardrails
    if voice is not None:
        if voice.tone:
            guardrails.append(f"Voice tone: {sanitize_text(voice.tone)}")
        if voice.structure:
            guardrails.append(f"Voice structure: {sanitize_text(voice.structure)}")
        if voice.content:
            guardrails.append(f"Voice content guardrails: {sanitize_text(voice.content)}")

    if not lines and not guardrails:
        return "Blueprint captured but missing detailed fields."

    return "\n".join([f"Blueprint status: {blueprint.status}.", *lines, *guardrails])


def summarize_todos(todos: List[Todo]) -> str:
    """Open and in-review todos only."""
    if not todos:
        return "No open TODOs."
    open_todos = [todo for todo in todos if todo.status != TodoStatus.resolved]
    if not open_todos:
        return "All TODOs resolved."
    lines = []
    for todo in open_todos:
        label = "needs-review" if todo.status == TodoStatus.in_review else todo.status.value
        lines.append(f"- ({label}) {sanitize_text(todo.label)}")
    return "\n".join(lines)


def summarize_notes(notes: List[Note]) -> str:
    """The most recent notes, newest first."""
    if not notes:
        return "No recent notes."
    recent = sorted(notes, key=lambda note: note.created_at, reverse=True)[:MAX_RECENT_NOTES]
    return "\n".join(
        f"- [{note.note_type.value.upper()}] {sanitize_text(note.content)}"
        for note in recent
    )


def summarize_sections(
    sections: List[DocumentSection], active_section: Optional[str] = None
) -> str:
    """Sections by order with status labels.

    With an active section, every other section is marked read-only.
    """
    if not sections:
        return "No sections saved."
    active_key = heading_key(active_section) if active_section else None
    lines = []
    for index, section in enumerate(sorted(sections, key=lambda s: s.order)):
        label = SECTION_STATUS_LABELS.get(section.status, section.status.value)
        line = f"{index + 1}. {section.heading} — {label} (v{section.version})"
        if active_key is not None:
            line += " [editing]" if section.key == active_key else " [read-only]"
        lines.append(line)
    return "\n".join(lines)


# ==============================================================================
# Transcript excerpts
# ==============================================================================


def _is_assistant_role(item: TranscriptItem) -> bool:
    role = (item.role or "").lower()
    return "assistant" in role or role == "system"


def _is_anchored(item: TranscriptItem, pointers: set[str], anchors: set[str]) -> bool:
    return bool(
        (item.message_id and item.message_id in pointers)
        or (item.id and item.id in anchors)
        or (item.previous_item_id and item.previous_item_id in anchors)
    )


def select_transcript_excerpts(
    items: List[TranscriptItem],
    message_pointers: Iterable[str] = (),
    transcript_anchors: Iterable[str] = (),
) -> List[TranscriptItem]:
    """Pick the transcript items worth showing the model.

    Assistant and system items are kept only when anchored. If that leaves
    nothing, the full transcript is used. Explicit pointers/anchors narrow the
    set further; the result is capped to the most recent items.
    """
    if not items:
        return []

    pointers = {str(pointer) for pointer in message_pointers if pointer}
    anchors = {anchor for anchor in transcript_anchors if anchor}

    ordered = sorted(items, key=lambda item: item.created_at)
    role_scoped = [
        item
        for item in ordered
        if not _is_assistant_role(item) or _is_anchored(item, pointers, anchors)
    ]
    scoped = role_scoped or ordered

    if pointers or anchors:
        filtered = [item for item in scoped if _is_anchored(item, pointers, anchors)]
    else:
        filtered = scoped

    if filtered:
        return filtered[-MAX_FILTERED_EXCERPTS:]
    return scoped[-MAX_UNFILTERED_EXCERPTS:]


def format_transcript_excerpts(
    items: List[TranscriptItem],
    message_pointers: Iterable[str] = (),
    transcript_anchors: Iterable[str] = (),
) -> str:
    if not items:
        return "No transcript excerpts captured."
    selected = select_transcript_excerpts(items, message_pointers, transcript_anchors)
    lines = []
    for item in selected:
        speaker = item.role or "unknown"
        ref = item.message_key or item.id
        suffix = f" [ref:{ref}]" if ref else ""
        lines.append(f"- ({speaker}) {sanitize_text(item.text)}{suffix}")
    return "\n".join(lines)


def format_referenced_messages(messages: List[SessionMessage]) -> List[str]:
    recent = sorted(messages, key=lambda message: message.timestamp, reverse=True)
    lines = []
    for message in recent[:MAX_REFERENCED_MESSAGES]:
        speaker = "Assistant" if message.speaker == "assistant" else "Client"
        lines.append(f"- ({speaker}) {sanitize_text(message.transcript)}")
    return lines


# ==============================================================================
# Job context
# ==============================================================================


def _coerce_feedback(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return sanitize_text(value) or None
    if isinstance(value, bool) or isinstance(value, (int, float)):
        return str(value).lower() if isinstance(value, bool) else str(value)
    if isinstance(value, list):
        parts = [part for part in map(_coerce_feedback, value) if part]
        return sanitize_text("; ".join(parts)) or None
    if isinstance(value, dict):
        return sanitize_text(json.dumps(value, ensure_ascii=False, default=str))
    return None


def extract_feedback(prompt_context: Any) -> List[str]:
    """Revision feedback supplied in ``prompt_context.feedback``."""
    if not isinstance(prompt_context, dict):
        return []
    feedback = prompt_context.get("feedback")
    if not feedback:
        return []
    if isinstance(feedback, list):
        return [item for item in map(_coerce_feedback, feedback) if item]
    single = _coerce_feedback(feedback)
    return [single] if single else []


def truncate_existing_draft(markdown: str) -> Optional[str]:
    """Existing draft verbatim up to the cap, with a visible marker beyond it."""
    trimmed = markdown.strip()
    if not trimmed:
        return None
    if len(trimmed) <= MAX_EXISTING_DRAFT_CONTEXT_CHARS:
        return trimmed
    return trimmed[:MAX_EXISTING_DRAFT_CONTEXT_CHARS] + DRAFT_TRUNCATION_MARKER


def format_prompt_context(prompt_context: Any) -> Optional[str]:
    if not prompt_context:
        return None
    rendered = json.dumps(prompt_context, indent=2, ensure_ascii=False, default=str)
    if len(rendered) > MAX_PROMPT_CONTEXT_CHARS:
        return rendered[:MAX_PROMPT_CONTEXT_CHARS] + CONTEXT_TRUNCATION_MARKER
    return rendered


# ==============================================================================
# System prompt
# ==============================================================================


def build_system_prompt(active_section: Optional[str] = None) -> str:
    """System prompt; with an active section the model may return only that section."""
    if active_section:
        opening = (
            f'CRITICAL: You MUST return ONLY the section titled "{active_section}". '
            "Do not modify or return any other sections. "
            "The full document is provided as context only."
        )
        scope_rule = (
            f'- Return ONLY the "{active_section}" section. Your markdown field should '
            "contain only this single section with its heading and content."
        )
        outline_rule = (
            f'- Your sections array must contain exactly ONE entry with heading "{active_section}".'
        )
        focus_rule = (
            f'- Focus exclusively on "{active_section}". Do not modify, reference, '
            "or include any other sections in your response."
        )
    else:
        opening = "Produce a long-form Markdown draft update grounded in the provided context."
        scope_rule = (
            "- Build the document incrementally: reuse existing sentences that still apply "
            "and revise only passages directly affected by new insights."
        )
        outline_rule = "- Maintain the existing outline and section order unless instructed otherwise."
        focus_rule = (
            "- When the document is blank or sparse, inspect the transcript for outline requests: "
            "if the client wants to name sections first, propose those headings and write the "
            "first one they approve; otherwise draft the section they asked for with "
            "substantive paragraphs."
        )

    return "\n".join(
        [
            "You are a background ghostwriting model.",
            "You receive interview transcripts, blueprint details, and outstanding TODOs.",
            opening,
            "Requirements:",
            "- Always return polished Markdown ready for publication.",
            "- Reflect the client's voice and respect blueprint guardrails.",
            "- CRITICAL: Write only material you can support with the provided transcript "
            "excerpts. Never invent facts, examples, or quotes that are not explicitly "
            "present in the transcript.",
            "- If the transcript does not provide enough detail for a section, write ONLY "
            "what you can support and leave the rest blank. Do not add filler or speculate.",
            scope_rule,
            "- Section headings are IMMUTABLE. Use the exact heading from the existing draft. "
            "Never rename, add, or remove sections; that is handled by a separate tool.",
            outline_rule,
            "- Prioritize explicit user requests from the transcript excerpt; treat assistant "
            "reflections as secondary context.",
            "- Ensure the Markdown output contains only article prose: no greetings, agendas, "
            "recap bullets, or process commentary.",
            "- Never restate the blueprint, TODO list, or instructions inside the draft; "
            "treat them purely as background guidance.",
            focus_rule,
            "- Do not ask the user questions; surface open issues via TODO entries or the "
            "realtime summary so the assistant can follow up.",
            "- Return structured section metadata describing heading, status, and order.",
            "- Provide a concise summary narrating the update for the realtime assistant.",
        ]
    )


# ==============================================================================
# Assembly
# ==============================================================================


def _document_lines(
    document: Optional[Document], job: DraftJob, active_section: Optional[str]
) -> List[str]:
    markdown = document.latest_draft_markdown if document else ""
    summary = document.summary if document else None
    lines = [
        f"Previous summary: {sanitize_text(summary)}" if summary else "Previous summary: —",
        f"Existing draft length: {len(markdown.split())} words",
    ]
    if not markdown.strip():
        lines.append(
            "Draft status: empty. Follow the transcript if the client asked for section "
            "planning; otherwise begin drafting the requested section immediately."
        )
    if active_section:
        lines.append(f"Active section focus: {active_section} (do not edit other sections).")
        lines.append(
            "Other sections are read-only context and every heading is immutable."
        )
    request = sanitize_text(job.summary)
    if request:
        lines.append(f"Most recent request: {request}")
    if job.urgency:
        lines.append(f"Urgency: {sanitize_text(job.urgency)}")
    if job.generated_summary:
        lines.append(f"Last generated summary: {sanitize_text(job.generated_summary)}")
    return lines


def assemble_drafting_prompt(
    project: Project,
    blueprint: Optional[Blueprint],
    document: Optional[Document],
    sections: List[DocumentSection],
    notes: List[Note],
    todos: List[Todo],
    ordered_transcript: List[TranscriptItem],
    job: DraftJob,
    referenced_messages: Optional[List[SessionMessage]] = None,
) -> DraftingPrompt:
    """Build the drafting request for one job.

    ``ordered_transcript`` items are expected to carry resolved text
    (message fallbacks already applied by the caller).
    """
    active_section = job.active_section

    project_lines = [
        f"Project: {project.title} ({project.content_type})",
        f"Goal: {sanitize_text(project.goal)}" if project.goal else "Goal: —",
        f"Status: {project.status}",
    ]

    blocks = [
        "## Project",
        "\n".join(project_lines),
        "\n## Blueprint",
        summarize_blueprint(blueprint),
        "\n## Document",
        "\n".join(_document_lines(document, job, active_section)),
        "\n## Sections",
        summarize_sections(sections, active_section),
        "\n## TODOs",
        summarize_todos(todos),
        "\n## Notes",
        summarize_notes(notes),
        "\n## Transcript excerpts",
        format_transcript_excerpts(
            ordered_transcript, job.message_pointers, job.transcript_anchors
        ),
    ]

    referenced = format_referenced_messages(referenced_messages or [])
    if referenced:
        blocks.append("\n## Referenced messages")
        blocks.append("\n".join(referenced[:MAX_RENDERED_REFERENCED_MESSAGES]))

    feedback = extract_feedback(job.prompt_context)
    if feedback:
        blocks.append("\n## Revision feedback to apply")
        blocks.append("\n".join(f"- {item}" for item in feedback))

    existing_draft = truncate_existing_draft(
        document.latest_draft_markdown if document else ""
    )
    if existing_draft:
        blocks.append("\n## Existing draft (preserve structure)")
        blocks.append("\n".join(["```markdown", existing_draft, "```"]))

    context = format_prompt_context(job.prompt_context)
    if context:
        blocks.append("\n## Additional context")
        blocks.append(context)

    if active_section:
        blocks.append("\n## Section to update")
        blocks.append(active_section)

    system_prompt = build_system_prompt(active_section)
    user_prompt = "\n".join(blocks)
    return DraftingPrompt(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        estimated_tokens=estimate_prompt_tokens(system_prompt, user_prompt),
    )
