"""Recovery context for sessions that resume mid-story.

When the narrative engine has no live conversation to resume (a reconnect,
or an expired engine session), the most recent transcript and the stored
compaction summary are rendered into a bounded text block and prepended to
the player's next input.
"""

from __future__ import annotations

from typing import Sequence

from ..config import RecoveryContextOptions
from .types import NarrativeEntry, NarrativeHistory, RecoveryContext

MAX_ENTRY_CHARS = 1500
SUMMARY_HEADING = "## Previous Adventure Summary"
CONVERSATION_HEADING = "## Recent Conversation"
RECOVERY_HEADER = "[SESSION RECOVERY - Previous conversation context restored]"
CURRENT_INPUT_HEADER = "[Current player input - respond to this]:"


def format_entry(entry: NarrativeEntry, max_content_chars: int = MAX_ENTRY_CHARS) -> str:
    label = "**Player**" if entry.type == "player_input" else "**Game Master**"
    content = entry.content
    if len(content) > max_content_chars:
        content = content[:max_content_chars] + "..."
    return f"{label}: {content}\n\n"


def _assemble(summary_section: str, turns: Sequence[str], start: int) -> str:
    parts: list[str] = []
    if summary_section:
        parts.append(summary_section)
    if start < len(turns):
        parts.append(f"{CONVERSATION_HEADING}\n\n")
        parts.extend(turns[start:])
    return "".join(parts)


def _fit(summary_section: str, turns: Sequence[str], max_chars: int) -> tuple[str, int]:
    start = 0
    text = _assemble(summary_section, turns, start)
    while len(text) > max_chars and start < len(turns):
        start += 1
        text = _assemble(summary_section, turns, start)
    return text, start


def build_recovery_context(
    history: NarrativeHistory,
    options: RecoveryContextOptions | None = None,
) -> RecoveryContext:
    opts = options or RecoveryContextOptions()
    max_chars = max(opts.max_chars, 0)

    summary_section = ""
    if opts.include_summary and history.summary is not None and history.summary.text:
        summary_section = f"{SUMMARY_HEADING}\n\n{history.summary.text}\n\n---\n\n"

    recent = history.entries[-opts.max_entries:] if opts.max_entries > 0 else ()
    turns = [format_entry(entry) for entry in recent]

    text, start = _fit(summary_section, turns, max_chars)
    included_summary = bool(summary_section)
    if len(text) > max_chars and summary_section:
        # The summary alone does not fit; keep as much recent conversation as possible.
        text, start = _fit("", turns, max_chars)
        included_summary = False

    if not text:
        return RecoveryContext(context_prompt="", entries_included=0, has_summary=False)
    return RecoveryContext(
        context_prompt=text,
        entries_included=len(turns) - start,
        has_summary=included_summary,
    )


def build_recovery_prompt(current_input: str, context: RecoveryContext) -> str:
    if not context.context_prompt:
        return current_input
    return (
        f"{RECOVERY_HEADER}\n\n"
        f"{context.context_prompt}"
        "---\n\n"
        f"{CURRENT_INPUT_HEADER}\n"
        f"{current_input}"
    )
