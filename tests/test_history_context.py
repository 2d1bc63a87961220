from __future__ import annotations

from datetime import datetime, timedelta, timezone

from adventure_engine.config import RecoveryContextOptions
from adventure_engine.core.history_context import (
    CURRENT_INPUT_HEADER,
    RECOVERY_HEADER,
    build_recovery_context,
    build_recovery_prompt,
    format_entry,
)
from adventure_engine.core.normalize import new_entry
from adventure_engine.core.types import DateRange, HistorySummary, NarrativeHistory, RecoveryContext


def make_history(count: int, size: int = 40, summary_text: str | None = None) -> NarrativeHistory:
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    entries = tuple(
        new_entry(
            "player_input" if i % 2 == 0 else "gm_response",
            (f"turn {i} " + "." * size)[:size],
            now=start + timedelta(minutes=i),
        )
        for i in range(count)
    )
    summary = None
    if summary_text is not None:
        summary = HistorySummary(
            text=summary_text,
            generated_at="2026-01-01T00:00:00.000Z",
            model="stub",
            entries_archived=10,
            date_range=DateRange(from_="2026-01-01T00:00:00.000Z", to="2026-01-01T00:10:00.000Z"),
        )
    return NarrativeHistory(entries=entries, summary=summary)


def test_empty_history_builds_empty_context():
    context = build_recovery_context(NarrativeHistory())
    assert context == RecoveryContext(context_prompt="", entries_included=0, has_summary=False)
    assert build_recovery_prompt("look around", context) == "look around"


def test_context_includes_summary_and_recent_conversation():
    history = make_history(4, summary_text="You found the lost sword.")
    context = build_recovery_context(history)

    assert context.has_summary is True
    assert context.entries_included == 4
    text = context.context_prompt
    assert text.startswith("## Previous Adventure Summary\n\nYou found the lost sword.\n\n---\n\n")
    assert "## Recent Conversation\n\n" in text
    assert f"**Player**: {history.entries[0].content}\n\n" in text
    assert f"**Game Master**: {history.entries[1].content}\n\n" in text
    assert text.index(history.entries[0].content) < text.index(history.entries[3].content)


def test_summary_can_be_excluded():
    history = make_history(2, summary_text="You found the lost sword.")
    context = build_recovery_context(history, RecoveryContextOptions(include_summary=False))
    assert context.has_summary is False
    assert "Previous Adventure Summary" not in context.context_prompt


def test_only_most_recent_entries_are_included():
    history = make_history(50)
    context = build_recovery_context(history, RecoveryContextOptions(max_entries=5, max_chars=100_000))

    assert context.entries_included == 5
    assert history.entries[44].content not in context.context_prompt
    assert history.entries[45].content in context.context_prompt


def test_context_is_bounded_by_max_chars():
    history = make_history(40, size=400, summary_text="A short recap.")
    options = RecoveryContextOptions(max_entries=40, max_chars=2000)
    context = build_recovery_context(history, options)

    assert len(context.context_prompt) <= 2000
    assert 0 < context.entries_included < 40
    assert context.has_summary is True
    assert history.entries[-1].content in context.context_prompt


def test_oversized_summary_is_dropped():
    history = make_history(4, summary_text="s" * 5000)
    context = build_recovery_context(history, RecoveryContextOptions(max_chars=1000))

    assert context.has_summary is False
    assert context.entries_included == 4
    assert len(context.context_prompt) <= 1000


def test_long_entries_are_truncated():
    entry = new_entry("gm_response", "y" * 2000)
    rendered = format_entry(entry)
    assert rendered == "**Game Master**: " + "y" * 1500 + "...\n\n"


def test_recovery_prompt_wraps_input():
    context = build_recovery_context(make_history(2))
    prompt = build_recovery_prompt("open the door", context)

    assert prompt.startswith(f"{RECOVERY_HEADER}\n\n{context.context_prompt}")
    assert prompt.endswith(f"---\n\n{CURRENT_INPUT_HEADER}\nopen the door")
