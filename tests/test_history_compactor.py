from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone

import yaml

from adventure_engine.config import CompactionConfig
from adventure_engine.core.history_compactor import (
    ARCHIVE_FAILED,
    COMPACTION_IN_PROGRESS,
    NOT_ENOUGH_ENTRIES,
    HistoryCompactor,
)
from adventure_engine.core.normalize import new_entry
from adventure_engine.core.types import DateRange, HistorySummary, NarrativeHistory

FIXED_NOW = datetime(2026, 10, 18, 9, 30, 15, tzinfo=timezone.utc)
ARCHIVE_RE = re.compile(r"history/\d{4}-\d{2}-\d{2}-\d{6}\.md$")


def make_entries(count: int, size: int = 10):
    start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    entries = []
    for i in range(count):
        kind = "player_input" if i % 2 == 0 else "gm_response"
        content = (f"e{i:03d}" + "x" * size)[:size]
        entries.append(new_entry(kind, content, entry_id=f"entry-{i}", now=start + timedelta(minutes=i)))
    return tuple(entries)


def make_summary(text: str) -> HistorySummary:
    return HistorySummary(
        text=text,
        generated_at="2026-01-01T00:00:00.000Z",
        model="stub",
        entries_archived=5,
        date_range=DateRange(from_="2026-01-01T00:00:00.000Z", to="2026-01-01T01:00:00.000Z"),
    )


class StubCompletion:
    def __init__(self, result="Previously in your adventure, things happened.", delay=0.0, error=None):
        self.result = result
        self.delay = delay
        self.error = error
        self.calls = []

    async def complete(self, system_prompt, prompt, *, temperature=0.3, max_tokens=1024):
        self.calls.append({"system_prompt": system_prompt, "prompt": prompt, "max_tokens": max_tokens})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def read_frontmatter(path: str) -> dict:
    with open(path, encoding="utf-8") as handle:
        content = handle.read()
    assert content.startswith("---\n")
    return yaml.safe_load(content.split("---\n")[1])


def test_should_compact_uses_strict_threshold(tmp_path):
    compactor = HistoryCompactor(tmp_path, CompactionConfig(char_threshold=100))
    at_threshold = NarrativeHistory(entries=make_entries(10, size=10))
    over_threshold = NarrativeHistory(entries=make_entries(11, size=10))

    assert compactor.get_history_size(at_threshold) == 100
    assert compactor.should_compact(at_threshold) is False
    assert compactor.should_compact(over_threshold) is True
    assert compactor.should_compact(NarrativeHistory()) is False


def test_compact_archives_oldest_and_retains_tail(tmp_path):
    async def run_test():
        completion = StubCompletion()
        compactor = HistoryCompactor(
            tmp_path,
            CompactionConfig(retained_count=20, target_retained_char_count=25_000),
            completion=completion,
            clock=lambda: FIXED_NOW,
        )
        entries = make_entries(30)
        result = await compactor.compact(NarrativeHistory(entries=entries))

        assert result.success is True
        assert result.entries_archived == 10
        assert result.retained_entries == entries[10:]
        assert result.entries_archived + len(result.retained_entries) == len(entries)
        assert ARCHIVE_RE.search(result.archive_path.replace("\\", "/"))
        assert result.archive_path.endswith("2026-10-18-093015.md")
        assert result.summary.text == completion.result
        assert result.summary.entries_archived == 10
        assert result.summary.date_range.from_ == entries[0].timestamp
        assert result.summary.date_range.to == entries[9].timestamp
        assert result.summary_error is None

        frontmatter = read_frontmatter(result.archive_path)
        assert frontmatter["entry_count"] == 10
        assert frontmatter["date_range"] == {"from": entries[0].timestamp, "to": entries[9].timestamp}
        assert frontmatter["archived_at"] == "2026-10-18T09:30:15.000Z"

        with open(result.archive_path, encoding="utf-8") as handle:
            body = handle.read()
        assert "# Archived Adventure History" in body
        assert "### 2026-01-01 12:00:00 - Player Input" in body
        assert "### 2026-01-01 12:01:00 - GM Response" in body
        assert f"> {entries[0].content}" in body
        assert entries[10].content not in body

    asyncio.run(run_test())


def test_compact_without_enough_entries_has_no_side_effects(tmp_path):
    async def run_test():
        completion = StubCompletion()
        compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=20), completion=completion)
        result = await compactor.compact(NarrativeHistory(entries=make_entries(20)))

        assert result.success is False
        assert result.error == "Not enough entries to compact"
        assert result.error_code == NOT_ENOUGH_ENTRIES
        assert result.retryable is False
        assert not (tmp_path / "history").exists()
        assert completion.calls == []
        assert compactor.in_progress is False

    asyncio.run(run_test())


def test_retention_stops_at_char_budget(tmp_path):
    compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=20, target_retained_char_count=25))
    assert compactor.retained_window_size(make_entries(30, size=10)) == 2


def test_retention_keeps_one_entry_even_over_budget(tmp_path):
    compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=5, target_retained_char_count=5))
    assert compactor.retained_window_size(make_entries(10, size=100)) == 1


def test_retained_count_zero_archives_everything(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(
            tmp_path,
            CompactionConfig(retained_count=0, target_retained_char_count=0, mock=True),
        )
        entries = make_entries(4)
        result = await compactor.compact(NarrativeHistory(entries=entries))

        assert result.success is True
        assert result.entries_archived == 4
        assert result.retained_entries == ()
        assert read_frontmatter(result.archive_path)["entry_count"] == 4

    asyncio.run(run_test())


def test_concurrent_compaction_is_rejected(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(
            tmp_path,
            CompactionConfig(retained_count=2),
            completion=StubCompletion(delay=0.05),
        )
        history = NarrativeHistory(entries=make_entries(10))
        first, second = await asyncio.gather(compactor.compact(history), compactor.compact(history))

        results = sorted([first, second], key=lambda r: r.success)
        assert results[1].success is True
        assert results[0].success is False
        assert results[0].error == "Compaction already in progress"
        assert results[0].error_code == COMPACTION_IN_PROGRESS
        assert results[0].retryable is True
        assert len(list((tmp_path / "history").iterdir())) == 1

    asyncio.run(run_test())


def _assert_one_rejected(results, archive_dir):
    codes = sorted(r.error_code or "" for r in results)
    assert codes == ["", COMPACTION_IN_PROGRESS]
    assert sum(1 for r in results if r.success) == 1
    assert len(list(archive_dir.iterdir())) == 1


def test_concurrent_compaction_is_rejected_in_mock_mode(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=2, mock=True))
        history = NarrativeHistory(entries=make_entries(10))
        results = await asyncio.gather(compactor.compact(history), compactor.compact(history))

        _assert_one_rejected(results, tmp_path / "history")
        assert compactor.in_progress is False

    asyncio.run(run_test())


def test_concurrent_compaction_is_rejected_with_immediate_completion(tmp_path):
    async def run_test():
        completion = StubCompletion()
        compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=2), completion=completion)
        history = NarrativeHistory(entries=make_entries(10))
        results = await asyncio.gather(compactor.compact(history), compactor.compact(history))

        _assert_one_rejected(results, tmp_path / "history")
        assert len(completion.calls) == 1

    asyncio.run(run_test())


def test_summary_chains_previous_summary(tmp_path):
    async def run_test():
        completion = StubCompletion()
        compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=2), completion=completion)
        history = NarrativeHistory(entries=make_entries(6), summary=make_summary("The dragon was slain."))
        result = await compactor.compact(history)

        assert result.success is True
        prompt = completion.calls[0]["prompt"]
        assert "PREVIOUS SUMMARY (incorporate and build upon this):" in prompt
        assert "The dragon was slain." in prompt
        assert "NEW EVENTS TO INCORPORATE:" in prompt
        assert "Player: e000" in prompt
        assert "e004" not in prompt

    asyncio.run(run_test())


def test_summary_failure_keeps_archive_and_uses_placeholder(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(
            tmp_path,
            CompactionConfig(retained_count=2),
            completion=StubCompletion(error=RuntimeError("model unavailable")),
            clock=lambda: FIXED_NOW,
        )
        history = NarrativeHistory(entries=make_entries(6), summary=make_summary("The dragon was slain."))
        result = await compactor.compact(history)

        assert result.success is True
        assert result.summary_error == "model unavailable"
        assert result.summary.model == "placeholder"
        assert result.summary.text.startswith("The dragon was slain.")
        assert "history/2026-10-18-093015.md" in result.summary.text
        assert (tmp_path / "history" / "2026-10-18-093015.md").exists()

    asyncio.run(run_test())


def test_empty_summary_is_treated_as_failure(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(
            tmp_path,
            CompactionConfig(retained_count=2),
            completion=StubCompletion(result="   "),
        )
        result = await compactor.compact(NarrativeHistory(entries=make_entries(6)))

        assert result.success is True
        assert result.summary_error == "No summary generated"
        assert result.summary.text.startswith("[Summary unavailable: 4 earlier entries")

    asyncio.run(run_test())


def test_mock_mode_summarizes_without_completion(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=2, mock=True))
        result = await compactor.compact(NarrativeHistory(entries=make_entries(6)))

        assert result.success is True
        assert result.summary.text.startswith("Previously in your adventure...")
        assert "2 actions and 2 Game Master responses" in result.summary.text

    asyncio.run(run_test())


def test_same_second_archive_collision_fails(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(
            tmp_path,
            CompactionConfig(retained_count=2, mock=True),
            clock=lambda: FIXED_NOW,
        )
        first = await compactor.compact(NarrativeHistory(entries=make_entries(6)))
        with open(first.archive_path, encoding="utf-8") as handle:
            original = handle.read()

        second = await compactor.compact(NarrativeHistory(entries=make_entries(8)))

        assert second.success is False
        assert second.error_code == ARCHIVE_FAILED
        assert second.error.startswith("Archive failed:")
        with open(first.archive_path, encoding="utf-8") as handle:
            assert handle.read() == original

    asyncio.run(run_test())


def test_discard_archive_removes_file(tmp_path):
    async def run_test():
        compactor = HistoryCompactor(tmp_path, CompactionConfig(retained_count=2, mock=True))
        result = await compactor.compact(NarrativeHistory(entries=make_entries(6)))

        assert compactor.discard_archive(result.archive_path) is True
        assert compactor.discard_archive(result.archive_path) is False

    asyncio.run(run_test())
