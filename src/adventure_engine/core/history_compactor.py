"""History compaction for adventure transcripts.

Older entries are archived to a dated Markdown file, summarized for
continuity, and dropped from the live transcript; the most recent entries
are retained for immediate context.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence

import yaml

from ..config import CompactionConfig
from .errors import ArchiveCollisionError
from .normalize import format_timestamp, parse_timestamp, utc_now
from .ports import TextCompletionPort
from .types import CompactionResult, DateRange, HistorySummary, NarrativeEntry, NarrativeHistory

COMPACTION_IN_PROGRESS = "COMPACTION_IN_PROGRESS"
NOT_ENOUGH_ENTRIES = "NOT_ENOUGH_ENTRIES"
ARCHIVE_FAILED = "ARCHIVE_FAILED"

ARCHIVE_DIRNAME = "history"

SUMMARY_SYSTEM_PROMPT = (
    "You are a narrative summarizer for interactive adventures. "
    "Your ONLY task is to write a summary.\n\n"
    "Do NOT use any tools. Do NOT mention tools. "
    "Simply write the summary directly as your response."
)

SUMMARIZATION_PROMPT = """You are summarizing a narrative adventure history for context continuity.

The history contains player inputs and Game Master (GM) responses from an interactive text adventure.

SUMMARIZATION GUIDELINES:
1. Preserve key PLOT POINTS: major story events, discoveries, quest progress.
2. Track CHARACTER DEVELOPMENTS: the player character, NPCs introduced, relationships.
3. Note WORLD STATE changes: locations visited, items acquired or lost, established lore.
4. Keep the NARRATIVE TONE: match the genre and style, preserve emotional high points.

FORMAT:
Write a cohesive narrative summary in 2nd person ("You"), as if recapping for a returning player.
Target length: 200-400 words.
Start with "Previously in your adventure..." or similar.

Do NOT include mundane movements, exact dialogue unless significant, dice rolls, or meta-commentary.

"""

PREVIOUS_SUMMARY_BLOCK = """PREVIOUS SUMMARY (incorporate and build upon this):
{previous}

NEW EVENTS TO INCORPORATE:
"""


class HistoryCompactor:
    def __init__(
        self,
        adventure_dir: str | os.PathLike[str],
        config: CompactionConfig | None = None,
        *,
        completion: TextCompletionPort | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._adventure_dir = Path(adventure_dir)
        self._config = config or CompactionConfig()
        self._completion = completion
        self._clock = clock or utc_now
        self._logger = logger or logging.getLogger(__name__)
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @staticmethod
    def get_history_size(history: NarrativeHistory) -> int:
        return sum(len(entry.content) for entry in history.entries)

    def should_compact(self, history: NarrativeHistory) -> bool:
        return self.get_history_size(history) > self._config.char_threshold

    def retained_window_size(self, entries: Sequence[NarrativeEntry]) -> int:
        """Number of newest entries to keep under the count and char budgets."""
        limit = min(max(self._config.retained_count, 0), len(entries))
        budget = max(self._config.target_retained_char_count, 0)
        retained = 0
        chars = 0
        for entry in reversed(entries):
            if retained >= limit:
                break
            size = len(entry.content)
            if retained > 0 and chars + size > budget:
                break
            retained += 1
            chars += size
        return retained

    async def compact(self, history: NarrativeHistory) -> CompactionResult:
        if self._in_progress:
            self._logger.warning("Compaction already in progress, skipping")
            return CompactionResult(
                success=False,
                error="Compaction already in progress",
                error_code=COMPACTION_IN_PROGRESS,
                retryable=True,
            )

        self._in_progress = True
        try:
            entries = tuple(history.entries)
            entry_count = len(entries)
            retain_limit = min(max(self._config.retained_count, 0), entry_count)
            if entry_count <= retain_limit:
                self._logger.debug(
                    "Not enough entries to compact: entries=%s retained_count=%s",
                    entry_count,
                    self._config.retained_count,
                )
                return CompactionResult(
                    success=False,
                    error="Not enough entries to compact",
                    error_code=NOT_ENOUGH_ENTRIES,
                    retryable=False,
                )

            retain_count = self.retained_window_size(entries)
            archive_count = entry_count - retain_count
            to_archive = entries[:archive_count]
            retained = entries[archive_count:]

            self._logger.info(
                "Starting history compaction: archive=%s retain=%s total_chars=%s",
                archive_count,
                retain_count,
                self.get_history_size(history),
            )

            now = self._clock()
            date_range = self._date_range(to_archive, now)
            try:
                archive_path = await asyncio.to_thread(self._write_archive, to_archive, date_range, now)
            except OSError as exc:
                self._logger.error("Failed to archive entries: %s", exc)
                return CompactionResult(
                    success=False,
                    error=f"Archive failed: {exc}",
                    error_code=ARCHIVE_FAILED,
                    retryable=True,
                )
            self._logger.info("Entries archived to %s", archive_path)

            previous_text = history.summary.text if history.summary is not None else None
            summary_error: str | None = None
            try:
                text = await self._generate_summary(to_archive, previous_text)
                model = self._config.model
            except Exception as exc:
                # The archive is kept; a placeholder carries the previous summary forward.
                summary_error = str(exc) or exc.__class__.__name__
                self._logger.warning("Failed to generate summary, using placeholder: %s", summary_error)
                text = self._placeholder_summary(previous_text, archive_count, date_range, archive_path)
                model = "placeholder"

            summary = HistorySummary(
                text=text,
                generated_at=format_timestamp(self._clock()),
                model=model,
                entries_archived=archive_count,
                date_range=date_range,
            )
            return CompactionResult(
                success=True,
                entries_archived=archive_count,
                retained_entries=retained,
                archive_path=str(archive_path),
                summary=summary,
                summary_error=summary_error,
            )
        finally:
            self._in_progress = False

    def discard_archive(self, archive_path: str | os.PathLike[str]) -> bool:
        path = Path(archive_path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        self._logger.warning("Discarded archive %s after failed history commit", path)
        return True

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    @staticmethod
    def archive_filename(moment: datetime) -> str:
        return moment.strftime("%Y-%m-%d-%H%M%S") + ".md"

    def _write_archive(self, entries: Sequence[NarrativeEntry], date_range: DateRange, now: datetime) -> Path:
        history_dir = self._adventure_dir / ARCHIVE_DIRNAME
        history_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        path = history_dir / self.archive_filename(now)
        content = self.format_archive(entries, date_range, now)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError as exc:
            raise ArchiveCollisionError(f"Archive already exists: {path}") from exc
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        return path

    @staticmethod
    def format_archive(entries: Sequence[NarrativeEntry], date_range: DateRange, archived_at: datetime) -> str:
        frontmatter = yaml.safe_dump(
            {
                "archived_at": format_timestamp(archived_at),
                "date_range": {"from": date_range.from_, "to": date_range.to},
                "entry_count": len(entries),
            },
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
        sections = []
        for entry in entries:
            moment = parse_timestamp(entry.timestamp)
            stamp = moment.strftime("%Y-%m-%d %H:%M:%S") if moment else entry.timestamp
            if entry.type == "player_input":
                heading = "Player Input"
                body = "\n".join(f"> {line}" if line else ">" for line in entry.content.split("\n"))
            else:
                heading = "GM Response"
                body = entry.content
            sections.append(f"### {stamp} - {heading}\n\n{body}\n")
        return (
            f"---\n{frontmatter}---\n\n"
            "# Archived Adventure History\n\n"
            "## Entries\n\n"
            + "\n".join(sections)
        )

    @staticmethod
    def _date_range(entries: Sequence[NarrativeEntry], now: datetime) -> DateRange:
        if not entries:
            stamp = format_timestamp(now)
            return DateRange(from_=stamp, to=stamp)
        return DateRange(from_=entries[0].timestamp, to=entries[-1].timestamp)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    @staticmethod
    def format_entries_for_summary(entries: Sequence[NarrativeEntry]) -> str:
        lines = []
        for entry in entries:
            speaker = "Player" if entry.type == "player_input" else "GM"
            lines.append(f"[{entry.timestamp}] {speaker}: {entry.content}")
        return "\n\n".join(lines)

    def build_summary_prompt(self, entries: Sequence[NarrativeEntry], previous_summary: str | None) -> str:
        prompt = SUMMARIZATION_PROMPT
        if previous_summary:
            prompt += PREVIOUS_SUMMARY_BLOCK.format(previous=previous_summary)
        else:
            prompt += "HISTORY TO SUMMARIZE:\n"
        return prompt + self.format_entries_for_summary(entries)

    async def _generate_summary(self, entries: Sequence[NarrativeEntry], previous_summary: str | None) -> str:
        if self._config.mock:
            return self.mock_summarize(entries, previous_summary)
        if self._completion is None:
            raise RuntimeError("No text completion port configured for summaries")

        result = await self._completion.complete(
            SUMMARY_SYSTEM_PROMPT,
            self.build_summary_prompt(entries, previous_summary),
            temperature=0.3,
            max_tokens=self._config.summary_max_tokens,
        )
        text = (result or "").strip()
        if not text:
            raise ValueError("No summary generated")
        return text

    @staticmethod
    def mock_summarize(entries: Sequence[NarrativeEntry], previous_summary: str | None) -> str:
        player_inputs = sum(1 for e in entries if e.type == "player_input")
        gm_responses = sum(1 for e in entries if e.type == "gm_response")
        previous_context = ""
        if previous_summary:
            previous_context = f"\n\n[Previous summary incorporated: {previous_summary[:50]}...]"
        return (
            "Previously in your adventure...\n\n"
            "You embarked on a journey through this interactive narrative. "
            f"Over the course of {player_inputs} actions and {gm_responses} Game Master responses, "
            "your story unfolded."
            f"{previous_context}\n\n"
            "The adventure continues from where you left off."
        )

    @staticmethod
    def _placeholder_summary(
        previous_summary: str | None,
        archived: int,
        date_range: DateRange,
        archive_path: Path,
    ) -> str:
        note = (
            f"[Summary unavailable: {archived} earlier entries from {date_range.from_} "
            f"to {date_range.to} are archived in {ARCHIVE_DIRNAME}/{archive_path.name}.]"
        )
        if previous_summary:
            return f"{previous_summary}\n\n{note}"
        return note
