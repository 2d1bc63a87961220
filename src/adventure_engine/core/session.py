from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..config import CompactionConfig, SessionConfig
from ..persistence.interfaces import HistoryStore
from . import protocol
from .error_handler import (
    is_session_recovery_needed,
    log_error,
    map_exception,
    map_processing_timeout_error,
    map_state_error,
)
from .errors import NarrativeEngineError, ProcessingTimeoutError, SessionNotInitializedError
from .history_compactor import HistoryCompactor
from .history_context import build_recovery_context, build_recovery_prompt
from .mock_engine import MockNarrativeEngine
from .normalize import new_entry
from .ports import (
    BackgroundImagePort,
    CancellationToken,
    GMToolCallbacks,
    MessageSink,
    NarrativeEnginePort,
    NarrativeRequest,
    TextCompletionPort,
)
from .prompts import SCENE_MAX_CHARS, build_gm_system_prompt
from .types import (
    GENRES,
    REGIONS,
    THEME_MOODS,
    XP_STYLES,
    AdventureState,
    CompactionResult,
    ErrorDetails,
    InitializeResult,
    NarrativeHistory,
)
from .validation import sanitize_player_input

Log = Union[logging.Logger, logging.LoggerAdapter]

BLOCKED_INPUT_MESSAGE = "Please describe your action in the game world."
COMMIT_FAILED = "COMMIT_FAILED"


@dataclass
class PendingInput:
    text: str
    log: Optional[Log] = None


@dataclass
class _ResponseCycle:
    message_id: str
    started: bool = False
    ended: bool = False
    parts: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.parts)


def first_paragraph(text: str, max_chars: int = SCENE_MAX_CHARS) -> str:
    paragraph = text.split("\n\n", 1)[0] or text
    return paragraph[:max_chars]


class GameSession:
    """Drives one adventure over one client connection.

    Inputs are processed strictly one at a time in arrival order; each one
    produces a correlated ``gm_response_start``/``chunk``/``end`` cycle on the
    sink and a player/GM entry pair in the history store.
    """

    def __init__(
        self,
        sink: MessageSink,
        store: HistoryStore,
        engine: NarrativeEnginePort | None = None,
        *,
        config: SessionConfig | None = None,
        compaction: CompactionConfig | None = None,
        compactor: HistoryCompactor | None = None,
        completion: TextCompletionPort | None = None,
        background_images: BackgroundImagePort | None = None,
        mechanics: Any = None,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._sink = sink
        self._store = store
        self._config = config or SessionConfig()
        if engine is None:
            if not self._config.mock_engine:
                raise ValueError("A narrative engine is required unless mock_engine is enabled")
            engine = MockNarrativeEngine()
        self._engine = engine
        self._compaction = compaction or CompactionConfig()
        self._compactor = compactor
        self._completion = completion
        self._background_images = background_images
        self._mechanics = mechanics
        self._clock = clock or time.monotonic
        self._logger = logger or logging.getLogger(__name__)

        self._queue: deque[PendingInput] = deque()
        self._processing = False
        self._initialized = False
        self._last_theme: tuple[str, float] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, adventure_id: str, session_token: str) -> InitializeResult:
        project_dir = self._config.project_dir
        if not project_dir or not Path(project_dir).is_dir():
            message = (
                f"Project directory does not exist: {project_dir}"
                if project_dir
                else "Project directory is not configured"
            )
            details = map_state_error("ENVIRONMENT", message)
            log_error("initialize", details, {"adventure_id": adventure_id}, log=self._logger)
            return InitializeResult(success=False, error_type="ENVIRONMENT", error=message, details=details)

        result = await self._store.load(adventure_id, session_token)
        if not result.success:
            error = result.error
            details = map_state_error(error.type, error.message, error.path)
            log_error("initialize", details, {"adventure_id": adventure_id}, log=self._logger)
            return InitializeResult(success=False, error_type=error.type, error=error.message, details=details)

        if self._compactor is None:
            self._compactor = HistoryCompactor(
                self._store.get_adventure_dir(),
                self._compaction,
                completion=self._completion,
            )
        self._initialized = True
        self._logger.info(
            "Session initialized for adventure %s (entries=%s)",
            adventure_id,
            len(result.history.entries) if result.history else 0,
        )
        return InitializeResult(success=True)

    # ------------------------------------------------------------------
    # Input queue
    # ------------------------------------------------------------------

    async def handle_input(self, text: str, log: Log | None = None) -> None:
        log = log or self._logger
        sanitized = sanitize_player_input(text, self._config.max_input_length)
        if sanitized.blocked:
            log.warning("Blocked input: reason=%s flags=%s", sanitized.block_reason, sanitized.flags)
            self._send(
                protocol.error(
                    ErrorDetails(
                        code="GM_ERROR",
                        message=sanitized.block_reason or "Blocked input",
                        retryable=True,
                        user_message=BLOCKED_INPUT_MESSAGE,
                    )
                ),
                log,
            )
            return
        if sanitized.flags:
            log.info("Flagged input: flags=%s", sanitized.flags)

        self._queue.append(PendingInput(sanitized.sanitized, log))
        if self._processing:
            log.debug("Input queued behind active processing (queue=%s)", len(self._queue))
            return
        await self._process_queue()

    async def _process_queue(self) -> None:
        self._processing = True
        log: Log = self._logger
        try:
            while self._queue:
                pending = self._queue.popleft()
                log = pending.log or self._logger
                await self._process_one(pending, log)
            self._send(protocol.tool_status("idle", "Ready"), log)
        finally:
            self._processing = False

    async def _process_one(self, pending: PendingInput, log: Log) -> None:
        cycle = _ResponseCycle(message_id=str(uuid.uuid4()))
        cancel_token = CancellationToken()
        timeout = self._config.input_timeout_seconds
        try:
            await asyncio.wait_for(self._process_input(pending.text, cycle, cancel_token, log), timeout=timeout)
        except asyncio.TimeoutError:
            cancel_token.cancel("timeout")
            details = map_processing_timeout_error(ProcessingTimeoutError(timeout))
            self._fail_cycle(cycle, details, log, "Input processing timeout")
        except Exception as exc:
            self._fail_cycle(cycle, map_exception(exc), log, "Input processing failed")

    def _fail_cycle(self, cycle: _ResponseCycle, details: ErrorDetails, log: Log, context: str) -> None:
        if cycle.started and not cycle.ended:
            self._send(protocol.gm_response_end(cycle.message_id), log)
            cycle.ended = True
        log_error(
            context,
            details,
            {"message_id": cycle.message_id, "adventure_id": self._adventure_id()},
            log=log,
        )
        self._send(protocol.error(details), log)

    async def _process_input(
        self,
        text: str,
        cycle: _ResponseCycle,
        cancel_token: CancellationToken,
        log: Log,
    ) -> None:
        if not self._initialized:
            raise SessionNotInitializedError("Session is not initialized")

        state: AdventureState = self._store.get_state()
        prior_history: NarrativeHistory = self._store.get_history()
        resume_id = state.agent_session_id

        prompt = text
        if prior_history.entries and not resume_id:
            prompt = self._recovery_prompt(text, prior_history, log)

        await self._store.append_history(new_entry("player_input", text))

        self._send(protocol.gm_response_start(cycle.message_id), log)
        cycle.started = True

        try:
            await self._stream_response(prompt, resume_id, cycle, cancel_token, log)
        except NarrativeEngineError as exc:
            if cycle.parts or not resume_id or not is_session_recovery_needed(exc.code, str(exc)):
                raise
            log.warning("Engine session %s could not be resumed, retrying with recovery context", resume_id)
            await self._store.update_agent_session_id(None)
            prompt = self._recovery_prompt(text, prior_history, log)
            await self._stream_response(prompt, None, cycle, cancel_token, log)

        self._send(protocol.gm_response_end(cycle.message_id), log)
        cycle.ended = True

        response = cycle.text
        log.debug("Response complete: message_id=%s length=%s", cycle.message_id, len(response))
        await self._store.append_history(new_entry("gm_response", response, entry_id=cycle.message_id))
        if response:
            await self._store.update_scene(first_paragraph(response))

    def _recovery_prompt(self, text: str, history: NarrativeHistory, log: Log) -> str:
        context = build_recovery_context(history, self._config.recovery)
        log.info(
            "Restoring session context: entries=%s summary=%s chars=%s",
            context.entries_included,
            context.has_summary,
            len(context.context_prompt),
        )
        return build_recovery_prompt(text, context)

    async def _stream_response(
        self,
        prompt: str,
        resume_id: Optional[str],
        cycle: _ResponseCycle,
        cancel_token: CancellationToken,
        log: Log,
    ) -> None:
        request = NarrativeRequest(
            system_prompt=build_gm_system_prompt(self._store.get_state()),
            prompt=prompt,
            tools=self._tool_callbacks(log),
            cancel_token=cancel_token,
            resume_session_id=resume_id,
            cwd=self._config.project_dir,
        )
        async for event in self._engine.stream(request):
            if cancel_token.cancelled:
                break
            if event.kind == "session_started":
                if event.session_id and event.session_id != self._store.get_state().agent_session_id:
                    await self._store.update_agent_session_id(event.session_id)
            elif event.kind == "text":
                if event.text:
                    cycle.parts.append(event.text)
                    self._send(protocol.gm_response_chunk(cycle.message_id, event.text), log)
            elif event.kind == "tool_use":
                log.debug("Tool use detected: %s", event.tool_name)
                self._send(
                    protocol.tool_status("active", protocol.tool_description(event.tool_name or "")),
                    log,
                )

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------

    def _tool_callbacks(self, log: Log) -> GMToolCallbacks:
        async def set_theme(
            mood: str,
            genre: str,
            region: str,
            image_prompt: str | None = None,
            force_generate: bool = False,
        ) -> None:
            await self.handle_set_theme(mood, genre, region, image_prompt, force_generate, log=log)

        async def set_xp_style(xp_style: str) -> None:
            await self.handle_set_xp_style(xp_style, log=log)

        return GMToolCallbacks(set_theme=set_theme, set_xp_style=set_xp_style, mechanics=self._mechanics)

    async def handle_set_theme(
        self,
        mood: str,
        genre: str,
        region: str,
        image_prompt: str | None = None,
        force_generate: bool = False,
        log: Log | None = None,
    ) -> bool:
        """Apply a theme change; returns False when it was debounced."""
        log = log or self._logger
        if mood not in THEME_MOODS:
            raise ValueError(f"Invalid mood: {mood!r}")
        if genre not in GENRES:
            raise ValueError(f"Invalid genre: {genre!r}")
        if region not in REGIONS:
            raise ValueError(f"Invalid region: {region!r}")

        now = self._clock()
        last = self._last_theme
        if last is not None and last[0] == mood and now - last[1] < self._config.theme_debounce_seconds:
            log.debug("Debouncing duplicate theme change: mood=%s", mood)
            return False

        background_url: str | None = None
        if self._background_images is not None:
            try:
                result = await self._background_images.get_background_image(
                    mood,
                    genre,
                    region,
                    force_generate=force_generate,
                    image_prompt=image_prompt,
                )
                background_url = result.url
                log.debug("Background image retrieved: source=%s url=%s", result.source, background_url)
            except Exception as exc:
                log.error("Failed to get background image: %s", exc)

        await self._store.update_theme(mood, genre, region, background_url)
        self._last_theme = (mood, now)
        self._send(protocol.theme_change(mood, genre, region, background_url), log)
        return True

    async def handle_set_xp_style(self, xp_style: str, log: Log | None = None) -> None:
        log = log or self._logger
        if xp_style not in XP_STYLES:
            raise ValueError(f"Invalid XP style: {xp_style!r}")
        await self._store.update_xp_style(xp_style)
        log.info("XP style preference saved: %s", xp_style)

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    def should_compact(self) -> bool:
        if not self._initialized or self._compactor is None:
            return False
        return self._compactor.should_compact(self._store.get_history())

    async def compact_history(self, log: Log | None = None) -> CompactionResult:
        log = log or self._logger
        if not self._initialized or self._compactor is None:
            raise SessionNotInitializedError("Session is not initialized")

        snapshot: NarrativeHistory = self._store.get_history()
        result = await self._compactor.compact(snapshot)
        if not result.success:
            log.info("History compaction skipped: %s", result.error)
            return result

        current: NarrativeHistory = self._store.get_history()
        appended = current.entries[len(snapshot.entries):]
        replacement = NarrativeHistory(
            entries=tuple(result.retained_entries) + tuple(appended),
            summary=result.summary,
        )
        try:
            await self._store.replace_history(replacement)
        except Exception as exc:
            log.error("Failed to commit compacted history: %s", exc)
            if result.archive_path:
                self._compactor.discard_archive(result.archive_path)
            return CompactionResult(
                success=False,
                error=f"History commit failed: {exc}",
                error_code=COMMIT_FAILED,
                retryable=True,
            )

        log.info(
            "History compacted: archived=%s retained=%s appended_during=%s archive=%s",
            result.entries_archived,
            len(result.retained_entries),
            len(appended),
            result.archive_path,
        )
        return result

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_state(self) -> AdventureState:
        return self._store.get_state()

    def get_history(self) -> NarrativeHistory:
        return self._store.get_history()

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    def _adventure_id(self) -> str | None:
        if not self._initialized:
            return None
        return self._store.get_state().id

    def _send(self, message: dict[str, Any], log: Log) -> None:
        try:
            self._sink.send(message)
        except Exception as exc:
            log.warning("Failed to send %s message: %s", message.get("type"), exc)
