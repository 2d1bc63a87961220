from __future__ import annotations

import json
import logging
import secrets
import uuid
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from ...core.errors import StoreNotLoadedError
from ...core.normalize import dump_json, format_timestamp, parse_json_dict, utc_now
from ...core.types import (
    AdventureState,
    HistorySummary,
    NarrativeEntry,
    NarrativeHistory,
    StateLoadError,
    StateLoadResult,
    ThemeState,
)
from ...core.validation import is_valid_adventure_id
from .uow import SQLAlchemyUnitOfWork

logger = logging.getLogger(__name__)

_ENTRY_KINDS = ("player_input", "gm_response")


def state_to_dict(state: AdventureState) -> dict[str, Any]:
    return {
        "created_at": state.created_at,
        "last_active_at": state.last_active_at,
        "scene_description": state.scene_description,
        "theme": {
            "mood": state.theme.mood,
            "genre": state.theme.genre,
            "region": state.theme.region,
            "background_url": state.theme.background_url,
        },
        "player_ref": state.player_ref,
        "world_ref": state.world_ref,
        "xp_style": state.xp_style,
    }


def state_from_dict(
    adventure_id: str,
    session_token: str,
    agent_session_id: Optional[str],
    data: dict[str, Any],
) -> AdventureState:
    theme = data.get("theme") or {}
    if not isinstance(theme, dict):
        raise ValueError("theme must be an object")
    defaults = ThemeState()
    return AdventureState(
        id=adventure_id,
        session_token=session_token,
        agent_session_id=agent_session_id,
        created_at=str(data["created_at"]),
        last_active_at=str(data.get("last_active_at") or data["created_at"]),
        scene_description=str(data.get("scene_description") or AdventureState.scene_description),
        theme=ThemeState(
            mood=str(theme.get("mood") or defaults.mood),
            genre=str(theme.get("genre") or defaults.genre),
            region=str(theme.get("region") or defaults.region),
            background_url=theme.get("background_url"),
        ),
        player_ref=data.get("player_ref"),
        world_ref=data.get("world_ref"),
        xp_style=data.get("xp_style"),
    )


class SQLAlchemyHistoryStore:
    """History store for one adventure backed by a SQLAlchemy database.

    Adventure metadata and the transcript live in the database; the
    per-adventure directory under ``adventures_dir`` holds files such as
    compaction archives.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        adventures_dir: str | Path,
        clock: Callable[[], datetime] | None = None,
    ):
        self._session_factory = session_factory
        self._adventures_dir = Path(adventures_dir)
        self._clock = clock or utc_now
        self._state: AdventureState | None = None
        self._history: NarrativeHistory | None = None

    def _uow(self) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(self._session_factory)

    def _require(self) -> tuple[AdventureState, NarrativeHistory]:
        if self._state is None or self._history is None:
            raise StoreNotLoadedError("History store used before create() or load()")
        return self._state, self._history

    def _dir_for(self, adventure_id: str) -> Path:
        return self._adventures_dir / adventure_id

    async def create(self, adventure_id: Optional[str] = None) -> AdventureState:
        adventure_id = adventure_id or str(uuid.uuid4())
        if not is_valid_adventure_id(adventure_id):
            raise ValueError(f"Invalid adventure id: {adventure_id!r}")

        now = format_timestamp(self._clock())
        state = AdventureState(
            id=adventure_id,
            session_token=secrets.token_hex(16),
            created_at=now,
            last_active_at=now,
        )
        self._dir_for(adventure_id).mkdir(parents=True, exist_ok=True, mode=0o700)
        with self._uow() as uow:
            uow.adventures.create(adventure_id, state.session_token, dump_json(state_to_dict(state)))
            uow.commit()

        self._state = state
        self._history = NarrativeHistory()
        logger.info("Created adventure %s", adventure_id)
        return state

    async def load(self, adventure_id: str, session_token: str) -> StateLoadResult:
        if not is_valid_adventure_id(adventure_id):
            return StateLoadResult(
                success=False,
                error=StateLoadError(type="NOT_FOUND", message=f"Invalid adventure id: {adventure_id!r}"),
            )

        location = str(self._dir_for(adventure_id))
        with self._uow() as uow:
            row = uow.adventures.get(adventure_id)
            if row is None:
                return StateLoadResult(
                    success=False,
                    error=StateLoadError(type="NOT_FOUND", message=f"Adventure {adventure_id} does not exist"),
                )
            expected = row.session_token.encode("utf-8")
            if not secrets.compare_digest(expected, (session_token or "").encode("utf-8")):
                return StateLoadResult(
                    success=False,
                    error=StateLoadError(type="INVALID_TOKEN", message="Session token does not match"),
                )

            try:
                state = state_from_dict(
                    row.id,
                    row.session_token,
                    row.agent_session_id,
                    parse_json_dict(row.state_json),
                )
                summary = None
                if row.summary_json:
                    summary = HistorySummary.from_dict(parse_json_dict(row.summary_json))
                entries = []
                for entry_row in uow.entries.list_for_adventure(adventure_id):
                    if entry_row.kind not in _ENTRY_KINDS:
                        raise ValueError(f"Unknown entry type {entry_row.kind!r}")
                    entries.append(
                        NarrativeEntry(
                            id=entry_row.entry_id,
                            timestamp=entry_row.timestamp,
                            type=entry_row.kind,
                            content=entry_row.content,
                        )
                    )
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                logger.error("Adventure %s state is corrupted: %s", adventure_id, exc)
                return StateLoadResult(
                    success=False,
                    error=StateLoadError(type="CORRUPTED", message=str(exc), path=location),
                )

        state.last_active_at = format_timestamp(self._clock())
        history = NarrativeHistory(entries=tuple(entries), summary=summary)
        self._state = state
        self._history = history
        self._dir_for(adventure_id).mkdir(parents=True, exist_ok=True, mode=0o700)
        await self.save()
        logger.info("Loaded adventure %s with %s history entries", adventure_id, len(entries))
        return StateLoadResult(success=True, state=state, history=history)

    async def save(self) -> None:
        state, _history = self._require()
        state.last_active_at = format_timestamp(self._clock())
        with self._uow() as uow:
            uow.adventures.apply_update(
                state.id,
                {
                    "state_json": dump_json(state_to_dict(state)),
                    "agent_session_id": state.agent_session_id,
                },
            )
            uow.commit()

    async def append_history(self, entry: NarrativeEntry) -> None:
        state, history = self._require()
        with self._uow() as uow:
            uow.entries.add(state.id, entry.id, entry.timestamp, entry.type, entry.content)
            uow.commit()
        self._history = history.appended(entry)

    async def replace_history(self, history: NarrativeHistory) -> None:
        """Atomically swap the stored transcript and summary."""
        state, _current = self._require()
        summary_json = dump_json(history.summary.to_dict()) if history.summary is not None else None
        with self._uow() as uow:
            uow.entries.delete_for_adventure(state.id)
            uow.entries.add_many(
                state.id,
                ((e.id, e.timestamp, e.type, e.content) for e in history.entries),
            )
            uow.adventures.apply_update(state.id, {"summary_json": summary_json})
            uow.commit()
        self._history = NarrativeHistory(entries=tuple(history.entries), summary=history.summary)

    async def update_agent_session_id(self, agent_session_id: Optional[str]) -> None:
        state, _history = self._require()
        state.agent_session_id = agent_session_id
        await self.save()

    async def update_scene(self, description: str) -> None:
        state, _history = self._require()
        state.scene_description = description
        await self.save()

    async def update_theme(
        self,
        mood: str,
        genre: str,
        region: str,
        background_url: Optional[str],
    ) -> None:
        state, _history = self._require()
        state.theme = replace(state.theme, mood=mood, genre=genre, region=region, background_url=background_url)
        await self.save()

    async def update_xp_style(self, xp_style: str) -> None:
        state, _history = self._require()
        state.xp_style = xp_style
        await self.save()

    def get_adventure_dir(self) -> Path:
        state, _history = self._require()
        return self._dir_for(state.id)

    def get_state(self) -> AdventureState:
        state, _history = self._require()
        return state

    def get_history(self) -> NarrativeHistory:
        _state, history = self._require()
        return history
