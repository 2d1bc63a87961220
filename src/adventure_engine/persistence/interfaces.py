from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Protocol

from ..core.types import AdventureState, NarrativeEntry, NarrativeHistory, StateLoadResult


class AdventureRepo(Protocol):
    def get(self, adventure_id: str): ...
    def create(self, adventure_id: str, session_token: str, state_json: str = "{}"): ...
    def apply_update(self, adventure_id: str, values: dict[str, object]) -> bool: ...


class HistoryEntryRepo(Protocol):
    def add(self, adventure_id: str, entry_id: str, timestamp: str, kind: str, content: str): ...
    def add_many(self, adventure_id: str, rows: Iterable[tuple[str, str, str, str]]) -> int: ...
    def list_for_adventure(self, adventure_id: str): ...
    def delete_for_adventure(self, adventure_id: str) -> int: ...


class UnitOfWork(Protocol):
    adventures: AdventureRepo
    entries: HistoryEntryRepo

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


class HistoryStore(Protocol):
    """Durable per-adventure state and transcript.

    ``create``/``load`` bind the store to one adventure; every other method
    raises ``StoreNotLoadedError`` before that.
    """

    async def create(self, adventure_id: Optional[str] = None) -> AdventureState: ...
    async def load(self, adventure_id: str, session_token: str) -> StateLoadResult: ...
    async def save(self) -> None: ...
    async def append_history(self, entry: NarrativeEntry) -> None: ...
    async def replace_history(self, history: NarrativeHistory) -> None: ...
    async def update_agent_session_id(self, agent_session_id: Optional[str]) -> None: ...
    async def update_scene(self, description: str) -> None: ...
    async def update_theme(
        self,
        mood: str,
        genre: str,
        region: str,
        background_url: Optional[str],
    ) -> None: ...
    async def update_xp_style(self, xp_style: str) -> None: ...
    def get_adventure_dir(self) -> Path: ...
    def get_state(self) -> AdventureState: ...
    def get_history(self) -> NarrativeHistory: ...
