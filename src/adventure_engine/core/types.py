from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

EntryType = Literal["player_input", "gm_response"]

THEME_MOODS = ("calm", "tense", "ominous", "triumphant", "mysterious")
GENRES = ("sci-fi", "steampunk", "low-fantasy", "high-fantasy", "horror", "modern", "historical")
REGIONS = ("city", "village", "forest", "desert", "mountain", "ocean", "underground", "castle", "ruins")
XP_STYLES = ("frequent", "milestone", "combat-plus")


@dataclass(frozen=True)
class NarrativeEntry:
    id: str
    timestamp: str
    type: EntryType
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NarrativeEntry":
        return cls(
            id=str(data["id"]),
            timestamp=str(data["timestamp"]),
            type=data["type"],
            content=str(data.get("content") or ""),
        )


@dataclass(frozen=True)
class DateRange:
    from_: str
    to: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.from_, "to": self.to}


@dataclass(frozen=True)
class HistorySummary:
    text: str
    generated_at: str
    model: str
    entries_archived: int
    date_range: DateRange

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "generatedAt": self.generated_at,
            "model": self.model,
            "entriesArchived": self.entries_archived,
            "dateRange": self.date_range.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistorySummary":
        date_range = data.get("dateRange") or {}
        return cls(
            text=str(data.get("text") or ""),
            generated_at=str(data.get("generatedAt") or ""),
            model=str(data.get("model") or ""),
            entries_archived=int(data.get("entriesArchived") or 0),
            date_range=DateRange(
                from_=str(date_range.get("from") or ""),
                to=str(date_range.get("to") or ""),
            ),
        )


@dataclass(frozen=True)
class NarrativeHistory:
    entries: tuple[NarrativeEntry, ...] = ()
    summary: Optional[HistorySummary] = None

    def appended(self, entry: NarrativeEntry) -> "NarrativeHistory":
        return NarrativeHistory(entries=self.entries + (entry,), summary=self.summary)


@dataclass
class ThemeState:
    mood: str = "calm"
    genre: str = "high-fantasy"
    region: str = "village"
    background_url: Optional[str] = None


@dataclass
class AdventureState:
    id: str
    session_token: str
    created_at: str
    last_active_at: str
    agent_session_id: Optional[str] = None
    scene_description: str = "The adventure is just beginning. The world awaits your imagination."
    theme: ThemeState = field(default_factory=ThemeState)
    player_ref: Optional[str] = None
    world_ref: Optional[str] = None
    xp_style: Optional[str] = None


@dataclass
class StateLoadError:
    type: Literal["NOT_FOUND", "INVALID_TOKEN", "CORRUPTED"]
    message: str
    path: Optional[str] = None


@dataclass
class StateLoadResult:
    success: bool
    state: Optional[AdventureState] = None
    history: Optional[NarrativeHistory] = None
    error: Optional[StateLoadError] = None


@dataclass
class ErrorDetails:
    code: str
    message: str
    retryable: bool
    user_message: str
    technical_details: Optional[str] = None
    original_error: Optional[BaseException] = None


@dataclass
class InitializeResult:
    success: bool
    error_type: Optional[str] = None
    error: Optional[str] = None
    details: Optional[ErrorDetails] = None


@dataclass
class CompactionResult:
    success: bool
    entries_archived: int = 0
    retained_entries: tuple[NarrativeEntry, ...] = ()
    archive_path: Optional[str] = None
    summary: Optional[HistorySummary] = None
    summary_error: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False


@dataclass(frozen=True)
class RecoveryContext:
    context_prompt: str
    entries_included: int
    has_summary: bool


@dataclass
class BackgroundImageResult:
    url: Optional[str]
    source: str = "catalog"


@dataclass
class SanitizationResult:
    sanitized: str
    flags: list[str] = field(default_factory=list)
    blocked: bool = False
    block_reason: Optional[str] = None
