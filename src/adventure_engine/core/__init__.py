from .errors import (
    ArchiveCollisionError,
    NarrativeEngineError,
    ProcessingTimeoutError,
    SessionNotInitializedError,
    StoreNotLoadedError,
)
from .history_compactor import HistoryCompactor
from .history_context import build_recovery_context, build_recovery_prompt
from .mock_engine import MockNarrativeEngine
from .ports import (
    BackgroundImagePort,
    CancellationToken,
    GMToolCallbacks,
    MessageSink,
    NarrativeEnginePort,
    NarrativeEvent,
    NarrativeRequest,
    TextCompletionPort,
)
from .session import GameSession
from .types import (
    AdventureState,
    CompactionResult,
    DateRange,
    ErrorDetails,
    HistorySummary,
    InitializeResult,
    NarrativeEntry,
    NarrativeHistory,
    RecoveryContext,
    StateLoadError,
    StateLoadResult,
    ThemeState,
)

__all__ = [
    "GameSession",
    "HistoryCompactor",
    "MockNarrativeEngine",
    "build_recovery_context",
    "build_recovery_prompt",
    "BackgroundImagePort",
    "CancellationToken",
    "GMToolCallbacks",
    "MessageSink",
    "NarrativeEnginePort",
    "NarrativeEvent",
    "NarrativeRequest",
    "TextCompletionPort",
    "ArchiveCollisionError",
    "NarrativeEngineError",
    "ProcessingTimeoutError",
    "SessionNotInitializedError",
    "StoreNotLoadedError",
    "AdventureState",
    "CompactionResult",
    "DateRange",
    "ErrorDetails",
    "HistorySummary",
    "InitializeResult",
    "NarrativeEntry",
    "NarrativeHistory",
    "RecoveryContext",
    "StateLoadError",
    "StateLoadResult",
    "ThemeState",
]
