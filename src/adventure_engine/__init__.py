from .config import CompactionConfig, ConfigError, EngineConfig, RecoveryContextOptions, SessionConfig, load_config
from .core.history_compactor import HistoryCompactor
from .core.history_context import build_recovery_context, build_recovery_prompt
from .core.mock_engine import MockNarrativeEngine
from .core.ports import BackgroundImagePort, MessageSink, NarrativeEnginePort, TextCompletionPort
from .core.session import GameSession

__all__ = [
    "GameSession",
    "HistoryCompactor",
    "MockNarrativeEngine",
    "build_recovery_context",
    "build_recovery_prompt",
    "BackgroundImagePort",
    "MessageSink",
    "NarrativeEnginePort",
    "TextCompletionPort",
    "CompactionConfig",
    "ConfigError",
    "EngineConfig",
    "RecoveryContextOptions",
    "SessionConfig",
    "load_config",
]
