from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        lines = ["Environment validation failed:"] + [f"  - {e}" for e in self.errors]
        super().__init__("\n".join(lines))


@dataclass(frozen=True)
class CompactionConfig:
    char_threshold: int = 100_000
    retained_count: int = 20
    target_retained_char_count: int = 25_000
    model: str = "claude-3-5-haiku-latest"
    mock: bool = False
    summary_max_tokens: int = 1024


@dataclass(frozen=True)
class RecoveryContextOptions:
    max_entries: int = 20
    max_chars: int = 12_000
    include_summary: bool = True


@dataclass(frozen=True)
class SessionConfig:
    project_dir: Optional[str] = None
    input_timeout_seconds: float = 60.0
    theme_debounce_seconds: float = 1.0
    max_input_length: int = 2000
    mock_engine: bool = False
    recovery: RecoveryContextOptions = field(default_factory=RecoveryContextOptions)


@dataclass(frozen=True)
class EngineConfig:
    adventures_dir: str = "./adventures"
    database_url: str = "sqlite+pysqlite:///./adventures/adventures.db"
    log_level: str = "INFO"
    session: SessionConfig = field(default_factory=SessionConfig)
    compaction: CompactionConfig = field(default_factory=CompactionConfig)


def _parse_int(name: str, raw: str | None, default: int, minimum: int, errors: list[str]) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw, 10)
    except ValueError:
        errors.append(f'Invalid {name}: "{raw}". Must be an integer >= {minimum}.')
        return default
    if value < minimum:
        errors.append(f'Invalid {name}: "{raw}". Must be an integer >= {minimum}.')
        return default
    return value


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(environ: Mapping[str, str] | None = None) -> EngineConfig:
    """Build an :class:`EngineConfig` from environment variables.

    All invalid values are collected and reported together in one
    :class:`ConfigError`.
    """
    env = os.environ if environ is None else environ
    errors: list[str] = []

    timeout_ms = _parse_int("INPUT_TIMEOUT", env.get("INPUT_TIMEOUT"), 60_000, 1000, errors)
    char_threshold = _parse_int(
        "COMPACTION_CHAR_THRESHOLD", env.get("COMPACTION_CHAR_THRESHOLD"), 100_000, 1000, errors
    )
    retained_count = _parse_int("RETAINED_ENTRY_COUNT", env.get("RETAINED_ENTRY_COUNT"), 20, 0, errors)
    retained_chars = _parse_int("RETAINED_CHAR_TARGET", env.get("RETAINED_CHAR_TARGET"), 25_000, 0, errors)

    log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    if log_level == "WARN":
        log_level = "WARNING"
    if log_level not in LOG_LEVELS:
        errors.append(f'Invalid LOG_LEVEL: "{env.get("LOG_LEVEL")}". Must be one of {", ".join(LOG_LEVELS)}.')
        log_level = "INFO"

    if errors:
        raise ConfigError(errors)

    mock = _parse_bool(env.get("MOCK_SDK"), False)
    adventures_dir = env.get("ADVENTURES_DIR") or "./adventures"
    database_url = env.get("DATABASE_URL") or f"sqlite+pysqlite:///{os.path.join(adventures_dir, 'adventures.db')}"

    return EngineConfig(
        adventures_dir=adventures_dir,
        database_url=database_url,
        log_level=log_level,
        session=SessionConfig(
            project_dir=env.get("PROJECT_DIR") or None,
            input_timeout_seconds=timeout_ms / 1000.0,
            mock_engine=mock,
        ),
        compaction=CompactionConfig(
            char_threshold=char_threshold,
            retained_count=retained_count,
            target_retained_char_count=retained_chars,
            model=env.get("COMPACTION_SUMMARY_MODEL") or "claude-3-5-haiku-latest",
            mock=mock,
        ),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
