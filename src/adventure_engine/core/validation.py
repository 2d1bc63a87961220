from __future__ import annotations

import re

from .types import SanitizationResult

MAX_INPUT_LENGTH = 2000
DEFAULT_MAX_STATE_LENGTH = 500

_PATTERNS: dict[str, re.Pattern[str]] = {
    "instruction_override": re.compile(
        r"ignore\s+(all\s+)?(previous|prior|above)\s+(instructions?|prompts?|rules?)",
        re.IGNORECASE,
    ),
    "prompt_extraction": re.compile(
        r"\b(reveal|show|display|output|print|tell\s+me)\s+(your\s+)?(the\s+)?(system\s+)?"
        r"(prompt|instructions?|rules?)\b",
        re.IGNORECASE,
    ),
    "role_manipulation": re.compile(
        r"\b(you\s+are\s+now|act\s+as|pretend\s+to\s+be)\b.*\b(assistant|ai|claude|gpt|chatgpt|system)\b",
        re.IGNORECASE | re.DOTALL,
    ),
}

_ADVENTURE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def detect_injection_patterns(text: str, max_length: int = MAX_INPUT_LENGTH) -> list[str]:
    flags: list[str] = []
    if len(text) > max_length:
        flags.append("excessive_length")
    for flag, pattern in _PATTERNS.items():
        if pattern.search(text):
            flags.append(flag)
    return flags


def sanitize_player_input(text: str, max_length: int = MAX_INPUT_LENGTH) -> SanitizationResult:
    """Flag suspicious player input; block only over-length and role manipulation."""
    flags = detect_injection_patterns(text, max_length=max_length)
    if "excessive_length" in flags:
        return SanitizationResult(
            sanitized=text[:max_length],
            flags=flags,
            blocked=True,
            block_reason="Input exceeds maximum length",
        )
    if "role_manipulation" in flags:
        return SanitizationResult(
            sanitized=text,
            flags=flags,
            blocked=True,
            block_reason="Input attempts to manipulate AI behavior",
        )
    return SanitizationResult(sanitized=text, flags=flags)


def sanitize_state_value(value: str, max_length: int = DEFAULT_MAX_STATE_LENGTH) -> str:
    if len(value) > max_length:
        return value[:max_length] + "..."
    return value


def is_valid_adventure_id(adventure_id: str) -> bool:
    if not adventure_id or adventure_id in (".", ".."):
        return False
    return bool(_ADVENTURE_ID_RE.match(adventure_id))
