"""Deterministic narrative engine used in mock mode and tests."""

from __future__ import annotations

import asyncio
import time
from typing import AsyncIterator

from .errors import NarrativeEngineError
from .ports import NarrativeEvent, NarrativeRequest

THEME_TRIGGERS: tuple[tuple[tuple[str, ...], str, str, str], ...] = (
    (("dark forest", "ominous", "danger", "threatening", "menacing"), "ominous", "high-fantasy", "forest"),
    (("village", "tavern", "rest", "inn", "peaceful", "safe"), "calm", "high-fantasy", "village"),
    (("battle", "combat", "fight", "attack", "enemy", "sword"), "tense", "high-fantasy", "forest"),
    (("ruins", "ancient", "mystery", "discover", "explore", "hidden"), "mysterious", "high-fantasy", "ruins"),
    (("victory", "win", "triumph", "celebrate", "success"), "triumphant", "high-fantasy", "castle"),
)

LOOK_AROUND_RESPONSE = (
    "You find yourself in a clearing ringed by old oak trees. Sunlight filters through the leaves "
    "and dapples the mossy ground.\n\n"
    "To the north a narrow path disappears into darker forest. To the east you hear running water. "
    "To the south the trees thin out toward what might be a small village.\n\n"
    "A weathered stone marker stands at the center of the clearing, its surface carved with strange symbols."
)

STORY_RESPONSE = (
    "Long before the kingdoms rose, magic ran through this land like rivers of light, and the "
    "mountains kept secrets only the boldest dared to seek.\n\n"
    "The clearing you stand in is one of those secrets. The stone marker is an anchor, set here by "
    "the first druids to keep the veil between worlds from tearing.\n\n"
    "Its symbols tell of guardians and gate-keepers, of battles fought beyond mortal sight, and of a "
    "promise made by beings whose names only the stones remember.\n\n"
    "The air grows heavy. You could study the stone, follow one of the paths, or simply wait and see "
    "what the forest reveals. Choose carefully, adventurer."
)


def detect_theme(prompt: str) -> tuple[str, str, str] | None:
    lowered = prompt.lower()
    for keywords, mood, genre, region in THEME_TRIGGERS:
        if any(keyword in lowered for keyword in keywords):
            return mood, genre, region
    return None


def mock_response(prompt: str) -> str:
    lowered = prompt.lower()
    if "look" in lowered:
        return LOOK_AROUND_RESPONSE
    if "north" in lowered:
        return (
            "You head north along the winding path. The trees grow denser here, their ancient "
            "branches forming a natural canopy overhead."
        )
    if "inventory" in lowered or "inv" in lowered:
        return (
            "You check your belongings: a worn leather satchel, a small knife, and a crumpled map "
            "that seems mostly useless."
        )
    if "help" in lowered:
        return "You can try commands like 'look around', 'go north', 'inventory', or simply describe what you want to do."
    if "long response" in lowered or "tell me a story" in lowered:
        return STORY_RESPONSE
    return (
        f'The GM acknowledges: "{prompt}". You consider this action carefully. The forest seems to '
        "shift around you in response, though nothing visible changes."
    )


def split_into_chunks(text: str, approx_chunk_size: int = 20) -> list[str]:
    """Split at whitespace once a chunk reaches ``approx_chunk_size`` characters."""
    chunks: list[str] = []
    current = ""
    for char in text:
        current += char
        if len(current) >= approx_chunk_size and char in (" ", "\n"):
            chunks.append(current)
            current = ""
    if current:
        chunks.append(current)
    return chunks


class MockNarrativeEngine:
    """Keyword-driven engine that streams canned prose in small chunks.

    ``fail_with`` makes every stream raise ``NarrativeEngineError`` with that
    code before any text, which is handy for exercising error paths.
    """

    def __init__(self, chunk_delay: float = 0.0, chunk_size: int = 20, fail_with: str | None = None):
        self._chunk_delay = chunk_delay
        self._chunk_size = chunk_size
        self._fail_with = fail_with

    async def stream(self, request: NarrativeRequest) -> AsyncIterator[NarrativeEvent]:
        if self._fail_with is not None:
            raise NarrativeEngineError(self._fail_with, f"Mock engine failure: {self._fail_with}")

        session_id = request.resume_session_id or f"mock-session-{int(time.time() * 1000)}"
        yield NarrativeEvent(kind="session_started", session_id=session_id)

        theme = detect_theme(request.prompt)
        if theme is not None:
            yield NarrativeEvent(kind="tool_use", tool_name="set_theme")
            mood, genre, region = theme
            await request.tools.set_theme(mood, genre, region)

        for chunk in split_into_chunks(mock_response(request.prompt), self._chunk_size):
            if request.cancel_token.cancelled:
                return
            if self._chunk_delay:
                await asyncio.sleep(self._chunk_delay)
            yield NarrativeEvent(kind="text", text=chunk)
