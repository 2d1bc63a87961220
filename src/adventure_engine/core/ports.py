from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Literal, Optional, Protocol

from .types import BackgroundImageResult


class CancellationToken:
    """Cooperative cancellation flag shared between a session and an engine stream."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason


ThemeHandler = Callable[..., Awaitable[None]]
XpStyleHandler = Callable[[str], Awaitable[None]]


@dataclass
class GMToolCallbacks:
    """Named side-effect handlers the narrative engine may invoke while generating.

    ``set_theme(mood, genre, region, image_prompt=None, force_generate=False)``
    and ``set_xp_style(xp_style)`` are owned by the session. ``mechanics`` is
    passed through untouched for dice, combat, NPC and panel tools.
    """

    set_theme: ThemeHandler
    set_xp_style: XpStyleHandler
    mechanics: Any = None


@dataclass
class NarrativeRequest:
    system_prompt: str
    prompt: str
    tools: GMToolCallbacks
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    resume_session_id: Optional[str] = None
    cwd: Optional[str] = None


@dataclass(frozen=True)
class NarrativeEvent:
    kind: Literal["session_started", "text", "tool_use"]
    text: str = ""
    session_id: Optional[str] = None
    tool_name: Optional[str] = None


class NarrativeEnginePort(Protocol):
    def stream(self, request: NarrativeRequest) -> AsyncIterator[NarrativeEvent]:
        ...


class MessageSink(Protocol):
    def send(self, message: dict[str, Any]) -> None:
        ...


class BackgroundImagePort(Protocol):
    async def get_background_image(
        self,
        mood: str,
        genre: str,
        region: str,
        force_generate: bool = False,
        image_prompt: str | None = None,
    ) -> BackgroundImageResult:
        ...


class TextCompletionPort(Protocol):
    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str | None:
        ...
