from __future__ import annotations

import asyncio

import pytest

from adventure_engine.core.errors import NarrativeEngineError
from adventure_engine.core.mock_engine import MockNarrativeEngine, detect_theme, split_into_chunks
from adventure_engine.core.ports import GMToolCallbacks, NarrativeRequest


def make_request(prompt: str, calls: list) -> NarrativeRequest:
    async def set_theme(mood, genre, region, image_prompt=None, force_generate=False):
        calls.append((mood, genre, region))

    async def set_xp_style(xp_style):
        calls.append(("xp", xp_style))

    return NarrativeRequest(
        system_prompt="",
        prompt=prompt,
        tools=GMToolCallbacks(set_theme=set_theme, set_xp_style=set_xp_style),
    )


def test_split_into_chunks_breaks_on_whitespace():
    text = "The quick brown fox jumps over the lazy dog near the riverbank."
    chunks = split_into_chunks(text, 20)
    assert "".join(chunks) == text
    assert all(len(chunk) >= 20 for chunk in chunks[:-1])
    assert all(chunk.endswith(" ") for chunk in chunks[:-1])


def test_detect_theme_keywords():
    assert detect_theme("We explore the ancient ruins") == ("mysterious", "high-fantasy", "ruins")
    assert detect_theme("Victory is ours!") == ("triumphant", "high-fantasy", "castle")
    assert detect_theme("hello there") is None


def test_stream_emits_session_tool_and_text():
    async def run_test():
        calls = []
        events = [e async for e in MockNarrativeEngine().stream(make_request("go north into the dark forest", calls))]

        assert events[0].kind == "session_started"
        assert events[1].kind == "tool_use"
        assert events[1].tool_name == "set_theme"
        assert calls == [("ominous", "high-fantasy", "forest")]
        text = "".join(e.text for e in events if e.kind == "text")
        assert text.startswith("You head north along the winding path.")

    asyncio.run(run_test())


def test_stream_stops_when_cancelled():
    async def run_test():
        request = make_request("tell me a story", [])
        request.cancel_token.cancel("test")
        events = [e async for e in MockNarrativeEngine().stream(request)]
        assert [e.kind for e in events] == ["session_started"]

    asyncio.run(run_test())


def test_stream_failure_raises_engine_error():
    async def run_test():
        with pytest.raises(NarrativeEngineError) as excinfo:
            async for _event in MockNarrativeEngine(fail_with="server_error").stream(make_request("look", [])):
                pass
        assert excinfo.value.code == "server_error"

    asyncio.run(run_test())
