"""Server-to-client protocol message builders.

Messages are plain dicts of the shape ``{"type": ..., "payload": {...}}`` so a
transport can serialize them with ``json.dumps`` unchanged.
"""

from __future__ import annotations

from typing import Any, Optional

from .types import ErrorDetails


def gm_response_start(message_id: str) -> dict[str, Any]:
    return {"type": "gm_response_start", "payload": {"messageId": message_id}}


def gm_response_chunk(message_id: str, text: str) -> dict[str, Any]:
    return {"type": "gm_response_chunk", "payload": {"messageId": message_id, "text": text}}


def gm_response_end(message_id: str) -> dict[str, Any]:
    return {"type": "gm_response_end", "payload": {"messageId": message_id}}


def theme_change(mood: str, genre: str, region: str, background_url: Optional[str]) -> dict[str, Any]:
    return {
        "type": "theme_change",
        "payload": {
            "mood": mood,
            "genre": genre,
            "region": region,
            "backgroundUrl": background_url,
        },
    }


def tool_status(state: str, description: str) -> dict[str, Any]:
    return {"type": "tool_status", "payload": {"state": state, "description": description}}


def error(details: ErrorDetails) -> dict[str, Any]:
    # Technical details stay in the logs.
    return {
        "type": "error",
        "payload": {
            "code": details.code,
            "message": details.user_message,
            "retryable": details.retryable,
        },
    }


def tool_description(tool_name: str) -> str:
    name = tool_name.rsplit("__", 1)[-1]
    if name == "set_theme":
        return "Setting the scene..."
    if name == "set_xp_style":
        return "Adjusting preferences..."
    if name in ("set_character", "list_characters"):
        return "Checking characters..."
    if name in ("set_world", "list_worlds"):
        return "Checking worlds..."
    if name == "roll_dice" or name in ("Bash", "Skill"):
        return "Consulting the dice..."
    if name in ("manage_combat", "apply_damage"):
        return "Resolving combat..."
    if name in ("create_npc", "update_npc", "remove_npc", "get_character"):
        return "Consulting records..."
    if name in ("create_panel", "update_panel", "dismiss_panel"):
        return "Updating displays..."
    if name == "Read":
        return "Consulting records..."
    if name in ("Write", "Edit"):
        return "Updating world state..."
    if name in ("Glob", "Grep"):
        return "Searching records..."
    return "Thinking..."
