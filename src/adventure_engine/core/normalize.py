from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from .types import EntryType, NarrativeEntry


def parse_json_dict(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    data = json.loads(text)
    return data if isinstance(data, dict) else {}


def dump_json(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=True, separators=(",", ":"))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def new_entry(
    entry_type: EntryType,
    content: str,
    *,
    entry_id: str | None = None,
    now: datetime | None = None,
) -> NarrativeEntry:
    return NarrativeEntry(
        id=entry_id or str(uuid.uuid4()),
        timestamp=format_timestamp(now or utc_now()),
        type=entry_type,
        content=content,
    )
