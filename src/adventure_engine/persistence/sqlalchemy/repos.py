from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .models import Adventure, HistoryEntry


class AdventureRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, adventure_id: str) -> Adventure | None:
        return self.session.get(Adventure, adventure_id)

    def create(self, adventure_id: str, session_token: str, state_json: str = "{}") -> Adventure:
        row = Adventure(id=adventure_id, session_token=session_token, state_json=state_json)
        self.session.add(row)
        self.session.flush()
        return row

    def apply_update(self, adventure_id: str, values: dict[str, object]) -> bool:
        update_values = dict(values)
        update_values["updated_at"] = datetime.now(timezone.utc).replace(tzinfo=None)
        stmt = update(Adventure).where(Adventure.id == adventure_id).values(**update_values)
        result = self.session.execute(stmt)
        return result.rowcount == 1


class HistoryEntryRepo:
    def __init__(self, session: Session):
        self.session = session

    def add(self, adventure_id: str, entry_id: str, timestamp: str, kind: str, content: str) -> HistoryEntry:
        row = HistoryEntry(
            adventure_id=adventure_id,
            entry_id=entry_id,
            timestamp=timestamp,
            kind=kind,
            content=content,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def add_many(self, adventure_id: str, rows: Iterable[tuple[str, str, str, str]]) -> int:
        count = 0
        for entry_id, timestamp, kind, content in rows:
            self.session.add(
                HistoryEntry(
                    adventure_id=adventure_id,
                    entry_id=entry_id,
                    timestamp=timestamp,
                    kind=kind,
                    content=content,
                )
            )
            count += 1
        self.session.flush()
        return count

    def list_for_adventure(self, adventure_id: str) -> list[HistoryEntry]:
        stmt = (
            select(HistoryEntry)
            .where(HistoryEntry.adventure_id == adventure_id)
            .order_by(HistoryEntry.seq.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def delete_for_adventure(self, adventure_id: str) -> int:
        stmt = delete(HistoryEntry).where(HistoryEntry.adventure_id == adventure_id)
        return self.session.execute(stmt).rowcount or 0
