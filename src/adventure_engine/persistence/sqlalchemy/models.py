from __future__ import annotations

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


EntrySeqType = BigInteger().with_variant(Integer, "sqlite")


class Adventure(TimestampMixin, Base):
    __tablename__ = "ae_adventures"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    session_token: Mapped[str] = mapped_column(String(64), nullable=False)
    agent_session_id: Mapped[str | None] = mapped_column(String(256), nullable=True)

    state_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    summary_json: Mapped[str | None] = mapped_column(Text, nullable=True)


class HistoryEntry(Base):
    __tablename__ = "ae_history_entries"

    seq: Mapped[int] = mapped_column(EntrySeqType, primary_key=True, autoincrement=True)
    adventure_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("ae_adventures.id", ondelete="CASCADE"), nullable=False
    )
    entry_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[str] = mapped_column(String(40), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


Index("ix_ae_history_adventure_seq", HistoryEntry.adventure_id, HistoryEntry.seq)
