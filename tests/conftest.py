from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import text

from adventure_engine.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from adventure_engine.persistence.sqlalchemy.store import SQLAlchemyHistoryStore
from adventure_engine.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


class RecordingSink:
    def __init__(self):
        self.messages: list[dict] = []

    def send(self, message):
        self.messages.append(message)

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.messages if m["type"] == message_type]

    @property
    def types(self) -> list[str]:
        return [m["type"] for m in self.messages]


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    sf = build_session_factory(engine)
    with sf() as session:
        session.execute(text("PRAGMA foreign_keys=ON"))
        session.commit()
    return sf


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


@pytest.fixture()
def adventures_dir(tmp_path):
    path = tmp_path / "adventures"
    path.mkdir()
    return path


@pytest.fixture()
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture()
def store(session_factory, adventures_dir):
    return SQLAlchemyHistoryStore(session_factory, adventures_dir)


@pytest.fixture()
def seed_adventure(store):
    state = asyncio.run(store.create("adv-1"))
    return {"adventure_id": state.id, "session_token": state.session_token}


@pytest.fixture()
def sink():
    return RecordingSink()
