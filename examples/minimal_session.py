from __future__ import annotations

import asyncio
import json
import tempfile

from adventure_engine.config import configure_logging, load_config
from adventure_engine.core.log import request_logger
from adventure_engine.core.session import GameSession
from adventure_engine.persistence.sqlalchemy import (
    SQLAlchemyHistoryStore,
    build_engine,
    build_session_factory,
    create_schema,
)


class PrintSink:
    def send(self, message):
        if message["type"] == "gm_response_chunk":
            print(message["payload"]["text"], end="", flush=True)
        elif message["type"] == "gm_response_end":
            print()
        elif message["type"] != "gm_response_start":
            print(json.dumps(message))


async def main() -> None:
    with tempfile.TemporaryDirectory() as workdir:
        config = load_config(
            {
                "PROJECT_DIR": workdir,
                "ADVENTURES_DIR": workdir,
                "DATABASE_URL": "sqlite+pysqlite:///:memory:",
                "MOCK_SDK": "true",
                "COMPACTION_CHAR_THRESHOLD": "1000",
                "RETAINED_ENTRY_COUNT": "2",
                "LOG_LEVEL": "WARNING",
            }
        )
        configure_logging(config.log_level)

        db = build_engine(config.database_url)
        create_schema(db)
        store = SQLAlchemyHistoryStore(build_session_factory(db), config.adventures_dir)
        state = await store.create("demo")

        session = GameSession(
            PrintSink(),
            store,
            config=config.session,
            compaction=config.compaction,
        )
        result = await session.initialize(state.id, state.session_token)
        print("initialize:", result.success)

        for text in ("look around", "explore the ancient ruins", "tell me a story", "check inventory"):
            log, _req_id = request_logger("demo-conn", state.id)
            await session.handle_input(text, log=log)

        print("should_compact:", session.should_compact())
        compaction = await session.compact_history()
        print("archived:", compaction.entries_archived, "->", compaction.archive_path)
        summary = session.get_history().summary
        print("summary:", summary.text if summary else None)


if __name__ == "__main__":
    asyncio.run(main())
