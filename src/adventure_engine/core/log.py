from __future__ import annotations

import itertools
import logging
import time

_request_counter = itertools.count(1)


class ContextAdapter(logging.LoggerAdapter):
    """Prefix records with the bound correlation fields."""

    def process(self, msg, kwargs):
        fields = " ".join(f"{key}={value}" for key, value in self.extra.items() if value is not None)
        if fields:
            msg = f"[{fields}] {msg}"
        return msg, kwargs


def request_logger(
    conn_id: str,
    adventure_id: str | None = None,
    base: logging.Logger | None = None,
) -> tuple[ContextAdapter, str]:
    req_id = f"req_{conn_id}_{next(_request_counter)}_{int(time.time() * 1000)}"
    log = ContextAdapter(
        base or logging.getLogger("adventure_engine"),
        {"req_id": req_id, "conn_id": conn_id, "adventure_id": adventure_id},
    )
    return log, req_id
