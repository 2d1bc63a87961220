from __future__ import annotations

ENGINE_ERROR_CODES = (
    "rate_limit",
    "server_error",
    "authentication_failed",
    "billing_error",
    "invalid_request",
    "unknown",
)


class SessionNotInitializedError(RuntimeError):
    """Raised when a session is used before ``initialize()`` succeeded."""


class StoreNotLoadedError(RuntimeError):
    """Raised when the history store is used before ``create()`` or ``load()``."""


class NarrativeEngineError(Exception):
    def __init__(self, code: str, message: str | None = None):
        if code not in ENGINE_ERROR_CODES:
            code = "unknown"
        self.code = code
        super().__init__(message or f"Narrative engine error: {code}")


class ProcessingTimeoutError(Exception):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Input processing timed out after {timeout_seconds:g}s")


class ArchiveCollisionError(FileExistsError):
    """An archive file for the same second already exists."""
