from __future__ import annotations

import logging
from typing import Any, Optional

from .errors import NarrativeEngineError, ProcessingTimeoutError
from .types import ErrorDetails

logger = logging.getLogger(__name__)

_GENERIC_USER_MESSAGE = "Something went wrong. Please try again."

_ENGINE_ERROR_MAP: dict[str, tuple[str, str, bool, str, str]] = {
    # code: (protocol code, message, retryable, user message, technical details)
    "rate_limit": (
        "RATE_LIMIT",
        "Rate limit exceeded",
        False,
        "The game master is busy. Please try again later.",
        "Narrative engine rate limit exceeded",
    ),
    "server_error": (
        "GM_ERROR",
        "AI service overloaded",
        False,
        "The game master is thinking deeply. Please wait.",
        "Narrative engine server error (500-level)",
    ),
    "authentication_failed": (
        "AUTH_ERROR",
        "Authentication failed",
        False,
        _GENERIC_USER_MESSAGE,
        "Narrative engine authentication failed - check API key",
    ),
    "billing_error": (
        "AUTH_ERROR",
        "Billing error",
        False,
        _GENERIC_USER_MESSAGE,
        "Narrative engine billing error - check account status",
    ),
    "invalid_request": (
        "GM_ERROR",
        "Invalid request",
        False,
        _GENERIC_USER_MESSAGE,
        "Invalid request sent to narrative engine",
    ),
    "unknown": (
        "GM_ERROR",
        "Unknown error",
        True,
        _GENERIC_USER_MESSAGE,
        "Unknown error from narrative engine",
    ),
}

_SESSION_RECOVERY_MARKERS = (
    "session not found",
    "invalid session",
    "session expired",
    "conversation not found",
    "resume failed",
    "no conversation",
    "process exited with code",
)


def map_engine_error(code: str, message_content: str | None = None) -> ErrorDetails:
    protocol_code, message, retryable, user_message, technical = _ENGINE_ERROR_MAP.get(
        code, _ENGINE_ERROR_MAP["unknown"]
    )
    if code not in _ENGINE_ERROR_MAP or code == "unknown":
        if message_content:
            technical = f"Narrative engine error: {message_content}"
    return ErrorDetails(
        code=protocol_code,
        message=message,
        retryable=retryable,
        user_message=user_message,
        technical_details=technical,
    )


def map_state_error(error_type: str, error_message: str, path: str | None = None) -> ErrorDetails:
    if error_type == "NOT_FOUND":
        return ErrorDetails(
            code="ADVENTURE_NOT_FOUND",
            message=error_message,
            retryable=False,
            user_message="Adventure not found. Please check the adventure ID.",
            technical_details=f"State not found: {error_message}",
        )
    if error_type == "INVALID_TOKEN":
        return ErrorDetails(
            code="INVALID_TOKEN",
            message=error_message,
            retryable=False,
            user_message="Invalid session. Please start a new adventure.",
            technical_details=f"Session token validation failed: {error_message}",
        )
    if error_type == "CORRUPTED":
        where = f" in {path}" if path else ""
        return ErrorDetails(
            code="STATE_CORRUPTED",
            message=error_message,
            retryable=False,
            user_message="Your adventure data appears corrupted. You can start fresh to begin a new adventure.",
            technical_details=f"State corruption detected{where}: {error_message}",
        )
    return ErrorDetails(
        code="GM_ERROR",
        message=error_message,
        retryable=False,
        user_message="The adventure could not be started. Please contact the host.",
        technical_details=f"Environment precondition failed: {error_message}",
    )


def map_generic_error(error: BaseException | object) -> ErrorDetails:
    message = str(error)
    return ErrorDetails(
        code="GM_ERROR",
        message=message,
        retryable=True,
        user_message=_GENERIC_USER_MESSAGE,
        technical_details=f"Unexpected error: {message}",
        original_error=error if isinstance(error, BaseException) else None,
    )


def map_processing_timeout_error(error: ProcessingTimeoutError) -> ErrorDetails:
    return ErrorDetails(
        code="PROCESSING_TIMEOUT",
        message=str(error),
        retryable=True,
        user_message="The game master is taking longer than expected. Your response may still arrive shortly.",
        technical_details=f"Input processing timed out after {error.timeout_seconds:g}s",
        original_error=error,
    )


def map_exception(error: BaseException) -> ErrorDetails:
    if isinstance(error, NarrativeEngineError):
        details = map_engine_error(error.code, str(error))
        details.original_error = error
        return details
    if isinstance(error, ProcessingTimeoutError):
        return map_processing_timeout_error(error)
    return map_generic_error(error)


def is_session_recovery_needed(engine_error_code: Optional[str], error_message: str | None = None) -> bool:
    if engine_error_code == "invalid_request":
        return True
    if error_message:
        msg = error_message.lower()
        return any(marker in msg for marker in _SESSION_RECOVERY_MARKERS)
    return False


def log_error(
    context: str,
    details: ErrorDetails,
    extra: dict[str, Any] | None = None,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> None:
    log = log or logger
    fields = dict(extra or {})
    fields.update(
        error_code=details.code,
        retryable=details.retryable,
        technical_details=details.technical_details,
    )
    log.error(
        "[ERROR] %s :: %s",
        context,
        " ".join(f"{key}={value!r}" for key, value in fields.items()),
        exc_info=details.original_error if isinstance(details.original_error, BaseException) else None,
    )
