"""Error taxonomy for the data-access layer.

Every failure that leaves the executor is a UserError with a stable code.
Messages are safe to show to end users: they never carry the server host
or port, only namespace/username context supplied by the caller.
"""

import asyncio
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

import httpx


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    SERVER_UNREACHABLE = "SERVER_UNREACHABLE"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    # Router-level
    UNKNOWN_COMMAND = "UNKNOWN_COMMAND"
    INVALID_JSON = "INVALID_JSON"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    COMMAND_ERROR = "COMMAND_ERROR"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_INPUT: "Invalid input provided. Please check your data and try again.",
    ErrorCode.AUTH_FAILED: "Authentication failed. Please check your username and password.",
    ErrorCode.AUTH_EXPIRED: "Your session has expired. Please reconnect to the server.",
    ErrorCode.CONNECTION_TIMEOUT: "Connection timed out. The server may be busy or unreachable.",
    ErrorCode.SERVER_UNREACHABLE: (
        "Cannot reach server. Please verify the server address and that the server is running."
    ),
    ErrorCode.CONNECTION_FAILED: (
        "Connection failed. Please check your network and server settings."
    ),
    ErrorCode.UNKNOWN_ERROR: "An unexpected error occurred.",
    ErrorCode.UNKNOWN_COMMAND: "Unknown command.",
    ErrorCode.INVALID_JSON: "Message is not valid JSON.",
    ErrorCode.INVALID_MESSAGE: "Message must contain a string 'command'.",
    ErrorCode.COMMAND_ERROR: "The command could not be completed.",
}

_AUTH_MARKERS = ("authentication", "unauthorized", "password")


@dataclass
class UserError:
    message: str
    code: ErrorCode
    recoverable: bool
    context: str

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["code"] = self.code.value
        return payload


class InvalidInputError(Exception):
    """Raised by local validation. Converted to a UserError before crossing
    the executor boundary, so no network call is ever made for it."""

    def __init__(self, message: str, context: str = ""):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_user_error(self, context: str | None = None) -> UserError:
        return create_error(
            ErrorCode.INVALID_INPUT, context or self.context, self.message
        )


def is_recoverable(code: ErrorCode) -> bool:
    """Only an expired session needs re-authentication rather than a retry."""
    return code is not ErrorCode.AUTH_EXPIRED


def create_error(
    code: ErrorCode, context: str, message: str | None = None
) -> UserError:
    return UserError(
        message=message or ERROR_MESSAGES[code],
        code=code,
        recoverable=is_recoverable(code),
        context=context,
    )


def classify_status(status_code: int, context: str) -> UserError | None:
    """Map an HTTP status to an error. Returns None for 2xx."""
    if 200 <= status_code < 300:
        return None
    if status_code in (401, 403):
        return create_error(ErrorCode.AUTH_FAILED, context)
    return create_error(
        ErrorCode.CONNECTION_FAILED,
        context,
        f"Server returned status {status_code}",
    )


def classify_exception(exc: BaseException, context: str) -> UserError:
    """Map a transport-level exception to an error.

    Timeouts are checked before the generic transport branch because
    httpx.TimeoutException is itself a TransportError.
    """
    if isinstance(exc, InvalidInputError):
        return exc.to_user_error(context)
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return create_error(ErrorCode.CONNECTION_TIMEOUT, context)
    if isinstance(exc, httpx.TransportError):
        return create_error(ErrorCode.SERVER_UNREACHABLE, context)
    return create_error(ErrorCode.UNKNOWN_ERROR, context)


def classify_body(body: Any, context: str) -> UserError | None:
    """Inspect an Atelier response body for application errors.

    Shape: {"status": {"errors": [{"error": "..."}]}, "result": {...}}
    """
    if not isinstance(body, dict):
        return None
    status = body.get("status")
    errors = status.get("errors") if isinstance(status, dict) else None
    if not isinstance(errors, list) or not errors:
        return None

    first = errors[0]
    text = first.get("error") if isinstance(first, dict) else first
    text = str(text) if text is not None else ""
    lowered = text.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return create_error(ErrorCode.AUTH_FAILED, context)
    return create_error(ErrorCode.UNKNOWN_ERROR, context, text or None)
