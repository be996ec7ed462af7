"""Network failure taxonomy.

Every failure on the way to (or from) the backend is classified exactly once,
where it is detected, into one of a closed set of kinds.  Each kind maps to a
fixed message the UI can show as-is; ``message`` keeps the technical detail
for logs.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    OFFLINE = "offline"            # device has no connectivity
    TIMEOUT = "timeout"            # no response within the deadline
    UNREACHABLE = "unreachable"    # DNS / connection refused / TLS
    HTTP_ERROR = "http_error"      # non-2xx status
    STREAM_ABORT = "stream_abort"  # stopped by the user or the app lifecycle
    UNKNOWN = "unknown"


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.OFFLINE: "You're offline. Check your Wi-Fi or cellular connection.",
    ErrorKind.TIMEOUT: "Connection timed out. Is your AI server running?",
    ErrorKind.UNREACHABLE: (
        "Can't reach the server. Check the API URL and ensure "
        "Local Network access is allowed."
    ),
    ErrorKind.STREAM_ABORT: "Response was interrupted.",
    ErrorKind.UNKNOWN: "An unexpected network error occurred.",
}


def user_message_for(kind: ErrorKind, status_code: int | None = None) -> str:
    """Return the user-facing text for *kind*."""
    if kind is ErrorKind.HTTP_ERROR:
        if status_code == 404:
            return "Model endpoint not found. Check your API URL."
        code = status_code if status_code is not None else "?"
        return f"Server error (HTTP {code}). Try again."
    return _USER_MESSAGES[kind]


class NetworkError(Exception):
    """A classified transport or streaming failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.status_code = status_code
        self.user_message = user_message_for(self.kind, status_code)

    def __repr__(self) -> str:
        extra = f", status_code={self.status_code}" if self.status_code is not None else ""
        return f"NetworkError({self.kind.value!r}, {self.message!r}{extra})"
