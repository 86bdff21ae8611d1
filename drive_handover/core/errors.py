"""Error taxonomy for Drive Handover.

Remote failures surface as ``ApiError`` at the client boundary. The engine
never branches on raw messages: every ``ApiError`` is mapped to exactly one
``ErrorKind`` by ``classify_api_error`` and the rest of the code works with
that kind.

- ``TRANSIENT``: network or backend failure, retried a bounded number of times.
- ``QUOTA``: rate or daily limit, never retried; stops the tick and arms the
  cooldown.
- ``AUTH``: the credentials were rejected or could not be obtained; never
  retried, stops the tick without a cooldown so the next tick starts where
  this one stopped.
- ``PERMANENT``: anything else (permission denied, invalid target,
  cross-domain restriction); the item is recorded as an error and skipped.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification of a failed remote call."""

    TRANSIENT = "transient"
    QUOTA = "quota"
    AUTH = "auth"
    PERMANENT = "permanent"


class ApiError(Exception):
    """A failed call to the remote collection API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reason = reason

    def __repr__(self) -> str:
        return (
            f"ApiError(message={self.message!r}, status_code={self.status_code!r}, "
            f"reason={self.reason!r})"
        )


class ConfigurationError(ValueError):
    """A required setting is missing or invalid."""


# Drive API error reasons, see
# https://developers.google.com/drive/api/guides/handle-errors
_QUOTA_REASONS = {
    "ratelimitexceeded",
    "userratelimitexceeded",
    "quotaexceeded",
    "dailylimitexceeded",
    "sharingratelimitexceeded",
}

_AUTH_REASONS = {
    "autherror",
    "unauthenticated",
}

_AUTH_MARKERS = (
    "missing_drive_api_token",
    "invalid credentials",
)

_TRANSIENT_REASONS = {
    "backenderror",
    "internalerror",
    "transienterror",
}

_TRANSIENT_MARKERS = (
    "internal error",
    "backend error",
    "service unavailable",
    "timed out",
    "timeout",
    "network",
    "connection",
    "http_error",
)

_QUOTA_MARKERS = (
    "quota",
    "limit",
)


def classify_api_error(error: BaseException) -> ErrorKind:
    """Map a failed remote call to an ``ErrorKind``.

    Structured information (Drive error reason, HTTP status) wins; the message
    text is only consulted when neither is conclusive.
    """

    reason = (getattr(error, "reason", None) or "").lower()
    status_code = getattr(error, "status_code", None)

    if reason in _AUTH_REASONS or status_code == 401:
        return ErrorKind.AUTH
    if reason in _QUOTA_REASONS:
        return ErrorKind.QUOTA
    if reason in _TRANSIENT_REASONS:
        return ErrorKind.TRANSIENT

    if status_code == 429:
        return ErrorKind.QUOTA
    if isinstance(status_code, int) and 500 <= status_code <= 599:
        return ErrorKind.TRANSIENT

    text = str(error).lower()
    if any(marker in text for marker in _AUTH_MARKERS):
        return ErrorKind.AUTH
    if any(marker in text for marker in _QUOTA_MARKERS):
        return ErrorKind.QUOTA
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT

    return ErrorKind.PERMANENT
