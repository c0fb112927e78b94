"""Error taxonomy and display normalization.

Every failure the UI layer can see is one of the exceptions below. The UI
never inspects backend payloads itself: it calls :func:`describe_error` and
renders the resulting :class:`NormalizedError`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx


UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."
NETWORK_ERROR_MESSAGE = "Could not reach the server. Check your connection and try again."

_MESSAGE_KEYS = ("msg", "message")


@dataclass(frozen=True)
class NormalizedError:
    """The single error shape presentation code consumes."""

    message: str


class RimStudioError(Exception):
    """Base exception for client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: httpx.Response | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class SessionExpiredError(RimStudioError):
    """Refresh failed or was impossible; the user must sign in again."""

    def __init__(self, message: str = SESSION_EXPIRED_MESSAGE, **kwargs: Any):
        super().__init__(message, **kwargs)


class AuthError(RimStudioError):
    """Sign-in exchange was rejected or returned a malformed token pair."""

    pass


class ValidationError(RimStudioError):
    """Backend (or the local pre-check) rejected the input."""

    pass


class MissingImageError(ValidationError):
    """An image was not supplied; raised before any network call."""

    pass


class TransportError(RimStudioError):
    """Network-level failure. Not retried automatically."""

    pass


class ApiError(RimStudioError):
    """Unexpected status code or response shape."""

    pass


class ConfigurationError(RimStudioError):
    """Settings failed validation."""

    pass


def _dump(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _message_of(item: Any) -> str | None:
    if not isinstance(item, dict):
        return None
    for key in _MESSAGE_KEYS:
        value = item.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def normalize_error_payload(raw: Any) -> NormalizedError:
    """Collapse a backend error payload into one display string.

    Strings pass through, lists of field problems are joined with ``", "``,
    a single object contributes its message field, and anything without a
    recognizable message is dumped structurally rather than dropped. An
    empty list falls back to the generic message.
    """
    if isinstance(raw, str):
        return NormalizedError(raw)

    if isinstance(raw, list):
        parts = []
        for item in raw:
            if isinstance(item, str):
                parts.append(item)
            else:
                parts.append(_message_of(item) or _dump(item))
        return NormalizedError(", ".join(parts) or UNEXPECTED_ERROR_MESSAGE)

    if isinstance(raw, dict):
        return NormalizedError(_message_of(raw) or _dump(raw))

    return NormalizedError(UNEXPECTED_ERROR_MESSAGE)


def error_from_response(response: httpx.Response) -> RimStudioError:
    """Build the typed exception for a non-success backend response."""
    detail: Any = None
    try:
        body = response.json() if response.content else None
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail")

    if detail is None:
        message = f"Request failed with status code {response.status_code}"
    else:
        message = normalize_error_payload(detail).message

    error_cls: type[RimStudioError] = ApiError
    if detail is not None and 400 <= response.status_code < 500:
        error_cls = ValidationError
    return error_cls(message, status_code=response.status_code, response=response)


def describe_error(exc: BaseException) -> NormalizedError:
    """Map any exception to the message shown to the user."""
    if isinstance(exc, SessionExpiredError):
        return NormalizedError(exc.message)
    if isinstance(exc, (TransportError, httpx.TransportError)):
        return NormalizedError(NETWORK_ERROR_MESSAGE)
    if isinstance(exc, RimStudioError):
        return NormalizedError(exc.message)
    return NormalizedError(UNEXPECTED_ERROR_MESSAGE)
