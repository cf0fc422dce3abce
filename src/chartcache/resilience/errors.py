"""Classification of fetch failures into retry decisions and user messages.

Works on any failure object: exceptions, error payload dicts, or plain
strings. Nothing in this module raises or performs I/O.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

_STATUS_CODE_RE = re.compile(r"\b(4\d{2}|5\d{2})\b")
_NETWORK_MARKERS = ("network", "timeout", "fetch", "aborted")

MSG_RATE_LIMIT_RETRYING = "Rate limit reached. Retrying..."
MSG_NETWORK = "Network error. Check your connection."
MSG_SERVER = "Server temporarily unavailable."
MSG_NOT_FOUND = "Data not found for this asset."
MSG_GENERIC = "Failed to load chart data."

MSG_RATE_LIMIT_FINAL = "Rate limit reached. Try again shortly."
MSG_CACHED_RATE_LIMIT = "Using cached data (API rate limit)"
MSG_CACHED_OFFLINE = "Using cached data (offline)"
MSG_CACHED = "Using cached data"


@dataclass(frozen=True)
class ErrorClassification:
    """Structured view of a failure, used for retry and messaging decisions."""

    is_rate_limit: bool
    is_network_error: bool
    is_server_error: bool
    status_code: int | None
    user_message: str
    technical_message: str


def _field(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def _technical_message(error: Any) -> str:
    try:
        message = _field(error, "message")
        if message:
            return str(message)
        return str(error)
    except Exception:
        return ""


def _declared_name(error: Any) -> str | None:
    try:
        name = _field(error, "name")
    except Exception:
        return None
    if isinstance(name, str):
        return name
    if isinstance(error, BaseException):
        return type(error).__name__
    return None


def classify(error: Any) -> ErrorClassification:
    """Classify a failure as rate-limited, network, server, not-found or other.

    The status code is the first standalone 4xx/5xx number found in the
    message, e.g. "Request failed with status 429" -> 429.
    """
    message = _technical_message(error)
    lowered = message.lower()

    match = _STATUS_CODE_RE.search(message)
    status_code = int(match.group(1)) if match else None

    is_rate_limit = status_code == 429 or "rate limit" in lowered
    is_network_error = (
        any(marker in lowered for marker in _NETWORK_MARKERS)
        or _declared_name(error) == "AbortError"
    )
    is_server_error = status_code is not None and status_code >= 500

    if is_rate_limit:
        user_message = MSG_RATE_LIMIT_RETRYING
    elif is_network_error:
        user_message = MSG_NETWORK
    elif is_server_error:
        user_message = MSG_SERVER
    elif status_code == 404:
        user_message = MSG_NOT_FOUND
    else:
        user_message = MSG_GENERIC

    return ErrorClassification(
        is_rate_limit=is_rate_limit,
        is_network_error=is_network_error,
        is_server_error=is_server_error,
        status_code=status_code,
        user_message=user_message,
        technical_message=message,
    )


def is_retryable(error: Any) -> bool:
    """Return True for rate limits, network errors and 5xx server errors."""
    parsed = classify(error)
    return parsed.is_rate_limit or parsed.is_network_error or parsed.is_server_error


def should_retry(error: Any, attempt: int) -> bool:
    """Retry predicate for RetryPolicy: retry whatever is_retryable accepts."""
    return is_retryable(error)


def final_message(error: Any, has_stale_cache: bool) -> str:
    """Message to show once retries are exhausted.

    With a stale cache the user is told which cached data they are seeing
    and why; without one they get the reason the load failed.
    """
    parsed = classify(error)

    if has_stale_cache:
        if parsed.is_rate_limit:
            return MSG_CACHED_RATE_LIMIT
        if parsed.is_network_error:
            return MSG_CACHED_OFFLINE
        return MSG_CACHED

    if parsed.is_rate_limit:
        return MSG_RATE_LIMIT_FINAL
    if parsed.is_network_error:
        return MSG_NETWORK
    if parsed.is_server_error:
        return MSG_SERVER
    return parsed.user_message
