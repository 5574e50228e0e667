from __future__ import annotations

from typing import Any

from openai import APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

_RETRYABLE_STATUS = (408, 409, 429)


def _status_code(exc: BaseException) -> int | None:
    value = getattr(exc, "status_code", None)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _header(headers: Any, name: str) -> Any:
    if headers is None:
        return None
    getter = getattr(headers, "get", None)
    if getter is None:
        return None
    # httpx.Headers is case-insensitive, plain dicts are not.
    return getter(name) or getter(name.title())


def retry_after_seconds(exc: BaseException) -> float | None:
    response = getattr(exc, "response", None)
    value = _header(getattr(response, "headers", None), "retry-after")
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _is_retryable_status(code: int | None) -> bool:
    return code is not None and (code in _RETRYABLE_STATUS or code >= 500)


def is_retryable_openai_exception(exc: BaseException) -> tuple[bool, float | None, str | None]:
    """
    Transient failures of an OpenAI-compatible endpoint:
    connection errors, timeouts, HTTP 408/409/429 and 5xx.
    """
    # APITimeoutError subclasses APIConnectionError, so it is checked first.
    if isinstance(exc, APITimeoutError):
        return True, None, "timeout"
    if isinstance(exc, APIConnectionError):
        return True, None, "connection_error"
    if isinstance(exc, RateLimitError):
        return True, retry_after_seconds(exc), "rate_limited"

    code = _status_code(exc)
    reason = f"http_{code}" if code is not None else None
    if isinstance(exc, APIStatusError) and code is None:
        return False, None, "http_status"
    if _is_retryable_status(code):
        return True, retry_after_seconds(exc), reason
    return False, None, reason
