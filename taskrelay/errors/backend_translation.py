"""Backend exception translation into relay failure types.

This module maps exceptions raised by the anthropic SDK (and bare HTTP
status codes from httpx-based backends) onto the internal failure
taxonomy consumed by the retry policy and circuit breaker:

- 429 -> RateLimitError (retry-after header honoured when present)
- timeouts, connection failures, 5xx and 529 -> TransientBackendError
- any other 4xx -> BackendClientError

Anything that is not a recognised backend exception is returned as None
so programming errors keep propagating unchanged.
"""

import logging

import anthropic
import httpx

from taskrelay.errors.domain import (
    BackendClientError,
    BackendFailure,
    RateLimitError,
    TransientBackendError,
)

logger = logging.getLogger(__name__)

# Anthropic returns 529 when the API is overloaded
OVERLOADED_STATUS = 529


def parse_retry_after(headers: httpx.Headers | dict | None) -> float | None:
    """Read a Retry-After value in seconds from response headers.

    Supports the numeric form only; HTTP-date values and garbage yield None.

    Args:
        headers: Response headers, or None.

    Returns:
        Non-negative seconds, or None when absent or unparseable.
    """
    if not headers:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return max(0.0, value)


def translate_status(
    status_code: int,
    message: str,
    headers: httpx.Headers | dict | None = None,
) -> BackendFailure:
    """Map an HTTP status code to a backend failure.

    Args:
        status_code: HTTP status returned by the backend.
        message: Error text to carry on the failure.
        headers: Response headers, used for Retry-After on 429.

    Returns:
        The matching BackendFailure instance.
    """
    if status_code == 429:
        return RateLimitError(message, retry_after=parse_retry_after(headers))
    if status_code >= 500 or status_code == OVERLOADED_STATUS:
        return TransientBackendError("server", message, status_code=status_code)
    return BackendClientError(message, status_code=status_code)


def translate_backend_exception(exc: BaseException) -> BackendFailure | None:
    """Translate a backend client exception to a relay failure.

    Args:
        exc: Exception raised by the backend client.

    Returns:
        BackendFailure for recognised backend exceptions, None otherwise.
    """
    if isinstance(exc, BackendFailure):
        return exc

    # APITimeoutError subclasses APIConnectionError; check it first
    if isinstance(exc, anthropic.APITimeoutError):
        return TransientBackendError("timeout", str(exc) or "Backend request timed out")
    if isinstance(exc, anthropic.APIConnectionError):
        return TransientBackendError("connection", str(exc) or "Backend connection failed")
    if isinstance(exc, anthropic.APIStatusError):
        headers = exc.response.headers if exc.response is not None else None
        return translate_status(exc.status_code, exc.message, headers)

    if isinstance(exc, httpx.TimeoutException):
        return TransientBackendError("timeout", str(exc) or "Backend request timed out")
    if isinstance(exc, httpx.TransportError):
        return TransientBackendError("connection", str(exc) or "Backend connection failed")
    if isinstance(exc, httpx.HTTPStatusError):
        return translate_status(exc.response.status_code, str(exc), exc.response.headers)

    logger.debug("Unrecognised backend exception type: %s", type(exc).__name__)
    return None
