"""Typed exceptions raised by the relay pipeline.

Two families live here:

- Surfaced errors (``RelayError`` subclasses) reach the caller of
  ``Orchestrator.handle``. Each carries a registry code, a rendered
  message, remediation text, a retryable flag and a details dict, so the
  HTTP layer and the CLI can map them without string matching.
- Backend failures (``BackendFailure`` subclasses) stay inside the
  dispatch path. The retry policy and circuit breaker classify them, and
  the dispatcher translates whatever is left into a surfaced error.

Usage:
    # In the dispatcher
    raise BackendUnavailableError(target, known_down=True, retry_after=12.0)

    # In a route handler
    try:
        result = await orchestrator.handle(request)
    except ThrottledError as e:
        headers = {"Retry-After": str(math.ceil(e.retry_after))}
"""

from taskrelay.errors.registry import get_error, render_message


class RelayError(Exception):
    """Base exception for errors surfaced to callers.

    Attributes:
        code: Error code in R-XXXX format.
        message: Human-readable error message.
        remediation: Action the caller should take to resolve.
        is_retryable: Whether the request can be retried unchanged.
        details: Additional context dictionary.
    """

    def __init__(self, code: str, details: dict | None = None, **context: object) -> None:
        self.code = code
        self.details = dict(details or {})
        self.message = render_message(code, **context)
        error_def = get_error(code)
        self.remediation = error_def.remediation if error_def else "Contact support."
        self.is_retryable = error_def.is_retryable if error_def else False
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code}: {self.message}"

    def to_payload(self) -> dict:
        """Serialize the error for an API response body.

        Returns:
            Dict with code, message, remediation, retryable flag and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "remediation": self.remediation,
            "is_retryable": self.is_retryable,
            "details": self.details,
        }


class ValidationError(RelayError):
    """Malformed request. Maps to HTTP 422 and is never retried."""

    def __init__(
        self,
        field: str,
        reason: str | None = None,
        length: int | None = None,
        max_length: int | None = None,
    ) -> None:
        if length is not None and max_length is not None:
            super().__init__(
                "R-1002",
                details={"field": field, "length": length, "max_length": max_length},
                length=length,
                max_length=max_length,
            )
        elif reason is None:
            super().__init__("R-1001", details={"field": field}, field=field)
        else:
            super().__init__(
                "R-1003",
                details={"field": field, "reason": reason},
                field=field,
                reason=reason,
            )
        self.field = field


class BackendUnavailableError(RelayError):
    """Backend could not serve the request. Maps to HTTP 503.

    ``known_down`` is True when the circuit was open and no attempt was
    made, False when attempts were made and all failed.
    """

    def __init__(
        self,
        target: str,
        known_down: bool,
        attempts: int = 0,
        reason: str = "",
        retry_after: float | None = None,
    ) -> None:
        details = {"target": target, "known_down": known_down, "attempts": attempts}
        if retry_after is not None:
            details["retry_after"] = retry_after
        if known_down:
            super().__init__("R-2001", details=details, target=target)
        else:
            super().__init__(
                "R-2002", details=details, target=target, attempts=attempts, reason=reason
            )
        self.target = target
        self.known_down = known_down
        self.attempts = attempts
        self.retry_after = retry_after


class BackendRejectedError(RelayError):
    """Backend refused the request as malformed or unauthorized. Maps to HTTP 502."""

    def __init__(self, target: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            "R-2003",
            details={"target": target, "status_code": status_code},
            target=target,
            reason=reason,
        )
        self.target = target
        self.status_code = status_code


class ThrottledError(RelayError):
    """Backend is rate limiting. Maps to HTTP 429 with a Retry-After header."""

    def __init__(self, target: str, retry_after: float) -> None:
        super().__init__(
            "R-3001",
            details={"target": target, "retry_after": retry_after},
            target=target,
            retry_after=retry_after,
        )
        self.target = target
        self.retry_after = retry_after


class DeadlineExceededError(RelayError):
    """Caller's deadline elapsed before or during dispatch. Maps to HTTP 504."""

    def __init__(self, stage: str) -> None:
        super().__init__("R-4001", details={"stage": stage}, stage=stage)
        self.stage = stage


class BackendFailure(Exception):
    """Base exception for failures inside the dispatch path."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class TransientBackendError(BackendFailure):
    """Timeout, connection failure or server error. Retryable.

    Attributes:
        kind: One of ``timeout``, ``connection`` or ``server``.
        status_code: HTTP status for server errors, None otherwise.
    """

    def __init__(self, kind: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class RateLimitError(BackendFailure):
    """Backend answered 429. ``retry_after`` is None when not advertised."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class BackendClientError(BackendFailure):
    """Backend answered with a 4xx other than 429. Never retried."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CircuitOpenError(BackendFailure):
    """Circuit for a target is open or its half-open probe is in flight."""

    def __init__(self, target: str, retry_in: float) -> None:
        super().__init__(f"Circuit for '{target}' is open (retry in {retry_in:.1f}s)")
        self.target = target
        self.retry_in = retry_in


class CapabilityError(Exception):
    """A capability invocation failed.

    Reported back to the backend as a tool error rather than aborting the
    request.
    """

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(render_message("R-5001", name=name, reason=reason))
        self.code = "R-5001"
        self.name = name
        self.reason = reason
