"""Error handling framework for TaskRelay.

This package provides:
- Error code registry with R-XXXX format codes
- Typed surfaced errors and internal backend failures
- Backend exception translation (anthropic SDK, HTTP status codes)
- Error formatting utilities

Error categories:
- R-1xxx: Request validation errors
- R-2xxx: Execution backend errors
- R-3xxx: Throttling errors
- R-4xxx: Deadline errors
- R-5xxx: System/internal errors
"""

from taskrelay.errors.registry import (
    ErrorCategory,
    ErrorCode,
    ERROR_REGISTRY,
    get_error,
    get_errors_by_category,
    render_message,
)
from taskrelay.errors.domain import (
    BackendClientError,
    BackendFailure,
    BackendRejectedError,
    BackendUnavailableError,
    CapabilityError,
    CircuitOpenError,
    DeadlineExceededError,
    RateLimitError,
    RelayError,
    ThrottledError,
    TransientBackendError,
    ValidationError,
)
from taskrelay.errors.backend_translation import (
    parse_retry_after,
    translate_backend_exception,
    translate_status,
)
from taskrelay.errors.formatter import format_error, format_error_summary

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    "render_message",
    # Surfaced errors
    "RelayError",
    "ValidationError",
    "BackendUnavailableError",
    "BackendRejectedError",
    "ThrottledError",
    "DeadlineExceededError",
    # Internal failures
    "BackendFailure",
    "TransientBackendError",
    "RateLimitError",
    "BackendClientError",
    "CircuitOpenError",
    "CapabilityError",
    # Translation
    "translate_backend_exception",
    "translate_status",
    "parse_retry_after",
    # Formatter
    "format_error",
    "format_error_summary",
]
