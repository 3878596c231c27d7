"""Error code registry with R-XXXX format codes.

This module defines the error code system for TaskRelay, organizing errors
into categories:
- R-1xxx: Request validation errors
- R-2xxx: Execution backend errors
- R-3xxx: Throttling errors
- R-4xxx: Deadline errors
- R-5xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    VALIDATION = "validation"  # R-1xxx: Request validation errors
    BACKEND = "backend"  # R-2xxx: Execution backend errors
    THROTTLE = "throttle"  # R-3xxx: Throttling errors
    DEADLINE = "deadline"  # R-4xxx: Deadline errors
    SYSTEM = "system"  # R-5xxx: System/internal errors


@dataclass(frozen=True)
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in R-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the caller should take to resolve.
        is_retryable: Whether the request can be retried without changes.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Validation errors (R-1xxx)
    "R-1001": ErrorCode(
        code="R-1001",
        category=ErrorCategory.VALIDATION,
        title="Missing Required Field",
        message_template="Required field '{field}' is missing or empty.",
        remediation="Provide a non-empty value for the field and resend.",
    ),
    "R-1002": ErrorCode(
        code="R-1002",
        category=ErrorCategory.VALIDATION,
        title="Request Too Long",
        message_template="Request text is {length} characters; the limit is {max_length}.",
        remediation="Shorten the request or split it into several turns.",
    ),
    "R-1003": ErrorCode(
        code="R-1003",
        category=ErrorCategory.VALIDATION,
        title="Invalid Field Value",
        message_template="Field '{field}' has an invalid value: {reason}",
        remediation="Correct the field value and resend.",
    ),
    # Backend errors (R-2xxx)
    "R-2001": ErrorCode(
        code="R-2001",
        category=ErrorCategory.BACKEND,
        title="Backend Unavailable",
        message_template="Backend '{target}' is known to be down; no attempt was made.",
        remediation="Wait for the cooldown to elapse and retry.",
        is_retryable=True,
    ),
    "R-2002": ErrorCode(
        code="R-2002",
        category=ErrorCategory.BACKEND,
        title="Backend Retries Exhausted",
        message_template="Backend '{target}' failed after {attempts} attempt(s): {reason}",
        remediation="Retry later. Check backend status if the problem persists.",
        is_retryable=True,
    ),
    "R-2003": ErrorCode(
        code="R-2003",
        category=ErrorCategory.BACKEND,
        title="Backend Rejected Request",
        message_template="Backend '{target}' rejected the request: {reason}",
        remediation="The request cannot succeed as sent. Rephrase it or check credentials.",
    ),
    # Throttle errors (R-3xxx)
    "R-3001": ErrorCode(
        code="R-3001",
        category=ErrorCategory.THROTTLE,
        title="Throttled",
        message_template="Backend '{target}' is rate limiting requests. Retry after {retry_after:.0f}s.",
        remediation="Back off for the suggested interval before retrying.",
        is_retryable=True,
    ),
    # Deadline errors (R-4xxx)
    "R-4001": ErrorCode(
        code="R-4001",
        category=ErrorCategory.DEADLINE,
        title="Deadline Exceeded",
        message_template="Request deadline exceeded during {stage}.",
        remediation="Retry with a longer deadline.",
        is_retryable=True,
    ),
    # System errors (R-5xxx)
    "R-5001": ErrorCode(
        code="R-5001",
        category=ErrorCategory.SYSTEM,
        title="Capability Failed",
        message_template="Capability '{name}' failed: {reason}",
        remediation="Check the integration's configuration and retry.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in R-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in the specified category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]


def render_message(code: str, **context: object) -> str:
    """Render a registry message template with context values.

    Keeps the raw template when placeholders are missing so a partially
    described error still produces readable text.

    Args:
        code: Error code in R-XXXX format.
        **context: Values substituted into the message template.

    Returns:
        Rendered message, or a generic message for unknown codes.
    """
    error_def = get_error(code)
    if error_def is None:
        return f"Unknown error: {code}"
    try:
        return error_def.message_template.format(**context)
    except (KeyError, ValueError, TypeError):
        return error_def.message_template
