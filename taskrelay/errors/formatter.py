"""Error formatting utilities.

This module provides:
- Error formatting for terminal and log display
- Summary formatting for a batch of surfaced errors
"""

from taskrelay.errors.domain import RelayError


def format_error(error: RelayError, include_remediation: bool = True) -> str:
    """Format error for display to user.

    Args:
        error: The RelayError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string suitable for user display.
    """
    lines = [f"{error.code}: {error.message}"]

    target = error.details.get("target")
    if target:
        lines.append(f"  Backend: {target}")

    retry_after = error.details.get("retry_after")
    if retry_after is not None:
        lines.append(f"  Retry after: {retry_after:.0f}s")

    if include_remediation:
        lines.append(f"  Action: {error.remediation}")

    return "\n".join(lines)


def format_error_summary(errors: list[RelayError]) -> str:
    """Format a list of errors for display, grouping duplicates by code.

    Args:
        errors: List of RelayError objects.

    Returns:
        User-friendly summary suitable for terminal display.
    """
    if not errors:
        return "No errors."

    grouped: dict[str, tuple[RelayError, int]] = {}
    for error in errors:
        key = f"{error.code}|{error.message}"
        first, count = grouped.get(key, (error, 0))
        grouped[key] = (first, count + 1)

    if len(grouped) == 1:
        error, count = next(iter(grouped.values()))
        text = format_error(error)
        return text if count == 1 else f"{text}\n  Occurrences: {count}"

    lines = [f"{len(grouped)} error type(s) found:\n"]
    for i, (error, count) in enumerate(grouped.values(), 1):
        suffix = f" (x{count})" if count > 1 else ""
        lines.append(f"{i}. {format_error(error)}{suffix}")
        lines.append("")

    return "\n".join(lines)
