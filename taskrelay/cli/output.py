"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich output (default) and machine-parseable JSON
output (--json flag). All formatting goes through these functions so the
CLI commands stay clean.
"""

import json

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskrelay.errors import RelayError, format_error
from taskrelay.orchestrator.models import (
    AnalysisResult,
    RelayResult,
    RoutePreview,
    SessionSummary,
)

console = Console()

# Category color map
CATEGORY_COLORS = {
    "visual": "magenta",
    "deep-reasoning": "blue",
    "creative": "yellow",
    "writing": "cyan",
    "quick": "green",
    "default": "white",
}


def _render(renderable: object) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def _category(value: str) -> str:
    color = CATEGORY_COLORS.get(value, "white")
    return f"[{color}]{value}[/{color}]"


def _analysis_table(analysis: AnalysisResult) -> Table:
    table = Table(title="Analysis", show_lines=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Intent", analysis.intent.value)
    table.add_row("Confidence", f"{analysis.confidence:.2f}")
    table.add_row("Rule", analysis.matched_rule or "—")
    table.add_row("Follow-up", "yes" if analysis.is_follow_up else "no")
    for entity in analysis.entities:
        value = entity.value
        if entity.normalized and entity.normalized != entity.value:
            value = f"{value} ({entity.normalized})"
        table.add_row(f"  {entity.type.value}", value)
    return table


def format_preview(preview: RoutePreview, as_json: bool = False) -> str:
    """Format a routing preview as Rich tables or JSON.

    Args:
        preview: Routing decision to display.
        as_json: If True, return JSON string instead of Rich tables.

    Returns:
        Formatted string output.
    """
    if as_json:
        return preview.model_dump_json(indent=2)

    route = Table(title="Route", show_lines=False)
    route.add_column("Field", style="bold")
    route.add_column("Value")
    route.add_row("Category", _category(preview.selection.category.value))
    route.add_row("Source", preview.selection.source.value)
    route.add_row("Confidence", f"{preview.selection.confidence:.2f}")
    route.add_row("Skills", ", ".join(s.value for s in preview.skills) or "—")
    route.add_row("Model", preview.model)
    route.add_row("Continuity", f"{preview.continuity_score:.2f}")

    questions = preview.analysis.ambiguity.clarifying_questions
    output = _render(_analysis_table(preview.analysis)) + _render(route)
    if questions:
        lines = "\n".join(f"  - {q}" for q in questions)
        output += _render(f"[yellow]Clarifying questions:[/yellow]\n{lines}")
    return output


def format_result(result: RelayResult, as_json: bool = False) -> str:
    """Format an executed request as a Rich panel or JSON.

    Args:
        result: Pipeline result.
        as_json: If True, return JSON string instead of Rich panel.

    Returns:
        Formatted string output.
    """
    if as_json:
        return result.model_dump_json(indent=2)

    execution = result.result
    lines = [
        f"[bold]Category:[/bold]   {_category(result.selection.category.value)}"
        f" ({result.selection.source.value})",
        f"[bold]Skills:[/bold]     {', '.join(s.value for s in result.skills) or '—'}",
        f"[bold]Intent:[/bold]     {result.analysis.intent.value}"
        f" ({result.analysis.confidence:.2f})",
        f"[bold]Turn:[/bold]       #{result.turn_sequence}"
        f"  continuity {result.continuity_score:.2f}",
        f"[bold]Model:[/bold]      {execution.model}  attempts {execution.attempts}",
        f"[bold]Tokens:[/bold]     {execution.tokens_in} in / {execution.tokens_out} out",
        "",
        execution.text,
    ]
    return _render(Panel("\n".join(lines), title="Result", border_style="cyan"))


def format_session(summary: SessionSummary, as_json: bool = False) -> str:
    """Format a session summary as a Rich table or JSON.

    Args:
        summary: Session summary to display.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return summary.model_dump_json(indent=2)

    header = (
        f"[bold]{summary.tenant_id}/{summary.conversation_id}[/bold]  "
        f"{summary.turn_count} turn(s), continuity {summary.continuity_score:.2f}, "
        f"channels: {', '.join(summary.channels) or '—'}"
    )
    table = Table(title="Recent turns", show_lines=True)
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Text")
    table.add_column("Intent")
    table.add_column("Category")
    table.add_column("Skills")
    table.add_column("When")
    for turn in summary.recent_turns:
        table.add_row(
            str(turn.sequence),
            turn.text[:60],
            turn.intent.value,
            _category(turn.category.value),
            ", ".join(sorted(s.value for s in turn.skills)) or "—",
            turn.timestamp.isoformat()[:19],
        )
    return _render(header) + _render(table)


def format_relay_error(error: RelayError, as_json: bool = False) -> str:
    """Format a relay error for the terminal or as JSON."""
    if as_json:
        return json.dumps(error.to_payload(), indent=2)
    return format_error(error)
