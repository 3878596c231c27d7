"""Request-to-execution orchestration for TaskRelay.

This package contains the relay pipeline: request analysis, category and
skill selection, dispatch with circuit breaking and retries.

Main Entry Points:
    Orchestrator (taskrelay.orchestrator.pipeline): Runs one request end
        to end and exposes session inspection.
    RequestAnalyzer (taskrelay.orchestrator.nl_engine): Intent and entity
        analysis.

Supporting Models:
    Request, AnalysisResult, CategorySelection, ExecutionPlan, RelayResult.
"""

from taskrelay.orchestrator.models import (
    AnalysisResult,
    Category,
    CategorySelection,
    ExecutionPlan,
    Intent,
    RelayResult,
    RoutePreview,
    Request,
    Skill,
)

__all__ = [
    "AnalysisResult",
    "Category",
    "CategorySelection",
    "ExecutionPlan",
    "Intent",
    "RelayResult",
    "RoutePreview",
    "Request",
    "Skill",
]
