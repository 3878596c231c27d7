"""Pydantic models for the relay pipeline."""

from taskrelay.orchestrator.models.analysis import (
    SIGNATURE_ENTITY_TYPES,
    UNKNOWN_ANALYSIS,
    AmbiguityReport,
    AnalysisResult,
    Entity,
    EntityType,
    Intent,
)
from taskrelay.orchestrator.models.execution import (
    ExecutionPlan,
    ExecutionResult,
    RelayResult,
    RoutePreview,
    ToolCallRecord,
    UsageRecord,
)
from taskrelay.orchestrator.models.request import Request, utc_now
from taskrelay.orchestrator.models.routing import (
    NO_CONTINUITY,
    Category,
    CategorySelection,
    ContinuityContext,
    SelectionSource,
    Skill,
    sorted_skills,
)
from taskrelay.orchestrator.models.session import (
    Session,
    SessionSnapshot,
    SessionSummary,
    Turn,
)

__all__ = [
    # Analysis
    "Intent",
    "EntityType",
    "Entity",
    "AmbiguityReport",
    "AnalysisResult",
    "SIGNATURE_ENTITY_TYPES",
    "UNKNOWN_ANALYSIS",
    # Routing
    "Category",
    "Skill",
    "SelectionSource",
    "CategorySelection",
    "ContinuityContext",
    "NO_CONTINUITY",
    "sorted_skills",
    # Request
    "Request",
    "utc_now",
    # Session
    "Turn",
    "Session",
    "SessionSnapshot",
    "SessionSummary",
    # Execution
    "ExecutionPlan",
    "ExecutionResult",
    "ToolCallRecord",
    "UsageRecord",
    "RelayResult",
    "RoutePreview",
]
