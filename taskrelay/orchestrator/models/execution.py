"""Execution models: plans handed to the dispatcher and their results."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from taskrelay.orchestrator.models.analysis import AnalysisResult
from taskrelay.orchestrator.models.request import Request
from taskrelay.orchestrator.models.routing import Category, CategorySelection, Skill
from taskrelay.orchestrator.models.session import SessionSnapshot


class ExecutionPlan(BaseModel):
    """Everything the backend needs for one request. Built once per request.

    Attributes:
        request: The originating request.
        category: Selected category.
        skills: Attached skills.
        session: Snapshot of the conversation history.
        idempotent: Whether the backend call may be retried safely.
        backend_target: Backend identifier used for circuit breaking.
        model: Backend model chosen for the category.
    """

    model_config = ConfigDict(frozen=True)

    request: Request
    category: Category
    skills: frozenset[Skill] = frozenset()
    session: SessionSnapshot
    idempotent: bool = True
    backend_target: str = "anthropic"
    model: str = ""


class ToolCallRecord(BaseModel):
    """One capability invocation made during execution."""

    model_config = ConfigDict(frozen=True)

    name: str
    arguments: dict = Field(default_factory=dict)
    success: bool = True
    error: str | None = None


class ExecutionResult(BaseModel):
    """Backend output for one request.

    Attributes:
        text: Final response text.
        backend_target: Backend that produced the response.
        model: Model that produced the response.
        tokens_in: Input tokens across all calls.
        tokens_out: Output tokens across all calls.
        latency_ms: Wall time of the successful attempt.
        attempts: Attempts made, including the successful one.
        tool_calls: Capability invocations in order.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    backend_target: str
    model: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    latency_ms: float = 0.0
    attempts: int = 1
    tool_calls: tuple[ToolCallRecord, ...] = ()


class UsageRecord(BaseModel):
    """Usage accounting entry, one per backend call."""

    model_config = ConfigDict(frozen=True)

    backend_target: str
    model: str = ""
    tenant_id: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    cost: float = 0.0
    latency_ms: float = 0.0
    success: bool = True
    late: bool = False
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RelayResult(BaseModel):
    """Final outcome of ``Orchestrator.handle``."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    conversation_id: str
    analysis: AnalysisResult
    selection: CategorySelection
    skills: tuple[Skill, ...] = ()
    result: ExecutionResult
    turn_sequence: int
    continuity_score: float = 0.0


class RoutePreview(BaseModel):
    """Routing decision for a request without dispatch."""

    model_config = ConfigDict(frozen=True)

    analysis: AnalysisResult
    selection: CategorySelection
    skills: tuple[Skill, ...] = ()
    continuity_score: float = 0.0
    model: str = ""
