"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the TaskRelay REST API. Field
content (blank text, oversized text) is validated by the pipeline so that
failures carry registry error codes.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskrelay.orchestrator.models import (
    Category,
    RelayResult,
    RoutePreview,
    SessionSummary,
    Turn,
)


# Request schemas


class RelayRequestBody(BaseModel):
    """Request schema for routing and executing a work request."""

    text: str
    tenant_id: str
    conversation_id: str
    user_id: str = "anonymous"
    channel: str = "web"
    deadline_seconds: Optional[float] = Field(None, description="Time budget in seconds")
    category_pin: Optional[Category] = None


class RoutePreviewBody(BaseModel):
    """Request schema for a dry-run routing decision."""

    text: str
    tenant_id: str
    conversation_id: Optional[str] = None
    category_pin: Optional[Category] = None


# Response schemas


class EntityResponse(BaseModel):
    """One extracted entity."""

    type: str
    value: str
    normalized: Optional[str] = None


class AnalysisResponse(BaseModel):
    """Request analysis summary."""

    intent: str
    confidence: float
    is_follow_up: bool
    matched_rule: Optional[str] = None
    entities: list[EntityResponse] = []
    clarifying_questions: list[str] = []


class SelectionResponse(BaseModel):
    """Category selection outcome."""

    category: str
    source: str
    confidence: float


class ExecutionResponse(BaseModel):
    """Backend result summary."""

    text: str
    backend_target: str
    model: str
    tokens_in: int
    tokens_out: int
    latency_ms: float
    attempts: int
    tool_calls: list[str] = []


class RelayResponse(BaseModel):
    """Response schema for an executed request."""

    tenant_id: str
    conversation_id: str
    turn_sequence: int
    continuity_score: float
    analysis: AnalysisResponse
    selection: SelectionResponse
    skills: list[str]
    result: ExecutionResponse


class RoutePreviewResponse(BaseModel):
    """Response schema for a dry-run routing decision."""

    analysis: AnalysisResponse
    selection: SelectionResponse
    skills: list[str]
    continuity_score: float
    model: str


class TurnResponse(BaseModel):
    """One session turn."""

    sequence: int
    text: str
    intent: str
    category: str
    skills: list[str]
    result_summary: str
    channel: str
    timestamp: datetime


class SessionResponse(BaseModel):
    """Response schema for session inspection."""

    tenant_id: str
    conversation_id: str
    turn_count: int
    created_at: datetime
    last_active: datetime
    continuity_score: float
    last_category: Optional[str] = None
    channels: list[str] = []
    recent_turns: list[TurnResponse] = []


class CircuitResponse(BaseModel):
    """One backend target's circuit state."""

    target: str
    state: str
    consecutive_failures: int
    retry_in: float


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    uptime_seconds: float
    circuits: list[CircuitResponse] = []


# Conversions


def analysis_response(result: RelayResult | RoutePreview) -> AnalysisResponse:
    """Build the analysis section of a response."""
    analysis = result.analysis
    return AnalysisResponse(
        intent=analysis.intent.value,
        confidence=analysis.confidence,
        is_follow_up=analysis.is_follow_up,
        matched_rule=analysis.matched_rule,
        entities=[
            EntityResponse(type=e.type.value, value=e.value, normalized=e.normalized)
            for e in analysis.entities
        ],
        clarifying_questions=list(analysis.ambiguity.clarifying_questions),
    )


def selection_response(result: RelayResult | RoutePreview) -> SelectionResponse:
    """Build the selection section of a response."""
    return SelectionResponse(
        category=result.selection.category.value,
        source=result.selection.source.value,
        confidence=result.selection.confidence,
    )


def relay_response(result: RelayResult) -> RelayResponse:
    """Convert a pipeline result into the API response."""
    execution = result.result
    return RelayResponse(
        tenant_id=result.tenant_id,
        conversation_id=result.conversation_id,
        turn_sequence=result.turn_sequence,
        continuity_score=result.continuity_score,
        analysis=analysis_response(result),
        selection=selection_response(result),
        skills=[s.value for s in result.skills],
        result=ExecutionResponse(
            text=execution.text,
            backend_target=execution.backend_target,
            model=execution.model,
            tokens_in=execution.tokens_in,
            tokens_out=execution.tokens_out,
            latency_ms=execution.latency_ms,
            attempts=execution.attempts,
            tool_calls=[call.name for call in execution.tool_calls],
        ),
    )


def preview_response(preview: RoutePreview) -> RoutePreviewResponse:
    """Convert a route preview into the API response."""
    return RoutePreviewResponse(
        analysis=analysis_response(preview),
        selection=selection_response(preview),
        skills=[s.value for s in preview.skills],
        continuity_score=preview.continuity_score,
        model=preview.model,
    )


def _turn_response(turn: Turn) -> TurnResponse:
    return TurnResponse(
        sequence=turn.sequence,
        text=turn.text,
        intent=turn.intent.value,
        category=turn.category.value,
        skills=sorted(s.value for s in turn.skills),
        result_summary=turn.result_summary,
        channel=turn.channel,
        timestamp=turn.timestamp,
    )


def session_response(summary: SessionSummary) -> SessionResponse:
    """Convert a session summary into the API response."""
    return SessionResponse(
        tenant_id=summary.tenant_id,
        conversation_id=summary.conversation_id,
        turn_count=summary.turn_count,
        created_at=summary.created_at,
        last_active=summary.last_active,
        continuity_score=summary.continuity_score,
        last_category=summary.last_category.value if summary.last_category else None,
        channels=list(summary.channels),
        recent_turns=[_turn_response(t) for t in summary.recent_turns],
    )
