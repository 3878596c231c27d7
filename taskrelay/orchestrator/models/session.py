"""Session models for multi-turn conversational continuity.

A Session is keyed by (tenant_id, conversation_id) and holds the ordered
turns of one conversation regardless of the channel each turn arrived on.
Sessions are mutable and owned by the session manager; the pipeline only
sees immutable ``SessionSnapshot`` copies.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from taskrelay.orchestrator.models.analysis import Intent
from taskrelay.orchestrator.models.routing import Category, Skill


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    """One completed request/response exchange.

    Attributes:
        sequence: 1-based position within the session.
        text: Request text.
        intent: Classified intent.
        entity_signature: Routing-relevant (type, value) pairs.
        category: Category the request was routed to.
        skills: Skills attached to the request.
        result_summary: Truncated backend response.
        channel: Channel the turn arrived on.
        timestamp: Completion time.
    """

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(..., ge=1)
    text: str
    intent: Intent = Intent.UNKNOWN
    entity_signature: tuple[tuple[str, str], ...] = ()
    category: Category = Category.DEFAULT
    skills: frozenset[Skill] = frozenset()
    result_summary: str = ""
    channel: str = "web"
    timestamp: datetime = Field(default_factory=_utc_now)


class SessionSnapshot(BaseModel):
    """Immutable view of a session's recent history for one execution."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    conversation_id: str
    recent_turns: tuple[Turn, ...] = ()
    continuity_score: float = 0.0


class SessionSummary(BaseModel):
    """Read-only session overview for inspection endpoints."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    conversation_id: str
    turn_count: int
    created_at: datetime
    last_active: datetime
    continuity_score: float
    last_category: Optional[Category] = None
    channels: tuple[str, ...] = ()
    recent_turns: tuple[Turn, ...] = ()


class Session(BaseModel):
    """Per-conversation state across turns and channels.

    Attributes:
        tenant_id: Tenant identifier.
        conversation_id: Conversation identifier.
        turns: Turns in arrival order.
        created_at: Creation time.
        last_active: Time of the last read or write.
        continuity_score: Rolling continuity score of the latest turn.
    """

    tenant_id: str
    conversation_id: str
    turns: list[Turn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)
    last_active: datetime = Field(default_factory=_utc_now)
    continuity_score: float = 0.0

    @property
    def key(self) -> tuple[str, str]:
        """Session key."""
        return (self.tenant_id, self.conversation_id)

    @property
    def last_turn(self) -> Turn | None:
        """Most recent turn, or None for a new session."""
        return self.turns[-1] if self.turns else None

    @property
    def next_sequence(self) -> int:
        """Sequence number the next appended turn receives."""
        return self.turns[-1].sequence + 1 if self.turns else 1

    def snapshot(self, max_turns: int = 10) -> SessionSnapshot:
        """Build an immutable snapshot holding at most ``max_turns`` turns."""
        recent = tuple(self.turns[-max_turns:]) if max_turns > 0 else ()
        return SessionSnapshot(
            tenant_id=self.tenant_id,
            conversation_id=self.conversation_id,
            recent_turns=recent,
            continuity_score=self.continuity_score,
        )

    def summary(self, max_turns: int = 5) -> SessionSummary:
        """Build a read-only summary of this session."""
        channels: list[str] = []
        for turn in self.turns:
            if turn.channel not in channels:
                channels.append(turn.channel)
        last = self.last_turn
        return SessionSummary(
            tenant_id=self.tenant_id,
            conversation_id=self.conversation_id,
            turn_count=len(self.turns),
            created_at=self.created_at,
            last_active=self.last_active,
            continuity_score=self.continuity_score,
            last_category=last.category if last else None,
            channels=tuple(channels),
            recent_turns=tuple(self.turns[-max_turns:]) if max_turns > 0 else (),
        )
