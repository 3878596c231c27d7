"""SQLAlchemy ORM models for the durable session tier.

Sessions and their turns are mirrored here from the fast in-memory tier.
Uses SQLAlchemy 2.0 style with Mapped and mapped_column. Timestamps are
stored as ISO8601 strings.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class RelaySession(Base):
    """Durable copy of a conversation session.

    Attributes:
        id: UUID primary key.
        tenant_id: Tenant identifier.
        conversation_id: Conversation identifier, unique per tenant.
        continuity_score: Rolling continuity score of the latest turn.
        created_at: ISO8601 creation timestamp.
        last_active: ISO8601 timestamp of the last turn.
    """

    __tablename__ = "relay_sessions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "conversation_id", name="uq_relaysess_key"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    conversation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    continuity_score: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    last_active: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    turns: Mapped[list["RelayTurn"]] = relationship(
        "RelayTurn",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="RelayTurn.sequence",
    )

    def __repr__(self) -> str:
        return (
            f"<RelaySession(tenant_id={self.tenant_id!r}, "
            f"conversation_id={self.conversation_id!r})>"
        )


class RelayTurn(Base):
    """One turn of a durable session.

    Attributes:
        id: UUID primary key.
        session_id: FK to RelaySession.
        sequence: Position within the session (strictly increasing).
        text: Request text.
        intent: Classified intent value.
        entity_signature: JSON list of [type, value] pairs.
        category: Category value the turn was routed to.
        skills: JSON list of skill values.
        result_summary: Truncated backend response.
        channel: Channel the turn arrived on.
        created_at: ISO8601 turn timestamp.
    """

    __tablename__ = "relay_turns"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_relayturn_session_seq"),
        Index("ix_relayturn_session_seq", "session_id", "sequence"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("relay_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    intent: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_signature: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    skills: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    result_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    channel: Mapped[str] = mapped_column(String(50), nullable=False, default="web")
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    session: Mapped["RelaySession"] = relationship(
        "RelaySession", back_populates="turns"
    )

    def __repr__(self) -> str:
        return f"<RelayTurn(session_id={self.session_id!r}, sequence={self.sequence})>"
