"""Inbound request model.

A Request is what a channel adapter (HTTP API, CLI, chat bridge) hands to
the orchestrator. It is immutable once built; validation of its content
happens in the pipeline so that malformed requests surface as typed
``ValidationError`` with a registry code.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from taskrelay.orchestrator.models.routing import Category


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Request(BaseModel):
    """A single natural-language work request.

    Attributes:
        text: Raw request text as typed by the user.
        tenant_id: Organization the request belongs to.
        conversation_id: Conversation (thread) identifier within the tenant.
        user_id: Identifier of the requesting user.
        channel: Originating channel (e.g. "web", "slack", "cli").
        arrived_at: Arrival timestamp.
        deadline_seconds: Optional time budget for the whole request.
        category_pin: Optional explicit category chosen by the caller.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Raw request text")
    tenant_id: str = Field(..., description="Tenant identifier")
    conversation_id: str = Field(..., description="Conversation identifier")
    user_id: str = Field(default="anonymous", description="Requesting user")
    channel: str = Field(default="web", description="Originating channel")
    arrived_at: datetime = Field(default_factory=utc_now, description="Arrival time")
    deadline_seconds: Optional[float] = Field(
        default=None,
        description="Time budget in seconds for the whole request",
    )
    category_pin: Optional[Category] = Field(
        default=None,
        description="Explicit category chosen by the caller",
    )

    @property
    def session_key(self) -> tuple[str, str]:
        """Key identifying the conversation session."""
        return (self.tenant_id, self.conversation_id)
