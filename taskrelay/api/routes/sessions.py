"""FastAPI routes for read-only session inspection."""

from fastapi import APIRouter, Depends, HTTPException

from taskrelay.api.dependencies import get_orchestrator
from taskrelay.api.schemas import SessionResponse, session_response
from taskrelay.orchestrator.pipeline import Orchestrator

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/{tenant_id}/{conversation_id}", response_model=SessionResponse)
async def get_session(
    tenant_id: str,
    conversation_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """Get a session summary.

    Raises:
        HTTPException: If the session is unknown (404).
    """
    summary = await orchestrator.inspect_session(tenant_id, conversation_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session_response(summary)
