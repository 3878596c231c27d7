"""FastAPI route for dry-run routing decisions.

Runs analysis, category and skill selection without dispatching to the
backend and without changing the session.
"""

from fastapi import APIRouter, Depends

from taskrelay.api.dependencies import get_orchestrator
from taskrelay.api.schemas import RoutePreviewBody, RoutePreviewResponse, preview_response
from taskrelay.orchestrator.pipeline import Orchestrator

router = APIRouter(prefix="/route", tags=["routing"])


@router.post("/preview", response_model=RoutePreviewResponse)
async def preview_route(
    body: RoutePreviewBody,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RoutePreviewResponse:
    """Preview how a request would be routed."""
    preview = await orchestrator.preview(
        body.text,
        body.tenant_id,
        conversation_id=body.conversation_id,
        category_pin=body.category_pin,
    )
    return preview_response(preview)
