"""FastAPI routes for executing work requests.

Relay errors raised by the pipeline are mapped to HTTP status codes by the
application's exception handler.
"""

from fastapi import APIRouter, Depends

from taskrelay.api.dependencies import get_orchestrator
from taskrelay.api.schemas import RelayRequestBody, RelayResponse, relay_response
from taskrelay.orchestrator.models import Request
from taskrelay.orchestrator.pipeline import Orchestrator

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=RelayResponse)
async def submit_request(
    body: RelayRequestBody,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RelayResponse:
    """Route and execute a natural-language work request.

    Args:
        body: Request payload.
        orchestrator: Pipeline dependency.

    Returns:
        Routing decision and backend result.
    """
    request = Request(
        text=body.text,
        tenant_id=body.tenant_id,
        conversation_id=body.conversation_id,
        user_id=body.user_id,
        channel=body.channel,
        deadline_seconds=body.deadline_seconds,
        category_pin=body.category_pin,
    )
    result = await orchestrator.handle(request)
    return relay_response(result)
