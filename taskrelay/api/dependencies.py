"""Shared FastAPI dependencies."""

from fastapi import HTTPException, Request

from taskrelay.orchestrator.pipeline import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """Return the process-wide orchestrator built at startup.

    Raises:
        HTTPException: 503 if the application has not finished starting.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    return orchestrator
