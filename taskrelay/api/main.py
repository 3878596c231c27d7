"""FastAPI application for the TaskRelay API.

Provides the main application instance with routers and exception
handlers configured. Relay errors map to HTTP status codes:

- ValidationError -> 422
- ThrottledError -> 429 with Retry-After
- BackendUnavailableError -> 503 (Retry-After when the circuit is open)
- DeadlineExceededError -> 504
- BackendRejectedError -> 502
"""

import logging
import math
import os
import sys
import time as _time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("taskrelay").setLevel(logging.INFO)

from taskrelay import __version__
from taskrelay.api.routes import requests, route_preview, sessions
from taskrelay.api.schemas import CircuitResponse, HealthResponse
from taskrelay.config import load_config
from taskrelay.db.connection import SessionLocal, create_db_engine, engine, init_db
from taskrelay.errors import (
    BackendRejectedError,
    BackendUnavailableError,
    DeadlineExceededError,
    RelayError,
    ThrottledError,
    ValidationError,
)
from taskrelay.orchestrator.pipeline import Orchestrator
from taskrelay.services.session_persistence_service import SqlSessionStore

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


def _build_orchestrator() -> Orchestrator:
    """Load configuration and wire the pipeline with the durable tier."""
    config = load_config(os.environ.get("TASKRELAY_CONFIG_PATH"))
    if config.database_url:
        db_engine = create_db_engine(config.database_url)
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    else:
        db_engine = engine
        session_factory = SessionLocal
    init_db(db_engine)
    return Orchestrator.from_config(config, durable=SqlSessionStore(session_factory))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: build the orchestrator, drain session writes on shutdown."""
    global _startup_time
    _startup_time = _time.time()

    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = _build_orchestrator()
        logger.info("TaskRelay API started (version %s)", __version__)

    yield

    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is not None:
        await orchestrator.aclose()
    logger.info("TaskRelay API stopped")


app = FastAPI(
    title="TaskRelay API",
    description="Routes natural-language work requests to an execution backend",
    version=__version__,
    lifespan=lifespan,
)


def _status_for(exc: RelayError) -> int:
    """HTTP status code for a relay error."""
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, ThrottledError):
        return 429
    if isinstance(exc, BackendUnavailableError):
        return 503
    if isinstance(exc, DeadlineExceededError):
        return 504
    if isinstance(exc, BackendRejectedError):
        return 502
    return 500


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Handle RelayError exceptions with consistent format.

    Args:
        request: The incoming request.
        exc: The RelayError exception.

    Returns:
        JSONResponse with error details and, for throttling or an open
        circuit, a Retry-After header.
    """
    headers: dict[str, str] = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(max(1, math.ceil(retry_after)))
    return JSONResponse(
        status_code=_status_for(exc),
        content={
            "error_code": exc.code,
            "message": exc.message,
            "remediation": exc.remediation,
            "is_retryable": exc.is_retryable,
            "details": exc.details if exc.details else None,
        },
        headers=headers,
    )


# Include routers
app.include_router(requests.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(route_preview.router, prefix="/api/v1")


@app.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Health check endpoint with circuit breaker states.

    Status is ``degraded`` while any backend circuit is not closed.

    Returns:
        Health status, version, uptime and circuit states.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    circuits = orchestrator.circuits() if orchestrator is not None else []
    degraded = any(c.state.value != "closed" for c in circuits)
    return HealthResponse(
        status="degraded" if degraded else "healthy",
        version=__version__,
        uptime_seconds=round(_time.time() - _startup_time, 1) if _startup_time else 0.0,
        circuits=[
            CircuitResponse(
                target=c.target,
                state=c.state.value,
                consecutive_failures=c.consecutive_failures,
                retry_in=round(c.retry_in, 3),
            )
            for c in circuits
        ],
    )
