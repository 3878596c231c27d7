"""Dispatch: deadline tracking, circuit breaking, retries."""

from taskrelay.orchestrator.dispatch.circuit_breaker import (
    CircuitBreaker,
    CircuitSnapshot,
    CircuitState,
)
from taskrelay.orchestrator.dispatch.deadline import Deadline
from taskrelay.orchestrator.dispatch.dispatcher import Dispatcher, ExecutionHandle
from taskrelay.orchestrator.dispatch.retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitSnapshot",
    "CircuitState",
    "Deadline",
    "Dispatcher",
    "ExecutionHandle",
    "RetryPolicy",
]
