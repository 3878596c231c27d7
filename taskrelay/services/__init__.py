"""Service layer for TaskRelay.

Provides the execution backend and wrapper, capability invocation, usage
accounting and the two-tier session manager.
"""

from taskrelay.services.anthropic_backend import (
    AnthropicBackend,
    BackendResponse,
    ExecutionBackend,
)
from taskrelay.services.capabilities import (
    Capability,
    CapabilityInvoker,
    CapabilityRegistry,
    HttpCapabilityGateway,
    build_registry,
)
from taskrelay.services.execution_wrapper import ExecutionWrapper
from taskrelay.services.session_manager import SessionManager
from taskrelay.services.session_persistence_service import (
    DurableSessionStore,
    SqlSessionStore,
)
from taskrelay.services.session_store import FastSessionStore
from taskrelay.services.usage import (
    InMemoryUsageSink,
    LoggingUsageSink,
    UsageSink,
    compute_cost,
)

__all__ = [
    "AnthropicBackend",
    "BackendResponse",
    "ExecutionBackend",
    "Capability",
    "CapabilityInvoker",
    "CapabilityRegistry",
    "HttpCapabilityGateway",
    "build_registry",
    "ExecutionWrapper",
    "SessionManager",
    "DurableSessionStore",
    "SqlSessionStore",
    "FastSessionStore",
    "InMemoryUsageSink",
    "LoggingUsageSink",
    "UsageSink",
    "compute_cost",
]
