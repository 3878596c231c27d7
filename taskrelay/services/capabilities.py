"""Capability invocation for skill tools.

A capability is a named tool the backend may call during execution. Each
capability belongs to a skill; only tools of the skills attached to a
plan are offered to the backend. Invocation follows one contract:
``invoke(name, arguments) -> dict``, raising ``CapabilityError`` on any
failure.

Example:
    registry = CapabilityRegistry()
    registry.register(Capability(
        name="integration_action",
        skill=Skill.INTEGRATIONS,
        description="Run an action on a work tool",
        input_schema={"type": "object", "properties": {...}},
        handler=gateway.handler("integration_action"),
    ))
    result = await registry.invoke("integration_action", {"provider": "linear"})
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

import httpx

from taskrelay.errors import CapabilityError
from taskrelay.orchestrator.models.routing import Skill

logger = logging.getLogger(__name__)

CapabilityHandler = Callable[[dict], "dict | Awaitable[dict]"]


class CapabilityInvoker(Protocol):
    """Contract for calling a capability by name."""

    def tools_for(self, skills: frozenset[Skill]) -> list[dict]:
        """Tool definitions offered to the backend for these skills."""
        ...

    async def invoke(self, name: str, arguments: dict) -> dict:
        """Invoke a capability, raising CapabilityError on failure."""
        ...


@dataclass(frozen=True)
class Capability:
    """A tool bound to a skill.

    Attributes:
        name: Tool name exposed to the backend.
        skill: Skill that owns the tool.
        description: Tool description for the backend.
        input_schema: JSON schema of the tool arguments.
        handler: Sync or async callable taking the arguments dict.
    """

    name: str
    skill: Skill
    description: str
    input_schema: dict = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: CapabilityHandler | None = None

    def to_tool(self) -> dict:
        """Anthropic tool definition."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class CapabilityRegistry:
    """In-process registry of capabilities."""

    def __init__(self) -> None:
        self._capabilities: dict[str, Capability] = {}

    def register(self, capability: Capability) -> None:
        """Register a capability, replacing any with the same name."""
        self._capabilities[capability.name] = capability
        logger.debug(
            "Registered capability %s for skill %s",
            capability.name,
            capability.skill.value,
        )

    def names(self) -> list[str]:
        """Registered capability names, sorted."""
        return sorted(self._capabilities)

    def tools_for(self, skills: frozenset[Skill]) -> list[dict]:
        """Tool definitions for the given skills, sorted by name."""
        return [
            cap.to_tool()
            for name, cap in sorted(self._capabilities.items())
            if cap.skill in skills
        ]

    async def invoke(self, name: str, arguments: dict) -> dict:
        """Invoke a capability by name.

        Args:
            name: Capability name.
            arguments: Tool arguments.

        Returns:
            Capability result dict.

        Raises:
            CapabilityError: If the capability is unknown or its handler fails.
        """
        capability = self._capabilities.get(name)
        if capability is None or capability.handler is None:
            raise CapabilityError(name, "unknown capability")
        try:
            result = capability.handler(arguments)
            if inspect.isawaitable(result):
                result = await result
        except CapabilityError:
            raise
        except Exception as e:
            logger.warning("Capability %s failed: %s", name, e)
            raise CapabilityError(name, str(e)) from e
        if not isinstance(result, dict):
            return {"result": result}
        return result


class HttpCapabilityGateway:
    """Forwards capability calls to an HTTP integration gateway.

    Each call is a POST of ``{"capability": name, "arguments": {...}}`` to
    the gateway URL; the JSON response body is the result.

    Args:
        base_url: Gateway endpoint.
        timeout: Per-call timeout in seconds.
        client: Optional shared httpx.AsyncClient.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    def handler(self, name: str) -> Callable[[dict], Awaitable[dict]]:
        """Build a capability handler bound to a capability name."""
        async def _call(arguments: dict) -> dict:
            return await self.call(name, arguments)

        return _call

    async def call(self, name: str, arguments: dict) -> dict:
        """POST a capability call to the gateway.

        Raises:
            CapabilityError: On transport failure, non-2xx status or non-JSON body.
        """
        payload: dict[str, Any] = {"capability": name, "arguments": arguments}
        try:
            if self._client is not None:
                response = await self._client.post(
                    self._base_url, json=payload, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._base_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise CapabilityError(name, f"gateway returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise CapabilityError(name, f"gateway unreachable: {e}") from e
        except ValueError as e:
            raise CapabilityError(name, "gateway returned invalid JSON") from e
        return body if isinstance(body, dict) else {"result": body}


INTEGRATION_ACTION_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "provider": {
            "type": "string",
            "enum": ["notion", "slack", "github", "linear", "jira", "asana", "airtable"],
            "description": "Work tool to act on",
        },
        "action": {
            "type": "string",
            "enum": ["create", "update", "delete", "query"],
            "description": "Operation to perform",
        },
        "object": {
            "type": "string",
            "description": "Record type, e.g. task, page, issue",
        },
        "fields": {
            "type": "object",
            "description": "Record fields for create/update, filters for query",
        },
    },
    "required": ["provider", "action"],
}


def build_registry(
    gateway_url: str | None = None,
    timeout: float = 10.0,
) -> CapabilityRegistry:
    """Build the default registry.

    Registers the integration action capability when a gateway URL is set.

    Args:
        gateway_url: Integration gateway endpoint, or None.
        timeout: Per-call gateway timeout in seconds.

    Returns:
        CapabilityRegistry, empty when no gateway is configured.
    """
    registry = CapabilityRegistry()
    if gateway_url:
        gateway = HttpCapabilityGateway(gateway_url, timeout=timeout)
        registry.register(
            Capability(
                name="integration_action",
                skill=Skill.INTEGRATIONS,
                description="Create, update, delete or query records in a connected work tool.",
                input_schema=INTEGRATION_ACTION_SCHEMA,
                handler=gateway.handler("integration_action"),
            )
        )
    return registry
