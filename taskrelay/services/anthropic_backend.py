"""Anthropic execution backend.

Sends an execution plan to Claude: the category picks the model, the
category and skills shape the system prompt, and the skills' capabilities
are offered as tools. Tool-use rounds call the capability invoker and feed
results back until the model stops asking for tools or the round limit is
reached. Capability failures are returned to the model as tool errors.

Example:
    backend = AnthropicBackend(config.execution, invoker=registry)
    response = await backend.complete(plan)
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from anthropic import AsyncAnthropic

from taskrelay.config import ExecutionConfig
from taskrelay.errors import CapabilityError
from taskrelay.orchestrator.models.execution import ExecutionPlan, ToolCallRecord
from taskrelay.orchestrator.system_prompt import build_system_prompt
from taskrelay.services.capabilities import CapabilityInvoker

logger = logging.getLogger(__name__)


@dataclass
class BackendResponse:
    """Raw backend output for one attempt.

    Attributes:
        text: Final assistant text.
        model: Model that answered.
        tokens_in: Input tokens across all API calls of the attempt.
        tokens_out: Output tokens across all API calls of the attempt.
        api_calls: Number of API calls made (1 + tool rounds).
        tool_calls: Capability invocations in order.
    """

    text: str
    model: str
    tokens_in: int = 0
    tokens_out: int = 0
    api_calls: int = 1
    tool_calls: list[ToolCallRecord] = field(default_factory=list)


class ExecutionBackend(Protocol):
    """A generative backend the execution wrapper can call."""

    target: str

    async def complete(self, plan: ExecutionPlan) -> BackendResponse:
        """Produce a response for a plan. Raises backend client exceptions."""
        ...


def _block_to_param(block: Any) -> dict:
    """Convert a response content block into a request message block."""
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if block.type == "text":
        return {"type": "text", "text": block.text}
    return block.model_dump(exclude_none=True)


class AnthropicBackend:
    """Claude backend with a bounded tool-use loop.

    Args:
        config: Execution settings (models, max tokens, tool rounds).
        invoker: Capability invoker for skill tools; no tools when None.
        client: AsyncAnthropic client. Created on first use when omitted.
        target: Backend target name used for circuit breaking and usage.
    """

    def __init__(
        self,
        config: ExecutionConfig,
        invoker: CapabilityInvoker | None = None,
        client: AsyncAnthropic | None = None,
        target: str | None = None,
    ) -> None:
        self._config = config
        self._invoker = invoker
        self._client = client
        self.target = target or config.backend_target

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic()
        return self._client

    async def _invoke(self, name: str, arguments: dict) -> dict:
        if self._invoker is None:
            raise CapabilityError(name, "no capability invoker configured")
        return await self._invoker.invoke(name, arguments)

    async def _run_tools(
        self,
        tool_uses: list[Any],
        records: list[ToolCallRecord],
    ) -> list[dict]:
        """Invoke requested capabilities and build tool_result blocks."""
        results: list[dict] = []
        for block in tool_uses:
            arguments = block.input if isinstance(block.input, dict) else {}
            result: dict[str, Any] = {"type": "tool_result", "tool_use_id": block.id}
            try:
                output = await self._invoke(block.name, arguments)
            except CapabilityError as e:
                logger.warning("Tool %s failed: %s", block.name, e.reason)
                records.append(
                    ToolCallRecord(
                        name=block.name,
                        arguments=arguments,
                        success=False,
                        error=e.reason,
                    )
                )
                result["content"] = str(e)
                result["is_error"] = True
            else:
                records.append(ToolCallRecord(name=block.name, arguments=arguments))
                result["content"] = json.dumps(output, default=str)
            results.append(result)
        return results

    async def complete(self, plan: ExecutionPlan) -> BackendResponse:
        """Run the plan against Claude.

        Args:
            plan: Execution plan.

        Returns:
            BackendResponse with text, token usage and tool calls.

        Raises:
            anthropic.APIError subclasses on backend failure.
        """
        client = self._get_client()
        model = plan.model or self._config.model_for(plan.category)
        system = build_system_prompt(plan.category, plan.skills, plan.session)
        tools = self._invoker.tools_for(plan.skills) if self._invoker is not None else []
        messages: list[dict] = [{"role": "user", "content": plan.request.text}]

        tokens_in = 0
        tokens_out = 0
        api_calls = 0
        rounds = 0
        records: list[ToolCallRecord] = []

        while True:
            kwargs: dict[str, Any] = {
                "model": model,
                "max_tokens": self._config.max_tokens,
                "system": system,
                "messages": messages,
            }
            if tools:
                kwargs["tools"] = tools
            response = await client.messages.create(**kwargs)
            api_calls += 1
            if response.usage is not None:
                tokens_in += response.usage.input_tokens
                tokens_out += response.usage.output_tokens

            tool_uses = [b for b in response.content if b.type == "tool_use"]
            if (
                response.stop_reason != "tool_use"
                or not tool_uses
                or rounds >= self._config.max_tool_rounds
            ):
                text = "".join(b.text for b in response.content if b.type == "text")
                return BackendResponse(
                    text=text.strip(),
                    model=response.model or model,
                    tokens_in=tokens_in,
                    tokens_out=tokens_out,
                    api_calls=api_calls,
                    tool_calls=records,
                )

            rounds += 1
            logger.debug("Tool round %d: %s", rounds, [b.name for b in tool_uses])
            assistant_blocks = [_block_to_param(b) for b in response.content]
            messages.append({"role": "assistant", "content": assistant_blocks})
            tool_results = await self._run_tools(tool_uses, records)
            messages.append({"role": "user", "content": tool_results})
