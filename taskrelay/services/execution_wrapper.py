"""Last-mile backend call for one execution attempt.

The execution wrapper is the only code that calls the generative backend.
Each attempt is bounded by the smaller of the configured request timeout
and the caller's remaining deadline. Backend exceptions are translated into
the internal failure taxonomy, and every attempt produces one usage record.

A timed-out attempt is abandoned, not cancelled: the backend call keeps
running in the background and, if it eventually answers, its usage is
still recorded (flagged ``late``) so spend is never lost.

Example:
    wrapper = ExecutionWrapper(config.execution, backend, usage_sink)
    result = await wrapper.execute(plan, Deadline(10.0))
"""

import asyncio
import logging
import time

from taskrelay.config import ExecutionConfig
from taskrelay.errors import (
    BackendFailure,
    DeadlineExceededError,
    TransientBackendError,
    translate_backend_exception,
)
from taskrelay.orchestrator.dispatch.deadline import Deadline
from taskrelay.orchestrator.models.execution import (
    ExecutionPlan,
    ExecutionResult,
    UsageRecord,
)
from taskrelay.services.anthropic_backend import BackendResponse, ExecutionBackend
from taskrelay.services.usage import LoggingUsageSink, UsageSink, compute_cost, emit_usage

logger = logging.getLogger(__name__)


class ExecutionWrapper:
    """Runs one backend attempt with timeout, error mapping and usage.

    Args:
        config: Execution settings (timeout, pricing).
        backend: Backend to call.
        usage_sink: Destination for usage records. Logs when omitted.
    """

    def __init__(
        self,
        config: ExecutionConfig,
        backend: ExecutionBackend,
        usage_sink: UsageSink | None = None,
    ) -> None:
        self._config = config
        self._backend = backend
        self._usage_sink = usage_sink or LoggingUsageSink()
        # Abandoned attempts still running in the background
        self._abandoned: set[asyncio.Task] = set()

    @property
    def target(self) -> str:
        """Backend target name."""
        return self._backend.target

    @property
    def abandoned_count(self) -> int:
        """Number of timed-out attempts whose backend call is still running."""
        return len(self._abandoned)

    def _record(
        self,
        plan: ExecutionPlan,
        started: float,
        response: BackendResponse | None = None,
        late: bool = False,
    ) -> None:
        latency_ms = (time.monotonic() - started) * 1000
        if response is None:
            usage = UsageRecord(
                backend_target=self.target,
                model=plan.model or self._config.model_for(plan.category),
                tenant_id=plan.request.tenant_id,
                latency_ms=latency_ms,
                success=False,
            )
        else:
            usage = UsageRecord(
                backend_target=self.target,
                model=response.model,
                tenant_id=plan.request.tenant_id,
                tokens_in=response.tokens_in,
                tokens_out=response.tokens_out,
                cost=compute_cost(
                    response.model,
                    response.tokens_in,
                    response.tokens_out,
                    self._config.pricing,
                ),
                latency_ms=latency_ms,
                success=True,
                late=late,
            )
        emit_usage(self._usage_sink, usage)

    def _abandon(self, task: asyncio.Task, plan: ExecutionPlan, started: float) -> None:
        """Keep a timed-out call alive and record its usage if it answers."""
        self._abandoned.add(task)

        def _on_done(done: asyncio.Task) -> None:
            self._abandoned.discard(done)
            if done.cancelled() or done.exception() is not None:
                return
            logger.info(
                "Late response from %s for tenant %s after timeout",
                self.target,
                plan.request.tenant_id,
            )
            self._record(plan, started, done.result(), late=True)

        task.add_done_callback(_on_done)

    async def execute(self, plan: ExecutionPlan, deadline: Deadline) -> ExecutionResult:
        """Run one attempt against the backend.

        Args:
            plan: Execution plan.
            deadline: Caller's deadline.

        Returns:
            ExecutionResult for the attempt (``attempts`` is set by the
            dispatcher).

        Raises:
            DeadlineExceededError: If the deadline is used up, or bounded
                this attempt's timeout and elapsed.
            TransientBackendError: Timeout, connection failure or 5xx.
            RateLimitError: Backend answered 429.
            BackendClientError: Backend answered another 4xx.
        """
        timeout, bounded_by_deadline = deadline.cap(self._config.request_timeout_seconds)
        if timeout <= 0:
            raise DeadlineExceededError("execution")

        started = time.monotonic()
        task = asyncio.ensure_future(self._backend.complete(plan))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            self._abandon(task, plan, started)
            self._record(plan, started)
            logger.warning(
                "Backend %s timed out after %.2fs (deadline bound: %s)",
                self.target,
                timeout,
                bounded_by_deadline,
            )
            if bounded_by_deadline:
                raise DeadlineExceededError("execution")
            raise TransientBackendError("timeout", f"no response within {timeout:.2f}s")

        try:
            response = task.result()
        except BackendFailure:
            self._record(plan, started)
            raise
        except Exception as e:
            self._record(plan, started)
            failure = translate_backend_exception(e)
            if failure is None:
                raise
            logger.warning("Backend %s failed: %s", self.target, failure)
            raise failure from e

        self._record(plan, started, response)
        return ExecutionResult(
            text=response.text,
            backend_target=self.target,
            model=response.model,
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
            latency_ms=(time.monotonic() - started) * 1000,
            attempts=1,
            tool_calls=tuple(response.tool_calls),
        )
