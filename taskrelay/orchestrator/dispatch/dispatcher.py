"""Dispatcher: circuit breaking and retries around the execution wrapper.

The breaker and the retry policy are independent; the dispatcher composes
them. ``dispatch`` consults the breaker synchronously, so a request to a
target known to be down fails without touching the backend or scheduling
any work. Otherwise the attempts run in a task behind an awaitable handle.

Failure mapping per attempt:

- Transient failure: counted by the breaker, retried when the plan is
  idempotent and attempts remain, else BackendUnavailableError.
- Rate limit: opens the circuit for the advertised retry-after and
  surfaces as ThrottledError. Never retried in-request.
- Client error: the backend answered, so the breaker counts a success;
  surfaces as BackendRejectedError. Never retried.
- Deadline: no breaker outcome; surfaces as DeadlineExceededError.

Example:
    dispatcher = Dispatcher(wrapper, CircuitBreaker(config.circuit))
    handle = dispatcher.dispatch(plan, Deadline(10.0))
    result = await handle
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generator

from taskrelay.errors import (
    BackendClientError,
    BackendRejectedError,
    BackendUnavailableError,
    CircuitOpenError,
    DeadlineExceededError,
    RateLimitError,
    RelayError,
    ThrottledError,
    TransientBackendError,
)
from taskrelay.orchestrator.dispatch.circuit_breaker import CircuitBreaker
from taskrelay.orchestrator.dispatch.deadline import Deadline
from taskrelay.orchestrator.dispatch.retry import RetryPolicy
from taskrelay.orchestrator.models.execution import ExecutionPlan, ExecutionResult

if TYPE_CHECKING:
    from taskrelay.services.execution_wrapper import ExecutionWrapper

logger = logging.getLogger(__name__)


class ExecutionHandle:
    """Awaitable result of a dispatch.

    Either wraps a running task or carries an error decided at dispatch
    time (circuit open), in which case no task exists.

    Args:
        target: Backend target the plan was sent to.
        task: Task running the attempts.
        error: Pre-decided failure.
    """

    def __init__(
        self,
        target: str,
        task: asyncio.Task | None = None,
        error: RelayError | None = None,
    ) -> None:
        self.target = target
        self._task = task
        self._error = error

    @classmethod
    def failed(cls, target: str, error: RelayError) -> "ExecutionHandle":
        """Build a handle that fails immediately when awaited."""
        return cls(target, error=error)

    @property
    def error(self) -> RelayError | None:
        """Failure decided at dispatch time, if any."""
        return self._error

    def done(self) -> bool:
        """Whether the outcome is available without waiting."""
        return self._task is None or self._task.done()

    def cancel(self) -> None:
        """Cancel the running attempts, if any."""
        if self._task is not None:
            self._task.cancel()

    async def result(self) -> ExecutionResult:
        """Wait for the outcome.

        Raises:
            RelayError: Surfaced failure of the dispatch.
        """
        if self._error is not None:
            raise self._error
        if self._task is None:
            raise RuntimeError(f"Execution handle for {self.target} has no task or error")
        return await self._task

    def __await__(self) -> Generator[Any, None, ExecutionResult]:
        return self.result().__await__()


class Dispatcher:
    """Sends execution plans to their backend under breaker and retry policy.

    Args:
        executor: Execution wrapper making single attempts.
        breaker: Circuit breaker shared across requests.
        retry: Retry policy.
        sleep: Coroutine used for backoff, injectable for tests.
    """

    def __init__(
        self,
        executor: "ExecutionWrapper",
        breaker: CircuitBreaker | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._executor = executor
        self._breaker = breaker or CircuitBreaker()
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    @property
    def breaker(self) -> CircuitBreaker:
        """The shared circuit breaker."""
        return self._breaker

    def dispatch(self, plan: ExecutionPlan, deadline: Deadline) -> ExecutionHandle:
        """Start executing a plan.

        Must be called from a running event loop.

        Args:
            plan: Execution plan.
            deadline: Caller's deadline.

        Returns:
            ExecutionHandle. Already failed with
            BackendUnavailableError(known_down=True) when the circuit is open.
        """
        target = plan.backend_target
        try:
            is_probe = self._breaker.acquire(target)
        except CircuitOpenError as e:
            logger.info("Rejecting request for %s: %s", target, e)
            return ExecutionHandle.failed(
                target,
                BackendUnavailableError(target, known_down=True, retry_after=e.retry_in),
            )
        task = asyncio.ensure_future(self._run(plan, deadline, is_probe))
        return ExecutionHandle(target, task)

    async def _run(
        self,
        plan: ExecutionPlan,
        deadline: Deadline,
        is_probe: bool,
    ) -> ExecutionResult:
        target = plan.backend_target
        attempt = 0
        while True:
            attempt += 1
            if attempt > 1:
                try:
                    is_probe = self._breaker.acquire(target)
                except CircuitOpenError as e:
                    raise BackendUnavailableError(
                        target,
                        known_down=False,
                        attempts=attempt - 1,
                        reason=str(e),
                        retry_after=e.retry_in,
                    ) from e

            try:
                result = await self._executor.execute(plan, deadline)
            except RateLimitError as e:
                self._breaker.record_rate_limit(target, e.retry_after)
                retry_after = e.retry_after
                if retry_after is None:
                    retry_after = self._breaker.retry_in(target)
                logger.warning("Backend %s rate limited, retry in %.1fs", target, retry_after)
                raise ThrottledError(target, retry_after) from e
            except TransientBackendError as e:
                self._breaker.record_failure(target)
                if not self._retry.should_retry(e, attempt, plan.idempotent):
                    raise BackendUnavailableError(
                        target, known_down=False, attempts=attempt, reason=str(e)
                    ) from e
                delay = self._retry.delay_for(attempt)
                if not deadline.covers(delay):
                    raise DeadlineExceededError("retry_backoff") from e
                logger.warning(
                    "Attempt %d/%d to %s failed (%s), retrying in %.2fs",
                    attempt,
                    self._retry.max_attempts,
                    target,
                    e,
                    delay,
                )
                await self._sleep(delay)
                continue
            except BackendClientError as e:
                self._breaker.record_success(target)
                raise BackendRejectedError(target, str(e), e.status_code) from e
            except BaseException:
                if is_probe:
                    self._breaker.release_probe(target)
                raise

            self._breaker.record_success(target)
            if attempt > 1:
                logger.info("Request to %s succeeded on attempt %d", target, attempt)
            return result.model_copy(update={"attempts": attempt})
