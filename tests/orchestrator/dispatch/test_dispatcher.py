"""Tests for the dispatcher: breaker and retry composition around the wrapper."""

import asyncio
import time

import pytest

from taskrelay.config import CircuitConfig, ExecutionConfig, RetryConfig
from taskrelay.errors import (
    BackendClientError,
    BackendRejectedError,
    BackendUnavailableError,
    DeadlineExceededError,
    RateLimitError,
    ThrottledError,
    TransientBackendError,
)
from taskrelay.orchestrator.dispatch import (
    CircuitBreaker,
    CircuitState,
    Deadline,
    Dispatcher,
    ExecutionHandle,
    RetryPolicy,
)
from taskrelay.orchestrator.models import Category, ExecutionPlan, Request
from taskrelay.orchestrator.models.session import SessionSnapshot
from taskrelay.services.execution_wrapper import ExecutionWrapper
from tests.helpers import FakeClock, ScriptedBackend, make_response

TARGET = "anthropic"


def _plan(idempotent: bool = True) -> ExecutionPlan:
    request = Request(text="summarize the sprint", tenant_id="acme", conversation_id="c1")
    return ExecutionPlan(
        request=request,
        category=Category.WRITING,
        session=SessionSnapshot(tenant_id="acme", conversation_id="c1"),
        idempotent=idempotent,
        backend_target=TARGET,
        model="claude-sonnet-4-20250514",
    )


def _dispatcher(backend, breaker=None, retry=None, config=None) -> Dispatcher:
    wrapper = ExecutionWrapper(config or ExecutionConfig(), backend)
    return Dispatcher(
        wrapper,
        breaker=breaker or CircuitBreaker(CircuitConfig()),
        retry=retry or RetryPolicy(RetryConfig(max_attempts=3, base_delay_seconds=0.0)),
    )


def _server_error() -> TransientBackendError:
    return TransientBackendError("server", "service unavailable", status_code=503)


# ============================================================================
# Success paths
# ============================================================================


@pytest.mark.asyncio
async def test_success_first_attempt():
    backend = ScriptedBackend(make_response("hello"))
    dispatcher = _dispatcher(backend)

    result = await dispatcher.dispatch(_plan(), Deadline(None))

    assert result.text == "hello"
    assert result.attempts == 1
    assert backend.calls == 1
    assert dispatcher.breaker.state(TARGET) == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_transient_failure_then_success():
    backend = ScriptedBackend(_server_error(), make_response("recovered"))
    dispatcher = _dispatcher(backend)

    result = await dispatcher.dispatch(_plan(), Deadline(None))

    assert result.text == "recovered"
    assert result.attempts == 2


@pytest.mark.asyncio
async def test_backoff_uses_injected_sleep():
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    backend = ScriptedBackend(_server_error(), _server_error(), make_response())
    dispatcher = Dispatcher(
        ExecutionWrapper(ExecutionConfig(), backend),
        retry=RetryPolicy(RetryConfig(base_delay_seconds=0.5, max_delay_seconds=8.0)),
        sleep=fake_sleep,
    )

    result = await dispatcher.dispatch(_plan(), Deadline(None))

    assert result.attempts == 3
    assert delays == [0.5, 1.0]


# ============================================================================
# Failure mapping
# ============================================================================


class TestFailureMapping:
    """Each backend failure surfaces as exactly one typed error."""

    @pytest.mark.asyncio
    async def test_rate_limit_throttles_and_opens_circuit(self):
        backend = ScriptedBackend(RateLimitError("slow down", retry_after=12.0))
        dispatcher = _dispatcher(backend)

        with pytest.raises(ThrottledError) as exc_info:
            await dispatcher.dispatch(_plan(), Deadline(None))

        assert exc_info.value.retry_after == 12.0
        assert backend.calls == 1
        assert dispatcher.breaker.state(TARGET) == CircuitState.OPEN

        handle = dispatcher.dispatch(_plan(), Deadline(None))
        assert handle.done()
        with pytest.raises(BackendUnavailableError) as exc_info:
            await handle
        assert exc_info.value.known_down is True
        assert backend.calls == 1

    @pytest.mark.asyncio
    async def test_rate_limit_without_header_uses_cooldown(self):
        backend = ScriptedBackend(RateLimitError("slow down"))
        dispatcher = _dispatcher(backend)

        with pytest.raises(ThrottledError) as exc_info:
            await dispatcher.dispatch(_plan(), Deadline(None))

        assert exc_info.value.retry_after == pytest.approx(30.0, abs=0.5)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        backend = ScriptedBackend(_server_error())
        dispatcher = _dispatcher(backend)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await dispatcher.dispatch(_plan(), Deadline(None))

        assert exc_info.value.known_down is False
        assert exc_info.value.attempts == 3
        assert backend.calls == 3

    @pytest.mark.asyncio
    async def test_non_idempotent_single_attempt(self):
        backend = ScriptedBackend(_server_error())
        dispatcher = _dispatcher(backend)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await dispatcher.dispatch(_plan(idempotent=False), Deadline(None))

        assert exc_info.value.attempts == 1
        assert backend.calls == 1

    @pytest.mark.asyncio
    async def test_client_error_rejected_and_not_retried(self):
        backend = ScriptedBackend(BackendClientError("invalid api key", status_code=401))
        dispatcher = _dispatcher(backend)

        with pytest.raises(BackendRejectedError) as exc_info:
            await dispatcher.dispatch(_plan(), Deadline(None))

        assert exc_info.value.status_code == 401
        assert backend.calls == 1
        assert dispatcher.breaker.state(TARGET) == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_backoff_beyond_deadline(self):
        backend = ScriptedBackend(_server_error())
        dispatcher = _dispatcher(
            backend, retry=RetryPolicy(RetryConfig(base_delay_seconds=5.0))
        )

        with pytest.raises(DeadlineExceededError) as exc_info:
            await dispatcher.dispatch(_plan(), Deadline(1.0))

        assert exc_info.value.stage == "retry_backoff"
        assert backend.calls == 1


# ============================================================================
# Breaker interaction
# ============================================================================


class TestBreakerInteraction:
    """Open circuits fail fast; circuits opening mid-retry stop the loop."""

    @pytest.mark.asyncio
    async def test_open_circuit_makes_no_backend_call(self):
        breaker = CircuitBreaker(CircuitConfig())
        breaker.record_rate_limit(TARGET, 20.0)
        backend = ScriptedBackend(make_response())
        dispatcher = _dispatcher(backend, breaker=breaker)

        handle = dispatcher.dispatch(_plan(), Deadline(None))

        assert isinstance(handle.error, BackendUnavailableError)
        assert handle.error.known_down is True
        assert handle.error.retry_after == pytest.approx(20.0, abs=0.5)
        with pytest.raises(BackendUnavailableError):
            await handle.result()
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_circuit_opens_between_attempts(self):
        breaker = CircuitBreaker(CircuitConfig(failure_threshold=2))
        backend = ScriptedBackend(_server_error())
        dispatcher = _dispatcher(backend, breaker=breaker)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await dispatcher.dispatch(_plan(), Deadline(None))

        assert exc_info.value.known_down is False
        assert exc_info.value.attempts == 2
        assert backend.calls == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_probe(self):
        breaker = CircuitBreaker(CircuitConfig(cooldown_seconds=0.001))
        breaker.record_rate_limit(TARGET, 0.0)
        backend = ScriptedBackend(KeyError("bug"))
        dispatcher = _dispatcher(backend, breaker=breaker)

        with pytest.raises(KeyError):
            await dispatcher.dispatch(_plan(), Deadline(None))

        assert breaker.state(TARGET) == CircuitState.HALF_OPEN
        assert breaker.acquire(TARGET) is True

    @pytest.mark.asyncio
    async def test_consecutive_timeouts_open_circuit(self):
        backend = ScriptedBackend(0.05)
        dispatcher = _dispatcher(
            backend,
            retry=RetryPolicy(RetryConfig(max_attempts=1)),
            config=ExecutionConfig(request_timeout_seconds=0.01),
        )

        for _ in range(5):
            with pytest.raises(BackendUnavailableError) as exc_info:
                await dispatcher.dispatch(_plan(), Deadline(None))
            assert exc_info.value.known_down is False
        assert dispatcher.breaker.state(TARGET) == CircuitState.OPEN

        started = time.perf_counter()
        handle = dispatcher.dispatch(_plan(), Deadline(None))
        assert handle.done()
        with pytest.raises(BackendUnavailableError) as exc_info:
            await handle
        elapsed = time.perf_counter() - started

        assert exc_info.value.known_down is True
        assert elapsed < 0.005
        assert backend.calls == 5
        # let the abandoned attempts answer late
        await asyncio.sleep(0.06)

    @pytest.mark.asyncio
    async def test_retry_after_elapsed_admits_single_probe(self):
        clock = FakeClock()
        breaker = CircuitBreaker(CircuitConfig(), clock=clock)
        backend = ScriptedBackend(
            RateLimitError("slow down", retry_after=12.0), make_response("back")
        )
        dispatcher = _dispatcher(backend, breaker=breaker)

        with pytest.raises(ThrottledError):
            await dispatcher.dispatch(_plan(), Deadline(None))

        clock.advance(11.9)
        assert dispatcher.dispatch(_plan(), Deadline(None)).error is not None

        clock.advance(0.1)
        probe = dispatcher.dispatch(_plan(), Deadline(None))
        second = dispatcher.dispatch(_plan(), Deadline(None))

        assert probe.error is None
        assert isinstance(second.error, BackendUnavailableError)
        assert (await probe).text == "back"
        assert breaker.state(TARGET) == CircuitState.CLOSED
        assert backend.calls == 2


@pytest.mark.asyncio
async def test_handle_without_task_or_error():
    with pytest.raises(RuntimeError):
        await ExecutionHandle(TARGET).result()
