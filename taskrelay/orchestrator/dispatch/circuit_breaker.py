"""Per-target circuit breaker.

State machine per backend target:

    CLOSED --(K consecutive failures, or failure rate over the rolling
              window with at least ``min_calls`` calls)--> OPEN
    CLOSED --(rate limit)--> OPEN, cooldown = advertised retry-after
    OPEN --(cooldown elapsed, next call)--> HALF_OPEN (that call is the probe)
    HALF_OPEN --(probe succeeds)--> CLOSED
    HALF_OPEN --(probe fails)--> OPEN, cooldown multiplied (capped)

While OPEN, and while a half-open probe is in flight, ``acquire`` raises
CircuitOpenError immediately. State is shared across concurrent requests
and only mutated inside short ``threading.Lock`` sections.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from taskrelay.config import CircuitConfig
from taskrelay.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class _TargetCircuit:
    """Mutable circuit state for one target. Guarded by the breaker lock."""

    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    outcomes: deque = field(default_factory=deque)  # (timestamp, success)
    opened_at: float = 0.0
    cooldown: float = 0.0
    reopen_count: int = 0
    probe_in_flight: bool = False


@dataclass(frozen=True)
class CircuitSnapshot:
    """Read-only view of one target's circuit."""

    target: str
    state: CircuitState
    consecutive_failures: int
    retry_in: float
    reopen_count: int


class CircuitBreaker:
    """Circuit breaker keyed by backend target.

    Args:
        config: Thresholds, window and cooldown schedule.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        config: CircuitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._circuits: dict[str, _TargetCircuit] = {}

    def _circuit(self, target: str) -> _TargetCircuit:
        circuit = self._circuits.get(target)
        if circuit is None:
            circuit = self._circuits[target] = _TargetCircuit()
        return circuit

    def _scheduled_cooldown(self, reopen_count: int) -> float:
        multiplier = self._config.cooldown_multiplier ** reopen_count
        cooldown = self._config.cooldown_seconds * multiplier
        return min(cooldown, self._config.max_cooldown_seconds)

    def _open(
        self,
        target: str,
        circuit: _TargetCircuit,
        now: float,
        cooldown: float,
        reason: str,
    ) -> None:
        circuit.state = CircuitState.OPEN
        circuit.opened_at = now
        circuit.cooldown = cooldown
        circuit.probe_in_flight = False
        logger.info(
            "Circuit for %s opened (%s), cooldown %.1fs",
            target,
            reason,
            cooldown,
        )

    def _prune(self, circuit: _TargetCircuit, now: float) -> None:
        horizon = now - self._config.window_seconds
        while circuit.outcomes and circuit.outcomes[0][0] < horizon:
            circuit.outcomes.popleft()

    @staticmethod
    def _trailing_failures(circuit: _TargetCircuit) -> int:
        """Failures since the last success, within the window."""
        count = 0
        for _, ok in reversed(circuit.outcomes):
            if ok:
                break
            count += 1
        return count

    def acquire(self, target: str) -> bool:
        """Admit a call to target or fail fast.

        Args:
            target: Backend target identifier.

        Returns:
            True when the admitted call is the half-open probe.

        Raises:
            CircuitOpenError: If the circuit is open or a probe is in flight.
        """
        now = self._clock()
        with self._lock:
            circuit = self._circuit(target)
            if circuit.state == CircuitState.CLOSED:
                return False
            if circuit.state == CircuitState.OPEN:
                ready_at = circuit.opened_at + circuit.cooldown
                if now < ready_at:
                    raise CircuitOpenError(target, ready_at - now)
                circuit.state = CircuitState.HALF_OPEN
                circuit.probe_in_flight = True
                logger.info("Circuit for %s half-open, admitting probe", target)
                return True
            if circuit.probe_in_flight:
                raise CircuitOpenError(target, 0.0)
            circuit.probe_in_flight = True
            return True

    def record_success(self, target: str) -> None:
        """Record a successful call (or a backend that answered at all)."""
        now = self._clock()
        with self._lock:
            circuit = self._circuit(target)
            if circuit.state == CircuitState.HALF_OPEN:
                circuit.state = CircuitState.CLOSED
                circuit.reopen_count = 0
                circuit.probe_in_flight = False
                circuit.outcomes.clear()
                logger.info("Circuit for %s closed after successful probe", target)
            elif circuit.state == CircuitState.OPEN:
                return
            circuit.consecutive_failures = 0
            circuit.outcomes.append((now, True))
            self._prune(circuit, now)

    def record_failure(self, target: str) -> None:
        """Record a transient failure (timeout, connection error, 5xx)."""
        now = self._clock()
        with self._lock:
            circuit = self._circuit(target)
            if circuit.state == CircuitState.HALF_OPEN:
                circuit.reopen_count += 1
                self._open(
                    target,
                    circuit,
                    now,
                    self._scheduled_cooldown(circuit.reopen_count),
                    "probe failed",
                )
                return
            if circuit.state == CircuitState.OPEN:
                return

            circuit.outcomes.append((now, False))
            self._prune(circuit, now)
            circuit.consecutive_failures = self._trailing_failures(circuit)

            calls = len(circuit.outcomes)
            failures = sum(1 for _, ok in circuit.outcomes if not ok)
            if circuit.consecutive_failures >= self._config.failure_threshold:
                reason = f"{circuit.consecutive_failures} consecutive failures"
            elif (
                calls >= self._config.min_calls
                and failures / calls >= self._config.failure_rate_threshold
            ):
                reason = f"failure rate {failures}/{calls}"
            else:
                return
            cooldown = self._scheduled_cooldown(circuit.reopen_count)
            self._open(target, circuit, now, cooldown, reason)

    def record_rate_limit(self, target: str, retry_after: float | None) -> None:
        """Open the circuit for a rate-limited target.

        Args:
            target: Backend target identifier.
            retry_after: Backend-advertised wait in seconds; the default
                cooldown schedule applies when None.
        """
        now = self._clock()
        with self._lock:
            circuit = self._circuit(target)
            if circuit.state == CircuitState.HALF_OPEN:
                circuit.reopen_count += 1
            cooldown = (
                retry_after
                if retry_after is not None
                else self._scheduled_cooldown(circuit.reopen_count)
            )
            circuit.consecutive_failures += 1
            circuit.outcomes.append((now, False))
            self._open(target, circuit, now, cooldown, "rate limited")

    def release_probe(self, target: str) -> None:
        """Give up an admitted probe without an outcome so another call may probe."""
        with self._lock:
            circuit = self._circuit(target)
            if circuit.state == CircuitState.HALF_OPEN and circuit.probe_in_flight:
                circuit.probe_in_flight = False

    def retry_in(self, target: str) -> float:
        """Seconds until target admits a probe; 0 when calls are admitted."""
        now = self._clock()
        with self._lock:
            circuit = self._circuits.get(target)
            if circuit is None or circuit.state != CircuitState.OPEN:
                return 0.0
            return max(0.0, circuit.opened_at + circuit.cooldown - now)

    def state(self, target: str) -> CircuitState:
        """Current state of target's circuit."""
        with self._lock:
            circuit = self._circuits.get(target)
            return circuit.state if circuit else CircuitState.CLOSED

    def snapshot(self) -> list[CircuitSnapshot]:
        """Read-only view of every known circuit."""
        now = self._clock()
        with self._lock:
            return [
                CircuitSnapshot(
                    target=target,
                    state=circuit.state,
                    consecutive_failures=circuit.consecutive_failures,
                    retry_in=(
                        max(0.0, circuit.opened_at + circuit.cooldown - now)
                        if circuit.state == CircuitState.OPEN
                        else 0.0
                    ),
                    reopen_count=circuit.reopen_count,
                )
                for target, circuit in sorted(self._circuits.items())
            ]

    def reset(self, target: str | None = None) -> None:
        """Forget state for one target, or for all targets."""
        with self._lock:
            if target is None:
                self._circuits.clear()
            else:
                self._circuits.pop(target, None)
