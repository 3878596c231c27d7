"""Retry policy for backend attempts.

Only idempotent plans are retried, and only for transient failures
(timeouts, connection errors, server errors). Client errors and rate
limits are never retried in-request. Backoff doubles from the base delay
and is capped.
"""

import random
from typing import Callable

from taskrelay.config import RetryConfig
from taskrelay.errors import TransientBackendError


class RetryPolicy:
    """Bounded-attempt retry decisions with capped exponential backoff.

    Args:
        config: Attempt limit and backoff schedule.
        rng: Random source in [0, 1) for jitter, injectable for tests.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._config = config or RetryConfig()
        self._rng = rng

    @property
    def max_attempts(self) -> int:
        """Maximum attempts per request, including the first."""
        return self._config.max_attempts

    def should_retry(self, error: BaseException, attempt: int, idempotent: bool) -> bool:
        """Decide whether to make another attempt.

        Args:
            error: Failure raised by the attempt.
            attempt: 1-based number of the attempt that failed.
            idempotent: Whether the plan is safe to repeat.

        Returns:
            True when another attempt is allowed.
        """
        if not idempotent:
            return False
        if not isinstance(error, TransientBackendError):
            return False
        return attempt < self._config.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt after ``attempt``.

        Args:
            attempt: 1-based number of the attempt that failed.

        Returns:
            Delay in seconds.
        """
        delay = self._config.base_delay_seconds * (2 ** (attempt - 1))
        delay = min(delay, self._config.max_delay_seconds)
        if self._config.jitter:
            delay *= 1 - self._config.jitter * self._rng()
        return delay
