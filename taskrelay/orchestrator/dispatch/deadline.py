"""Request deadline tracking on a monotonic clock."""

import math
import time
from typing import Callable

from taskrelay.errors import DeadlineExceededError


class Deadline:
    """Time budget for one request.

    Args:
        budget_seconds: Seconds available from creation; None for unbounded.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        budget_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = None if budget_seconds is None else clock() + budget_seconds

    @property
    def is_bounded(self) -> bool:
        """Whether the deadline has a finite budget."""
        return self._expires_at is not None

    def remaining(self) -> float:
        """Seconds left, never negative; infinity when unbounded."""
        if self._expires_at is None:
            return math.inf
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        """Whether the budget is used up."""
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self, stage: str) -> None:
        """Raise DeadlineExceededError if the budget is used up.

        Args:
            stage: Pipeline stage name reported on the error.
        """
        if self.expired():
            raise DeadlineExceededError(stage)

    def cap(self, timeout: float) -> tuple[float, bool]:
        """Clamp a timeout to the remaining budget.

        Args:
            timeout: Configured timeout in seconds.

        Returns:
            Tuple of (effective timeout, whether the deadline is the bound).
        """
        remaining = self.remaining()
        if remaining < timeout:
            return remaining, True
        return timeout, False

    def covers(self, delay: float) -> bool:
        """Whether waiting ``delay`` seconds leaves budget for another attempt."""
        return self.remaining() > delay
