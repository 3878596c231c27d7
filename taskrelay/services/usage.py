"""Usage accounting for backend calls.

Every backend attempt produces one ``UsageRecord`` with token counts, cost,
latency and outcome. Records go to a sink; recording is fire-and-forget,
so a failing sink is logged and never interrupts a request.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Protocol

from taskrelay.config import ModelPricing
from taskrelay.orchestrator.models.execution import UsageRecord

logger = logging.getLogger(__name__)

TOKENS_PER_PRICING_UNIT = 1_000_000


def compute_cost(
    model: str,
    tokens_in: int,
    tokens_out: int,
    pricing: dict[str, ModelPricing],
) -> float:
    """Compute the USD cost of a call.

    Args:
        model: Model identifier.
        tokens_in: Input tokens.
        tokens_out: Output tokens.
        pricing: Model -> USD per million tokens.

    Returns:
        Cost in USD; 0.0 for models without pricing.
    """
    rates = pricing.get(model)
    if rates is None:
        return 0.0
    cost = (tokens_in * rates.input + tokens_out * rates.output) / TOKENS_PER_PRICING_UNIT
    return round(cost, 6)


class UsageSink(Protocol):
    """Destination for usage records."""

    def record(self, usage: UsageRecord) -> None:
        """Accept one usage record."""
        ...


class LoggingUsageSink:
    """Writes usage records to the log at INFO."""

    def record(self, usage: UsageRecord) -> None:
        logger.info(
            "usage target=%s model=%s tenant=%s in=%d out=%d cost=%.6f latency_ms=%.1f "
            "success=%s late=%s",
            usage.backend_target,
            usage.model,
            usage.tenant_id,
            usage.tokens_in,
            usage.tokens_out,
            usage.cost,
            usage.latency_ms,
            usage.success,
            usage.late,
        )


@dataclass
class UsageTotals:
    """Aggregated usage."""

    calls: int = 0
    failures: int = 0
    tokens_in: int = 0
    tokens_out: int = 0
    cost: float = 0.0


class InMemoryUsageSink:
    """Keeps usage records in memory and aggregates them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[UsageRecord] = []

    def record(self, usage: UsageRecord) -> None:
        with self._lock:
            self._records.append(usage)

    @property
    def records(self) -> list[UsageRecord]:
        """Copy of recorded usage, in arrival order."""
        with self._lock:
            return list(self._records)

    def totals(self, tenant_id: str | None = None) -> UsageTotals:
        """Aggregate usage, optionally for one tenant."""
        totals = UsageTotals()
        for usage in self.records:
            if tenant_id is not None and usage.tenant_id != tenant_id:
                continue
            totals.calls += 1
            totals.failures += 0 if usage.success else 1
            totals.tokens_in += usage.tokens_in
            totals.tokens_out += usage.tokens_out
            totals.cost += usage.cost
        totals.cost = round(totals.cost, 6)
        return totals


def emit_usage(sink: UsageSink, usage: UsageRecord) -> None:
    """Hand a record to a sink without letting sink failures escape.

    Args:
        sink: Usage sink.
        usage: Record to deliver.
    """
    try:
        sink.record(usage)
    except Exception as e:
        logger.warning("Usage sink %s failed: %s", type(sink).__name__, e)
