"""Process-local TTL cache for category selections.

Entries are keyed by a normalized analysis signature: tenant, intent, the
sorted routing-relevant entity pairs, and the previous turn's category
when a continuity boost shaped the decision. Keys are hashed to a stable
digest so they can be logged and compared across processes.

Each entry also records its tenant in the clear so one tenant's entries
can be dropped when that tenant's routing overrides change.

The cache is bounded (least recently used entries are evicted first) and
thread-safe; every operation holds a short ``threading.Lock`` section.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, NamedTuple

from taskrelay.orchestrator.models.analysis import AnalysisResult
from taskrelay.orchestrator.models.routing import Category, CategorySelection

logger = logging.getLogger(__name__)


def build_cache_key(
    tenant_id: str,
    analysis: AnalysisResult,
    boosted_category: Category | None = None,
) -> str:
    """Compute the cache key for an analysis signature.

    Args:
        tenant_id: Tenant the request belongs to.
        analysis: Analysis of the request.
        boosted_category: Previous turn's category when continuity applied.

    Returns:
        Hex digest identifying the signature.
    """
    parts: dict[str, object] = {
        "tenant": tenant_id,
        "intent": analysis.intent.value,
        "entities": [list(pair) for pair in analysis.entity_signature()],
    }
    if boosted_category is not None:
        parts["ctx:last_category"] = boosted_category.value
    canonical = json.dumps(parts, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class _CacheEntry(NamedTuple):
    expires_at: float
    tenant_id: str | None
    selection: CategorySelection


@dataclass
class CacheStats:
    """Hit/miss counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0


class RouteCache:
    """Bounded TTL cache of category selections.

    Args:
        ttl_seconds: Entry lifetime.
        max_entries: Capacity before LRU eviction.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._stats = CacheStats()

    def get(self, key: str) -> CategorySelection | None:
        """Return the cached selection for key, or None if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                self._stats.misses += 1
                return None
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry.selection

    def put(
        self, key: str, selection: CategorySelection, tenant_id: str | None = None
    ) -> None:
        """Store a selection under key for the configured TTL."""
        expires_at = self._clock() + self._ttl
        with self._lock:
            self._entries[key] = _CacheEntry(expires_at, tenant_id, selection)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._stats.evictions += 1

    def invalidate_tenant(self, tenant_id: str) -> int:
        """Drop every entry stored for a tenant.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            keys = [k for k, e in self._entries.items() if e.tenant_id == tenant_id]
            for key in keys:
                del self._entries[key]
        logger.info("Invalidated %d cached routes for tenant %s", len(keys), tenant_id)
        return len(keys)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
        logger.info("Route cache cleared")

    def stats(self) -> CacheStats:
        """Snapshot of cache counters."""
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                size=len(self._entries),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
