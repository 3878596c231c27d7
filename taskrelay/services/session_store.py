"""Fast session tier: in-memory store with sliding TTL.

Entries expire after a period of inactivity. Every ``get`` and ``set``
refreshes the entry's expiry; ``peek`` reads without refreshing, for
read-only inspection. Writes sweep out expired entries at most once per
sweep interval, so keys that are never read again are still reclaimed.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from taskrelay.orchestrator.models.session import Session

SessionKey = tuple[str, str]


@dataclass
class _Entry:
    session: Session
    expires_at: float


@dataclass(frozen=True)
class FastStoreStats:
    """Fast tier counters."""

    total_keys: int
    active_keys: int
    expired_keys: int


class FastSessionStore:
    """In-memory session cache with sliding TTL.

    Args:
        ttl_seconds: Inactivity period after which a session is evicted.
        clock: Monotonic time source, injectable for tests.
        sweep_interval_seconds: Minimum time between expiry sweeps run by
            writes. Defaults to ``ttl_seconds``.
    """

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._sweep_interval = (
            ttl_seconds if sweep_interval_seconds is None else sweep_interval_seconds
        )
        self._next_sweep = clock() + self._sweep_interval
        self._entries: dict[SessionKey, _Entry] = {}
        self._lock = asyncio.Lock()

    def _evict_expired(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if now > e.expires_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval
        return len(expired)

    def _store(self, key: SessionKey, session: Session) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self._evict_expired(now)
        self._entries[key] = _Entry(session, now + self._ttl)

    async def get(self, key: SessionKey) -> Session | None:
        """Get a live session and refresh its expiry."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            now = self._clock()
            if now > entry.expires_at:
                del self._entries[key]
                return None
            entry.expires_at = now + self._ttl
            return entry.session

    async def peek(self, key: SessionKey) -> Session | None:
        """Get a live session without refreshing its expiry."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() > entry.expires_at:
                return None
            return entry.session

    async def set(self, key: SessionKey, session: Session) -> None:
        """Store a session with a fresh expiry."""
        async with self._lock:
            self._store(key, session)

    async def set_if_newer(self, key: SessionKey, session: Session) -> Session:
        """Store a session unless the live entry already holds as many turns.

        Returns:
            The session held for the key afterwards: ``session`` if it was
            stored, otherwise the live entry, whose expiry is refreshed.
        """
        async with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if (
                entry is not None
                and now <= entry.expires_at
                and entry.session.next_sequence >= session.next_sequence
            ):
                entry.expires_at = now + self._ttl
                return entry.session
            self._store(key, session)
            return session

    async def delete(self, key: SessionKey) -> bool:
        """Evict a session. Returns whether it was present."""
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear_expired(self) -> int:
        """Evict expired entries and return how many were removed."""
        async with self._lock:
            return self._evict_expired(self._clock())

    async def stats(self) -> FastStoreStats:
        """Current key counts."""
        async with self._lock:
            now = self._clock()
            active = sum(1 for e in self._entries.values() if now <= e.expires_at)
            return FastStoreStats(
                total_keys=len(self._entries),
                active_keys=active,
                expired_keys=len(self._entries) - active,
            )
