"""Two-tier session manager for per-conversation continuity.

Sessions live in a fast in-memory tier with sliding expiry and are
mirrored into a durable tier. Reads go fast tier first, then durable
(read-through, repopulating the fast tier). Writes update the fast tier
synchronously and queue a durable write-through that the caller never
waits on. Fast-tier operations are bounded by a short timeout; a timeout
counts as a miss.

Turns for one session key are serialized by a per-key asyncio lock held
by the caller for the whole turn. Different sessions never wait on each
other.

Example:
    mgr = SessionManager(config.session, durable=SqlSessionStore(SessionLocal))
    async with mgr.turn_lock("acme", "conv-1"):
        session = await mgr.get_or_create("acme", "conv-1")
        score = mgr.continuity_score(session, analysis)
        await mgr.append_turn(session, turn, continuity_score=score)
    await mgr.aclose()
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from taskrelay.config import SessionConfig
from taskrelay.orchestrator.models.analysis import AnalysisResult, Intent
from taskrelay.orchestrator.models.request import utc_now
from taskrelay.orchestrator.models.routing import ContinuityContext
from taskrelay.orchestrator.models.session import Session, SessionSummary, Turn
from taskrelay.services.session_persistence_service import DurableSessionStore
from taskrelay.services.session_store import FastSessionStore, SessionKey

logger = logging.getLogger(__name__)


def _jaccard(left: set, right: set) -> float:
    if not left and not right:
        return 0.0
    return len(left & right) / len(left | right)


class SessionManager:
    """Owns session lifecycle across the fast and durable tiers.

    Args:
        config: TTL, timeout, decay and write-through settings.
        durable: Durable store, or None to run on the fast tier only.
        fast: Fast store. Created from ``config`` when omitted.
        now: Wall-clock source for turn ages, injectable for tests.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        durable: DurableSessionStore | None = None,
        fast: FastSessionStore | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config or SessionConfig()
        self._durable = durable
        self._fast = fast or FastSessionStore(self._config.fast_ttl_seconds)
        self._now = now
        self._locks: weakref.WeakValueDictionary[SessionKey, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._queue: asyncio.Queue[tuple[SessionKey, Session]] | None = None
        self._worker: asyncio.Task | None = None
        self._dropped_writes = 0

    @property
    def dropped_writes(self) -> int:
        """Durable writes abandoned after exhausting retries or queue space."""
        return self._dropped_writes

    def turn_lock(self, tenant_id: str, conversation_id: str) -> asyncio.Lock:
        """Lock serializing turns of one session.

        The lock lives as long as someone holds a reference to it.
        """
        key = (tenant_id, conversation_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # Fast tier

    async def _fast_get(self, key: SessionKey, refresh: bool = True) -> Session | None:
        op = self._fast.get(key) if refresh else self._fast.peek(key)
        try:
            return await asyncio.wait_for(op, self._config.fast_tier_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Fast tier read timed out for %s/%s, treating as miss", *key)
            return None

    async def _fast_set(self, key: SessionKey, session: Session) -> None:
        try:
            await asyncio.wait_for(
                self._fast.set(key, session), self._config.fast_tier_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Fast tier write timed out for %s/%s", *key)

    async def _fast_set_if_newer(self, key: SessionKey, session: Session) -> Session:
        try:
            return await asyncio.wait_for(
                self._fast.set_if_newer(key, session), self._config.fast_tier_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Fast tier write timed out for %s/%s", *key)
            return session

    # Durable tier

    async def _durable_read(self, key: SessionKey) -> Session | None:
        if self._durable is None:
            return None
        try:
            return await asyncio.to_thread(self._durable.read, *key)
        except SQLAlchemyError as e:
            logger.warning("Durable read failed for %s/%s: %s", key[0], key[1], e)
            return None

    def _enqueue_write(self, key: SessionKey, session: Session) -> None:
        if self._durable is None:
            return
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._config.write_queue_size)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain_writes(self._queue, self._durable))
        try:
            self._queue.put_nowait((key, session.model_copy(deep=True)))
        except asyncio.QueueFull:
            self._dropped_writes += 1
            logger.warning(
                "Durable write queue full, dropping write for %s/%s", key[0], key[1]
            )

    async def _write_with_retry(
        self, durable: DurableSessionStore, key: SessionKey, session: Session
    ) -> None:
        attempts = self._config.write_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                ok = await asyncio.to_thread(durable.write, key[0], key[1], session)
            except SQLAlchemyError as e:
                logger.warning("Durable write raised for %s/%s: %s", key[0], key[1], e)
                ok = False
            if ok:
                return
            if attempt < attempts:
                logger.warning(
                    "Durable write %d/%d failed for %s/%s, retrying",
                    attempt,
                    attempts,
                    key[0],
                    key[1],
                )
                await asyncio.sleep(self._config.write_retry_delay_seconds)
        self._dropped_writes += 1
        logger.error(
            "Dropping durable write for %s/%s after %d attempts", key[0], key[1], attempts
        )

    async def _drain_writes(
        self, queue: asyncio.Queue[tuple[SessionKey, Session]], durable: DurableSessionStore
    ) -> None:
        while True:
            key, session = await queue.get()
            try:
                await self._write_with_retry(durable, key, session)
            finally:
                queue.task_done()

    # Public API

    async def get_or_create(self, tenant_id: str, conversation_id: str) -> Session:
        """Load a session from the fast tier, then the durable tier, else create it.

        Args:
            tenant_id: Tenant identifier.
            conversation_id: Conversation identifier.

        Returns:
            The live Session for the key.
        """
        key = (tenant_id, conversation_id)
        session = await self._fast_get(key)
        if session is not None:
            return session

        session = await self._durable_read(key)
        if session is not None:
            logger.debug("Session %s/%s loaded from durable tier", *key)
        else:
            session = Session(tenant_id=tenant_id, conversation_id=conversation_id)
            logger.info("Created new session: %s/%s", *key)
        # A timed-out read is not proof of absence; never replace a newer live entry.
        return await self._fast_set_if_newer(key, session)

    async def append_turn(
        self,
        session: Session,
        turn: Turn,
        continuity_score: float | None = None,
    ) -> Session:
        """Append a turn, update the fast tier and queue the durable write.

        Args:
            session: Session obtained from ``get_or_create``.
            turn: Turn to append. Its sequence must be ``session.next_sequence``.
            continuity_score: Score to record on the session, if computed.

        Returns:
            The updated session.

        Raises:
            ValueError: If the turn's sequence is out of order.
        """
        if turn.sequence != session.next_sequence:
            raise ValueError(
                f"Turn sequence {turn.sequence} out of order for "
                f"{session.tenant_id}/{session.conversation_id}; "
                f"expected {session.next_sequence}"
            )
        session.turns.append(turn)
        session.last_active = turn.timestamp
        if continuity_score is not None:
            session.continuity_score = continuity_score

        await self._fast_set(session.key, session)
        self._enqueue_write(session.key, session)
        return session

    def continuity_score(
        self,
        session: Session,
        analysis: AnalysisResult | None = None,
        now: datetime | None = None,
    ) -> float:
        """Score in [0, 1] of how strongly a new request continues the session.

        Combines recency of the last turn (exponential decay with the
        configured half-life) with topical similarity between the new
        request and the last turn: matching intent and overlapping
        routing entities. A follow-up phrasing lifts similarity to at
        least the follow-up floor.

        Args:
            session: Session being continued.
            analysis: Analysis of the new request, if available.
            now: Reference time. Defaults to the manager's clock.

        Returns:
            Continuity score; 0.0 for a session without turns.
        """
        last = session.last_turn
        if last is None:
            return 0.0
        now = now or self._now()
        elapsed = max(0.0, (now - last.timestamp).total_seconds())
        recency = 0.5 ** (elapsed / self._config.half_life_seconds)

        similarity = 0.0
        if analysis is not None:
            if analysis.intent != Intent.UNKNOWN and analysis.intent == last.intent:
                similarity += 0.5
            similarity += 0.5 * _jaccard(
                set(analysis.entity_signature()), set(last.entity_signature)
            )
            if analysis.is_follow_up:
                similarity = max(similarity, self._config.follow_up_floor)

        score = (
            self._config.recency_weight * recency
            + self._config.similarity_weight * similarity
        )
        return round(min(1.0, max(0.0, score)), 6)

    def continuity_context(
        self,
        session: Session,
        analysis: AnalysisResult | None = None,
        now: datetime | None = None,
    ) -> ContinuityContext:
        """Continuity signal for the selectors."""
        last = session.last_turn
        if last is None:
            return ContinuityContext()
        return ContinuityContext(
            score=self.continuity_score(session, analysis, now),
            last_category=last.category,
            last_skills=last.skills,
        )

    async def peek(self, tenant_id: str, conversation_id: str) -> Session | None:
        """Load a session without side effects.

        Neither refreshes the fast-tier expiry nor repopulates the fast tier.
        """
        key = (tenant_id, conversation_id)
        session = await self._fast_get(key, refresh=False)
        if session is None:
            session = await self._durable_read(key)
        return session

    async def inspect(self, tenant_id: str, conversation_id: str) -> SessionSummary | None:
        """Read-only summary of a session.

        Returns:
            SessionSummary, or None if the session is unknown to both tiers.
        """
        session = await self.peek(tenant_id, conversation_id)
        if session is None:
            return None
        return session.summary()

    async def flush(self) -> None:
        """Wait until every queued durable write has been attempted."""
        if self._queue is not None and self._worker is not None and not self._worker.done():
            await self._queue.join()

    async def aclose(self) -> None:
        """Drain pending durable writes and stop the write worker."""
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
