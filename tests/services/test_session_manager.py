"""Tests for the two-tier session manager.

Covers read-through from the durable tier, durable write-through with
retries, fast-tier timeouts, per-session turn ordering and the
continuity score.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from taskrelay.config import SessionConfig
from taskrelay.orchestrator.models import (
    AnalysisResult,
    Category,
    Entity,
    EntityType,
    Intent,
    Session,
    Skill,
    Turn,
)
from taskrelay.services.session_manager import SessionManager
from taskrelay.services.session_store import FastSessionStore

NOW = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)


def _config(**overrides) -> SessionConfig:
    values = dict(write_retries=2, write_retry_delay_seconds=0.0)
    values.update(overrides)
    return SessionConfig(**values)


def _turn(sequence: int, **overrides) -> Turn:
    values = dict(
        sequence=sequence,
        text=f"turn {sequence}",
        intent=Intent.ANALYZE_SYSTEM,
        entity_signature=(("topic", "architecture"),),
        category=Category.DEEP_REASONING,
        timestamp=NOW,
    )
    values.update(overrides)
    return Turn(**values)


def _durable(read_result=None) -> MagicMock:
    durable = MagicMock()
    durable.read.return_value = read_result
    durable.write.return_value = True
    return durable


class SlowFastStore(FastSessionStore):
    """Fast tier whose reads never answer in time."""

    async def get(self, key):
        await asyncio.sleep(1.0)
        return None


# ============================================================================
# Reads
# ============================================================================


class TestGetOrCreate:
    """Fast tier first, then durable, else a new session."""

    @pytest.mark.asyncio
    async def test_creates_new_session(self):
        manager = SessionManager(_config())
        session = await manager.get_or_create("acme", "c1")
        assert session.turns == []
        assert await manager.get_or_create("acme", "c1") is session

    @pytest.mark.asyncio
    async def test_read_through_populates_fast_tier(self):
        stored = Session(tenant_id="acme", conversation_id="c1", turns=[_turn(1)])
        durable = _durable(stored)
        manager = SessionManager(_config(), durable=durable)

        first = await manager.get_or_create("acme", "c1")
        second = await manager.get_or_create("acme", "c1")

        assert first.turns == stored.turns
        assert second is first
        durable.read.assert_called_once_with("acme", "c1")

    @pytest.mark.asyncio
    async def test_fast_tier_timeout_is_a_miss(self):
        stored = Session(tenant_id="acme", conversation_id="c1", turns=[_turn(1)])
        manager = SessionManager(
            _config(fast_tier_timeout_seconds=0.01),
            durable=_durable(stored),
            fast=SlowFastStore(),
        )
        session = await manager.get_or_create("acme", "c1")
        assert session.next_sequence == 2

    @pytest.mark.asyncio
    async def test_timed_out_read_keeps_newer_fast_entry(self):
        fast = FastSessionStore()
        durable = _durable()
        manager = SessionManager(
            _config(fast_tier_timeout_seconds=0.01), durable=durable, fast=fast
        )
        session = await manager.get_or_create("acme", "c1")
        await manager.append_turn(session, _turn(1))
        await manager.append_turn(session, _turn(2))

        async def slow_get(key):
            await asyncio.sleep(1.0)

        fast.get = slow_get
        durable.read.return_value = Session(
            tenant_id="acme", conversation_id="c1", turns=[_turn(1)]
        )

        reloaded = await manager.get_or_create("acme", "c1")

        assert reloaded.next_sequence == 3
        assert (await fast.peek(("acme", "c1"))).next_sequence == 3
        await manager.append_turn(reloaded, _turn(3))
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_durable_read_error_is_a_miss(self):
        durable = _durable()
        durable.read.side_effect = OperationalError("SELECT", {}, Exception("locked"))
        manager = SessionManager(_config(), durable=durable)

        session = await manager.get_or_create("acme", "c1")

        assert session.turns == []


# ============================================================================
# Writes
# ============================================================================


class TestAppendTurn:
    """Turns append in order and are written through to the durable tier."""

    @pytest.mark.asyncio
    async def test_appends_and_persists(self, sql_store):
        manager = SessionManager(_config(), durable=sql_store)
        session = await manager.get_or_create("acme", "c1")

        await manager.append_turn(session, _turn(1), continuity_score=0.3)
        await manager.flush()

        assert session.last_active == NOW
        assert session.continuity_score == 0.3
        assert [t.sequence for t in sql_store.read("acme", "c1").turns] == [1]
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_out_of_order_rejected(self):
        manager = SessionManager(_config())
        session = await manager.get_or_create("acme", "c1")
        with pytest.raises(ValueError, match="out of order"):
            await manager.append_turn(session, _turn(2))
        assert session.turns == []

    @pytest.mark.asyncio
    async def test_write_retried_until_success(self):
        durable = _durable()
        durable.write.side_effect = [False, False, True]
        manager = SessionManager(_config(), durable=durable)
        session = await manager.get_or_create("acme", "c1")

        await manager.append_turn(session, _turn(1))
        await manager.flush()

        assert durable.write.call_count == 3
        assert manager.dropped_writes == 0
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_write_dropped_after_retries(self):
        durable = _durable()
        durable.write.return_value = False
        manager = SessionManager(_config(), durable=durable)
        session = await manager.get_or_create("acme", "c1")

        await manager.append_turn(session, _turn(1))
        await manager.flush()

        assert durable.write.call_count == 3
        assert manager.dropped_writes == 1
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_durable_write_gets_a_copy(self):
        durable = _durable()
        manager = SessionManager(_config(), durable=durable)
        session = await manager.get_or_create("acme", "c1")

        await manager.append_turn(session, _turn(1))
        await manager.flush()
        session.turns.append(_turn(2))

        written = durable.write.call_args.args[2]
        assert [t.sequence for t in written.turns] == [1]
        await manager.aclose()


# ============================================================================
# Ordering
# ============================================================================


class TestTurnOrdering:
    """Turns of one session serialize; different sessions do not wait."""

    @pytest.mark.asyncio
    async def test_concurrent_turns_get_consecutive_sequences(self):
        manager = SessionManager(_config())

        async def run_turn(text):
            async with manager.turn_lock("acme", "c1"):
                session = await manager.get_or_create("acme", "c1")
                sequence = session.next_sequence
                await asyncio.sleep(0.01)
                await manager.append_turn(session, _turn(sequence, text=text))

        await asyncio.gather(*(run_turn(f"t{i}") for i in range(5)))

        session = await manager.get_or_create("acme", "c1")
        assert [t.sequence for t in session.turns] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_other_sessions_not_blocked(self):
        manager = SessionManager(_config())
        held = manager.turn_lock("acme", "c1")
        async with held:
            other = manager.turn_lock("acme", "c2")
            assert other is not held
            assert not other.locked()
            assert manager.turn_lock("acme", "c1") is held


# ============================================================================
# Continuity
# ============================================================================


class TestContinuityScore:
    """Recency decay combined with topical similarity."""

    def _session(self, **turn_overrides) -> Session:
        return Session(tenant_id="acme", conversation_id="c1", turns=[_turn(1, **turn_overrides)])

    def test_no_turns(self):
        manager = SessionManager(_config())
        session = Session(tenant_id="acme", conversation_id="c1")
        assert manager.continuity_score(session) == 0.0
        assert manager.continuity_context(session).last_category is None

    def test_unknown_follow_up_ten_seconds_later(self):
        manager = SessionManager(_config())
        analysis = AnalysisResult(is_follow_up=True)
        score = manager.continuity_score(
            self._session(), analysis, now=NOW + timedelta(seconds=10)
        )
        assert score == pytest.approx(0.6 * 0.5 ** (10 / 300) + 0.4 * 0.5, abs=1e-6)

    def test_same_intent_and_entities_immediately(self):
        manager = SessionManager(_config())
        analysis = AnalysisResult(
            intent=Intent.ANALYZE_SYSTEM,
            confidence=0.9,
            entities=(Entity(type=EntityType.TOPIC, value="architecture"),),
        )
        assert manager.continuity_score(self._session(), analysis, now=NOW) == 1.0

    def test_decays_with_half_life(self):
        manager = SessionManager(_config(half_life_seconds=300))
        score = manager.continuity_score(self._session(), now=NOW + timedelta(seconds=300))
        assert score == pytest.approx(0.3)

    def test_context_carries_last_category_and_skills(self):
        manager = SessionManager(_config(), now=lambda: NOW)
        session = self._session(skills=frozenset({Skill.GIT}))
        context = manager.continuity_context(session)
        assert context.last_category == Category.DEEP_REASONING
        assert context.last_skills == frozenset({Skill.GIT})
        assert context.score == pytest.approx(0.6)


# ============================================================================
# Inspection
# ============================================================================


class TestInspection:
    """Read-only access never creates or refreshes sessions."""

    @pytest.mark.asyncio
    async def test_unknown_session(self):
        manager = SessionManager(_config())
        assert await manager.inspect("acme", "nope") is None
        assert await manager.peek("acme", "nope") is None

    @pytest.mark.asyncio
    async def test_summary(self):
        manager = SessionManager(_config())
        session = await manager.get_or_create("acme", "c1")
        await manager.append_turn(session, _turn(1))
        await manager.append_turn(session, _turn(2, channel="slack"))

        summary = await manager.inspect("acme", "c1")

        assert summary.turn_count == 2
        assert summary.last_category == Category.DEEP_REASONING
        assert summary.channels == ("web", "slack")

    @pytest.mark.asyncio
    async def test_peek_reads_durable_without_populating_fast_tier(self):
        stored = Session(tenant_id="acme", conversation_id="c1", turns=[_turn(1)])
        fast = FastSessionStore()
        manager = SessionManager(_config(), durable=_durable(stored), fast=fast)

        assert (await manager.peek("acme", "c1")).turns == stored.turns
        assert await fast.peek(("acme", "c1")) is None
