"""Tests for the fast in-memory session tier."""

import pytest

from taskrelay.orchestrator.models import Session, Turn
from taskrelay.services.session_store import FastSessionStore
from tests.helpers import FakeClock

KEY = ("acme", "c1")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> FastSessionStore:
    return FastSessionStore(ttl_seconds=60, clock=clock)


def _session() -> Session:
    return Session(tenant_id="acme", conversation_id="c1")


@pytest.mark.asyncio
async def test_set_and_get(store):
    session = _session()
    await store.set(KEY, session)
    assert await store.get(KEY) is session


@pytest.mark.asyncio
async def test_expires_after_inactivity(store, clock):
    await store.set(KEY, _session())
    clock.advance(61)
    assert await store.get(KEY) is None


@pytest.mark.asyncio
async def test_get_slides_expiry(store, clock):
    await store.set(KEY, _session())
    clock.advance(50)
    assert await store.get(KEY) is not None
    clock.advance(50)
    assert await store.get(KEY) is not None


@pytest.mark.asyncio
async def test_peek_does_not_slide_expiry(store, clock):
    await store.set(KEY, _session())
    clock.advance(50)
    assert await store.peek(KEY) is not None
    clock.advance(50)
    assert await store.peek(KEY) is None


@pytest.mark.asyncio
async def test_delete(store):
    await store.set(KEY, _session())
    assert await store.delete(KEY) is True
    assert await store.delete(KEY) is False


@pytest.mark.asyncio
async def test_clear_expired_and_stats(store, clock):
    await store.set(KEY, _session())
    clock.advance(30)
    await store.set(("acme", "c2"), _session())
    clock.advance(31)

    stats = await store.stats()
    assert (stats.total_keys, stats.active_keys, stats.expired_keys) == (2, 1, 1)
    assert await store.clear_expired() == 1
    assert (await store.stats()).total_keys == 1


@pytest.mark.asyncio
async def test_set_if_newer_keeps_longer_live_session(store):
    live = Session(tenant_id="acme", conversation_id="c1", turns=[Turn(sequence=1, text="first")])
    await store.set(KEY, live)

    assert await store.set_if_newer(KEY, _session()) is live
    assert await store.get(KEY) is live


@pytest.mark.asyncio
async def test_set_if_newer_replaces_missing_or_expired(store, clock):
    stale = _session()
    assert await store.set_if_newer(KEY, stale) is stale

    clock.advance(61)
    fresh = _session()
    assert await store.set_if_newer(KEY, fresh) is fresh


@pytest.mark.asyncio
async def test_writes_sweep_expired_keys(store, clock):
    for i in range(1000):
        await store.set(("acme", f"c{i}"), _session())
    clock.advance(3600)

    await store.set(KEY, _session())

    stats = await store.stats()
    assert (stats.total_keys, stats.expired_keys) == (1, 0)


@pytest.mark.asyncio
async def test_sweep_waits_for_interval(clock):
    store = FastSessionStore(ttl_seconds=60, clock=clock, sweep_interval_seconds=300)
    await store.set(("acme", "old"), _session())
    clock.advance(61)

    await store.set(KEY, _session())
    assert (await store.stats()).expired_keys == 1

    clock.advance(240)
    await store.set(("acme", "c2"), _session())
    stats = await store.stats()
    assert (stats.total_keys, stats.expired_keys) == (1, 0)
