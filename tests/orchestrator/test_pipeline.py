"""End-to-end tests for the relay pipeline with a scripted backend."""

import asyncio
import re
import time

import pytest

from taskrelay.config import RelayConfig, TenantConfig
from taskrelay.errors import (
    BackendClientError,
    BackendRejectedError,
    DeadlineExceededError,
    ValidationError,
)
from taskrelay.orchestrator.models import (
    Category,
    EntityType,
    Intent,
    Request,
    SelectionSource,
    Skill,
)
from taskrelay.orchestrator.pipeline import Orchestrator
from tests.helpers import ScriptedBackend, make_response


class GatedBackend(ScriptedBackend):
    """Backend that holds every call until the gate opens."""

    def __init__(self) -> None:
        super().__init__(make_response("Created LIN-42."))
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def complete(self, plan):
        self.entered.set()
        await self.gate.wait()
        return await super().complete(plan)


def _request(text: str, conversation_id: str = "c1", **overrides) -> Request:
    return Request(text=text, tenant_id="acme", conversation_id=conversation_id, **overrides)


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend(make_response("Created LIN-42 for Friday."))


@pytest.fixture
def orchestrator(relay_config, backend, usage_sink) -> Orchestrator:
    return Orchestrator.from_config(relay_config, backend=backend, usage_sink=usage_sink)


# ============================================================================
# Happy path
# ============================================================================


class TestHandle:
    """Requests run through analysis, routing, dispatch and session update."""

    @pytest.mark.asyncio
    async def test_create_task_routes_quick(self, orchestrator, backend, usage_sink):
        result = await orchestrator.handle(_request("Create a task for the launch due Friday"))

        assert result.analysis.intent == Intent.CREATE_TASK
        assert result.selection.category == Category.QUICK
        assert result.selection.source == SelectionSource.RULE
        assert result.skills == ()
        assert result.turn_sequence == 1
        assert result.result.text == "Created LIN-42 for Friday."

        [due] = [e for e in result.analysis.entities if e.type == EntityType.DUE_DATE]
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", due.normalized)

        [plan] = backend.plans
        assert plan.category == Category.QUICK
        assert plan.idempotent is True
        assert plan.model == "claude-haiku-4-5-20251001"
        assert len(usage_sink.records) == 1

    @pytest.mark.asyncio
    async def test_integration_target_attaches_skill(self, orchestrator, backend):
        result = await orchestrator.handle(_request("Create a task in Linear for @sam"))

        assert result.skills == (Skill.INTEGRATIONS,)
        assert backend.plans[0].idempotent is False

    @pytest.mark.asyncio
    async def test_follow_up_keeps_previous_category(self, orchestrator):
        first = await orchestrator.handle(
            _request("Analyze the system architecture for scalability")
        )
        second = await orchestrator.handle(_request("What about the caching layer?"))

        assert first.selection.category == Category.DEEP_REASONING
        assert second.analysis.is_follow_up
        assert second.selection.category == Category.DEEP_REASONING
        assert second.selection.continuity_applied
        assert second.continuity_score > 0.7
        assert second.turn_sequence == 2

    @pytest.mark.asyncio
    async def test_snapshot_carries_history(self, orchestrator, backend):
        await orchestrator.handle(_request("Create a task for the launch"))
        await orchestrator.handle(_request("Also add a due date"))

        snapshot = backend.plans[1].session
        assert [t.sequence for t in snapshot.recent_turns] == [1]

    @pytest.mark.asyncio
    async def test_request_pin_wins(self, orchestrator):
        result = await orchestrator.handle(
            _request("Create a task for the launch", category_pin=Category.WRITING)
        )
        assert result.selection.category == Category.WRITING
        assert result.selection.source == SelectionSource.REQUEST_PIN

    @pytest.mark.asyncio
    async def test_tenant_disabled_skill(self, relay_config, backend):
        config = relay_config.model_copy(
            update={"tenants": {"acme": TenantConfig(disabled_skills=[Skill.INTEGRATIONS])}}
        )
        orchestrator = Orchestrator.from_config(config, backend=backend)

        result = await orchestrator.handle(_request("Create a task in Linear"))

        assert result.skills == ()

    @pytest.mark.asyncio
    async def test_concurrent_turns_are_ordered(self, orchestrator):
        results = await asyncio.gather(
            *(orchestrator.handle(_request(f"Create a task number {i}")) for i in range(4))
        )
        assert sorted(r.turn_sequence for r in results) == [1, 2, 3, 4]
        summary = await orchestrator.inspect_session("acme", "c1")
        assert summary.turn_count == 4


# ============================================================================
# Failures
# ============================================================================


class TestFailures:
    """Failed requests raise typed errors and leave the session unchanged."""

    @pytest.mark.parametrize(
        "overrides,code",
        [
            ({"text": "   "}, "R-1001"),
            ({"text": "x" * 5000}, "R-1002"),
            ({"tenant_id": " "}, "R-1001"),
            ({"conversation_id": ""}, "R-1001"),
            ({"deadline_seconds": -1.0}, "R-1003"),
        ],
    )
    @pytest.mark.asyncio
    async def test_validation(self, orchestrator, backend, overrides, code):
        values = dict(text="Create a task", tenant_id="acme", conversation_id="c1")
        values.update(overrides)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.handle(Request(**values))

        assert exc_info.value.code == code
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_zero_deadline(self, orchestrator, backend):
        with pytest.raises(DeadlineExceededError):
            await orchestrator.handle(_request("Create a task", deadline_seconds=0.0))
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_failed_request_leaves_session_unchanged(self, relay_config):
        backend = ScriptedBackend(
            make_response("first"),
            BackendClientError("invalid request", status_code=400),
            make_response("third"),
        )
        orchestrator = Orchestrator.from_config(relay_config, backend=backend)

        await orchestrator.handle(_request("Create a task for the launch"))
        with pytest.raises(BackendRejectedError):
            await orchestrator.handle(_request("Create a task for the review"))

        summary = await orchestrator.inspect_session("acme", "c1")
        assert summary.turn_count == 1
        result = await orchestrator.handle(_request("Create a task for the retro"))
        assert result.turn_sequence == 2

    @pytest.mark.asyncio
    async def test_deadline_bounds_wait_for_busy_session(self, relay_config):
        backend = GatedBackend()
        orchestrator = Orchestrator.from_config(relay_config, backend=backend)

        first = asyncio.create_task(orchestrator.handle(_request("Create a task for the launch")))
        await backend.entered.wait()

        started = time.monotonic()
        with pytest.raises(DeadlineExceededError) as exc_info:
            await orchestrator.handle(
                _request("Create a task for the review", deadline_seconds=0.05)
            )
        elapsed = time.monotonic() - started

        assert exc_info.value.stage == "session_lock"
        assert elapsed < 0.5
        assert backend.calls == 0

        backend.gate.set()
        assert (await first).turn_sequence == 1
        result = await orchestrator.handle(_request("Create a task for the retro"))
        assert result.turn_sequence == 2


# ============================================================================
# Preview and inspection
# ============================================================================


class TestPreview:
    """Routing without dispatch."""

    @pytest.mark.asyncio
    async def test_preview_does_not_dispatch_or_create_session(self, orchestrator, backend):
        preview = await orchestrator.preview("Create a task in Linear", "acme", "c9")

        assert preview.selection.category == Category.QUICK
        assert preview.skills == (Skill.INTEGRATIONS,)
        assert preview.model == "claude-haiku-4-5-20251001"
        assert backend.calls == 0
        assert await orchestrator.inspect_session("acme", "c9") is None

    @pytest.mark.asyncio
    async def test_preview_uses_session_continuity(self, orchestrator):
        await orchestrator.handle(_request("Analyze the system architecture for scalability"))

        preview = await orchestrator.preview("What about the caching layer?", "acme", "c1")

        assert preview.selection.category == Category.DEEP_REASONING
        assert preview.continuity_score > 0.7
        summary = await orchestrator.inspect_session("acme", "c1")
        assert summary.turn_count == 1

    @pytest.mark.asyncio
    async def test_preview_validation(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.preview("  ", "acme")

    @pytest.mark.asyncio
    async def test_update_tenant_invalidates_cached_routes(self, orchestrator):
        text = "Create a task for the launch"
        await orchestrator.preview(text, "acme")
        await orchestrator.preview(text, "globex")
        assert (await orchestrator.preview(text, "acme")).selection.source == SelectionSource.CACHE

        removed = orchestrator.update_tenant(
            "acme", TenantConfig(pinned_category=Category.WRITING)
        )

        assert removed == 1
        acme = await orchestrator.preview(text, "acme")
        assert acme.selection.source == SelectionSource.TENANT_PIN
        assert acme.selection.category == Category.WRITING
        globex = await orchestrator.preview(text, "globex")
        assert globex.selection.source == SelectionSource.CACHE

    @pytest.mark.asyncio
    async def test_circuits_listed_after_dispatch(self, orchestrator):
        await orchestrator.handle(_request("Create a task"))
        [snapshot] = orchestrator.circuits()
        assert snapshot.target == "anthropic"
        await orchestrator.aclose()


def test_from_config_defaults_to_anthropic_backend():
    orchestrator = Orchestrator.from_config(RelayConfig())
    assert orchestrator.dispatcher.breaker.snapshot() == []
