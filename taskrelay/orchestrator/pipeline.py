"""Relay pipeline: one request from raw text to recorded turn.

Stages, in order:

1. Validate the request (typed ValidationError, never retried).
2. Take the session's turn lock within the deadline, then load or
   create the session.
3. Check the deadline, then analyze the text.
4. Compute the continuity context from the session's last turn.
5. Select the category, then the skills (tenant overrides apply).
6. Build the immutable execution plan.
7. Check the deadline, then dispatch and await the result.
8. Append the turn to the session and return the RelayResult.

A request that fails at any stage leaves the session unchanged.

Example:
    orchestrator = Orchestrator.from_config(load_config())
    result = await orchestrator.handle(
        Request(text="Create a task for Friday", tenant_id="acme", conversation_id="c1")
    )
    print(result.selection.category, result.result.text)
    await orchestrator.aclose()
"""

import asyncio
import logging
import math
import time
from typing import Callable

from taskrelay.config import RelayConfig, TenantConfig
from taskrelay.errors import DeadlineExceededError, ValidationError
from taskrelay.orchestrator.dispatch.circuit_breaker import CircuitBreaker, CircuitSnapshot
from taskrelay.orchestrator.dispatch.deadline import Deadline
from taskrelay.orchestrator.dispatch.dispatcher import Dispatcher
from taskrelay.orchestrator.dispatch.retry import RetryPolicy
from taskrelay.orchestrator.models.analysis import AnalysisResult
from taskrelay.orchestrator.models.execution import ExecutionPlan, RelayResult, RoutePreview
from taskrelay.orchestrator.models.request import Request, utc_now
from taskrelay.orchestrator.models.routing import (
    NO_CONTINUITY,
    Category,
    CategorySelection,
    ContinuityContext,
    Skill,
    sorted_skills,
)
from taskrelay.orchestrator.models.session import Session, SessionSummary, Turn
from taskrelay.orchestrator.nl_engine.analyzer import AnalysisContext, RequestAnalyzer
from taskrelay.orchestrator.routing.category_selector import CategorySelector
from taskrelay.orchestrator.routing.skill_selector import SkillSelector, is_idempotent
from taskrelay.services.anthropic_backend import AnthropicBackend, ExecutionBackend
from taskrelay.services.capabilities import build_registry
from taskrelay.services.execution_wrapper import ExecutionWrapper
from taskrelay.services.session_manager import SessionManager
from taskrelay.services.session_persistence_service import DurableSessionStore
from taskrelay.services.usage import UsageSink

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs requests through analysis, routing, dispatch and session update.

    Args:
        config: Relay configuration.
        dispatcher: Dispatcher for execution plans.
        sessions: Session manager.
        analyzer: Request analyzer. Built from config when omitted.
        category_selector: Category selector. Built from config when omitted.
        skill_selector: Skill selector.
        clock: Monotonic clock for deadlines, injectable for tests.
    """

    def __init__(
        self,
        config: RelayConfig,
        dispatcher: Dispatcher,
        sessions: SessionManager,
        analyzer: RequestAnalyzer | None = None,
        category_selector: CategorySelector | None = None,
        skill_selector: SkillSelector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._dispatcher = dispatcher
        self._sessions = sessions
        self._analyzer = analyzer or RequestAnalyzer(config.analyzer)
        self._categories = category_selector or CategorySelector(config.routing)
        self._skills = skill_selector or SkillSelector()
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: RelayConfig,
        backend: ExecutionBackend | None = None,
        usage_sink: UsageSink | None = None,
        durable: DurableSessionStore | None = None,
    ) -> "Orchestrator":
        """Wire a full pipeline from configuration.

        Args:
            config: Relay configuration.
            backend: Execution backend. Defaults to AnthropicBackend with the
                capability registry built from the execution settings.
            usage_sink: Usage sink. Defaults to logging.
            durable: Durable session store, or None for fast tier only.

        Returns:
            Configured Orchestrator.
        """
        if backend is None:
            registry = build_registry(
                config.execution.capability_gateway_url,
                timeout=config.execution.capability_timeout_seconds,
            )
            backend = AnthropicBackend(config.execution, invoker=registry)
        wrapper = ExecutionWrapper(config.execution, backend, usage_sink)
        dispatcher = Dispatcher(
            wrapper,
            breaker=CircuitBreaker(config.circuit),
            retry=RetryPolicy(config.retry),
        )
        sessions = SessionManager(config.session, durable=durable)
        return cls(config, dispatcher, sessions)

    @property
    def sessions(self) -> SessionManager:
        """The session manager."""
        return self._sessions

    @property
    def dispatcher(self) -> Dispatcher:
        """The dispatcher."""
        return self._dispatcher

    @property
    def category_selector(self) -> CategorySelector:
        """The category selector."""
        return self._categories

    def _validate(self, request: Request) -> None:
        if not isinstance(request.text, str) or not request.text.strip():
            raise ValidationError("text")
        max_length = self._config.analyzer.max_text_length
        if len(request.text) > max_length:
            raise ValidationError("text", length=len(request.text), max_length=max_length)
        if not request.tenant_id.strip():
            raise ValidationError("tenant_id")
        if not request.conversation_id.strip():
            raise ValidationError("conversation_id")
        if request.deadline_seconds is not None and request.deadline_seconds < 0:
            raise ValidationError("deadline_seconds", reason="must not be negative")

    def _route(
        self,
        analysis: AnalysisResult,
        continuity: ContinuityContext,
        tenant_id: str,
        request_pin: Category | None,
    ) -> tuple[CategorySelection, frozenset[Skill]]:
        tenant = self._config.tenant(tenant_id)
        selection = self._categories.select(
            analysis,
            continuity,
            tenant_overrides=tenant,
            tenant_id=tenant_id,
            request_pin=request_pin,
        )
        skills = self._skills.select(analysis, selection.category, tenant.disabled_skills)
        return selection, skills

    def _analyze(self, text: str, tenant_id: str, session: Session | None) -> AnalysisResult:
        context = AnalysisContext(
            tenant_id=tenant_id,
            has_history=bool(session and session.turns),
        )
        return self._analyzer.analyze(text, context)

    async def _acquire_turn_lock(self, lock: asyncio.Lock, deadline: Deadline) -> None:
        deadline.check("session_lock")
        remaining = deadline.remaining()
        if math.isinf(remaining):
            await lock.acquire()
            return
        try:
            await asyncio.wait_for(lock.acquire(), remaining)
        except asyncio.TimeoutError:
            raise DeadlineExceededError("session_lock") from None

    async def handle(self, request: Request) -> RelayResult:
        """Run one request end to end.

        Args:
            request: Inbound request.

        Returns:
            RelayResult with analysis, routing, backend result and the
            turn's sequence number.

        Raises:
            ValidationError: Malformed request.
            DeadlineExceededError: Deadline elapsed before or during dispatch.
            BackendUnavailableError: Circuit open, or attempts exhausted.
            ThrottledError: Backend rate limited the request.
            BackendRejectedError: Backend refused the request.
        """
        self._validate(request)
        deadline = Deadline(request.deadline_seconds, clock=self._clock)
        tenant_id, conversation_id = request.session_key

        lock = self._sessions.turn_lock(tenant_id, conversation_id)
        await self._acquire_turn_lock(lock, deadline)
        try:
            session = await self._sessions.get_or_create(tenant_id, conversation_id)

            deadline.check("analysis")
            analysis = self._analyze(request.text, tenant_id, session)
            continuity = self._sessions.continuity_context(session, analysis)
            selection, skills = self._route(
                analysis, continuity, tenant_id, request.category_pin
            )

            plan = ExecutionPlan(
                request=request,
                category=selection.category,
                skills=skills,
                session=session.snapshot(self._config.session.snapshot_turns),
                idempotent=is_idempotent(skills),
                backend_target=self._config.execution.backend_target,
                model=self._config.execution.model_for(selection.category),
            )
            logger.info(
                "Routing %s/%s: intent=%s category=%s (%s) skills=%s continuity=%.2f",
                tenant_id,
                conversation_id,
                analysis.intent.value,
                selection.category.value,
                selection.source.value,
                [s.value for s in sorted_skills(skills)],
                continuity.score,
            )

            deadline.check("dispatch")
            result = await self._dispatcher.dispatch(plan, deadline)

            turn = Turn(
                sequence=session.next_sequence,
                text=request.text,
                intent=analysis.intent,
                entity_signature=analysis.entity_signature(),
                category=selection.category,
                skills=skills,
                result_summary=result.text[: self._config.execution.result_summary_chars],
                channel=request.channel,
                timestamp=utc_now(),
            )
            await self._sessions.append_turn(session, turn, continuity_score=continuity.score)
        finally:
            lock.release()

        return RelayResult(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            analysis=analysis,
            selection=selection,
            skills=tuple(sorted_skills(skills)),
            result=result,
            turn_sequence=turn.sequence,
            continuity_score=continuity.score,
        )

    async def preview(
        self,
        text: str,
        tenant_id: str,
        conversation_id: str | None = None,
        category_pin: Category | None = None,
    ) -> RoutePreview:
        """Route a request without dispatching it or touching the session.

        Args:
            text: Request text.
            tenant_id: Tenant identifier.
            conversation_id: Conversation whose history informs continuity.
            category_pin: Optional explicit category.

        Returns:
            RoutePreview with analysis, category and skills.

        Raises:
            ValidationError: Blank text or tenant.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("text")
        if not tenant_id.strip():
            raise ValidationError("tenant_id")

        session = None
        if conversation_id:
            session = await self._sessions.peek(tenant_id, conversation_id)
        analysis = self._analyze(text, tenant_id, session)
        continuity = (
            self._sessions.continuity_context(session, analysis)
            if session is not None
            else NO_CONTINUITY
        )
        selection, skills = self._route(analysis, continuity, tenant_id, category_pin)
        return RoutePreview(
            analysis=analysis,
            selection=selection,
            skills=tuple(sorted_skills(skills)),
            continuity_score=continuity.score,
            model=self._config.execution.model_for(selection.category),
        )

    async def inspect_session(
        self, tenant_id: str, conversation_id: str
    ) -> SessionSummary | None:
        """Read-only session summary, or None when unknown."""
        return await self._sessions.inspect(tenant_id, conversation_id)

    def update_tenant(self, tenant_id: str, overrides: TenantConfig) -> int:
        """Replace a tenant's routing overrides and drop its cached routes.

        Returns:
            Number of cached routes invalidated.
        """
        self._config.tenants[tenant_id] = overrides
        logger.info("Routing overrides updated for tenant %s", tenant_id)
        return self._categories.cache.invalidate_tenant(tenant_id)

    def circuits(self) -> list[CircuitSnapshot]:
        """Current circuit breaker states."""
        return self._dispatcher.breaker.snapshot()

    async def aclose(self) -> None:
        """Drain pending durable session writes."""
        await self._sessions.aclose()
