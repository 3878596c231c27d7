"""Category selection as an ordered strategy list.

Strategies are evaluated in strict priority order and the first one that
returns a selection wins:

1. OverrideStrategy     - request pin, then tenant pin (never cached)
2. CacheStrategy        - previous decision for the same signature
3. RuleTableStrategy    - intent -> category when confidence is high enough
4. FallbackStrategy     - weighted evidence plus continuity boost
5. DefaultStrategy      - configured default category, always answers

Decisions from strategies 3-5 are written to the route cache.

Example:
    selector = CategorySelector()
    selection = selector.select(analysis, continuity, tenant_overrides)
    # selection.category == Category.QUICK, selection.source == "rule"
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from taskrelay.config import RoutingConfig, TenantConfig
from taskrelay.orchestrator.models.analysis import AnalysisResult
from taskrelay.orchestrator.models.routing import (
    NO_CONTINUITY,
    Category,
    CategorySelection,
    ContinuityContext,
    SelectionSource,
)
from taskrelay.orchestrator.routing.category_classifier import (
    INTENT_CATEGORY_RULES,
    FallbackCategoryClassifier,
)
from taskrelay.orchestrator.routing.route_cache import RouteCache, build_cache_key

logger = logging.getLogger(__name__)

# Sources whose decisions are written to the cache
_CACHEABLE_SOURCES = frozenset(
    {SelectionSource.RULE, SelectionSource.FALLBACK, SelectionSource.DEFAULT}
)


@dataclass(frozen=True)
class SelectionContext:
    """Inputs shared by every strategy for one selection."""

    analysis: AnalysisResult
    continuity: ContinuityContext
    tenant_id: str
    tenant_overrides: TenantConfig
    request_pin: Category | None
    cache_key: str


class SelectionStrategy(Protocol):
    """A single step of the selection chain."""

    name: str

    def select(self, ctx: SelectionContext) -> CategorySelection | None:
        """Return a selection, or None to defer to the next strategy."""
        ...


class OverrideStrategy:
    """Explicit pins: the request's own pin beats the tenant's."""

    name = "override"

    def select(self, ctx: SelectionContext) -> CategorySelection | None:
        if ctx.request_pin is not None:
            return CategorySelection(
                category=ctx.request_pin,
                source=SelectionSource.REQUEST_PIN,
                confidence=1.0,
            )
        if ctx.tenant_overrides.pinned_category is not None:
            return CategorySelection(
                category=ctx.tenant_overrides.pinned_category,
                source=SelectionSource.TENANT_PIN,
                confidence=1.0,
            )
        return None


class CacheStrategy:
    """Reuse the decision made for the same signature within the TTL."""

    name = "cache"

    def __init__(self, cache: RouteCache) -> None:
        self._cache = cache

    def select(self, ctx: SelectionContext) -> CategorySelection | None:
        cached = self._cache.get(ctx.cache_key)
        if cached is None:
            return None
        return cached.model_copy(update={"source": SelectionSource.CACHE})


class RuleTableStrategy:
    """Map a confidently classified intent straight to its category."""

    name = "rule"

    def __init__(
        self,
        min_confidence: float = 0.5,
        rules: dict | None = None,
    ) -> None:
        self._min_confidence = min_confidence
        self._rules = rules if rules is not None else INTENT_CATEGORY_RULES

    def select(self, ctx: SelectionContext) -> CategorySelection | None:
        if ctx.analysis.confidence < self._min_confidence:
            return None
        category = self._rules.get(ctx.analysis.intent)
        if category is None:
            return None
        return CategorySelection(
            category=category,
            source=SelectionSource.RULE,
            confidence=ctx.analysis.confidence,
        )


class FallbackStrategy:
    """Delegate to the weighted-evidence classifier."""

    name = "fallback"

    def __init__(self, classifier: FallbackCategoryClassifier) -> None:
        self._classifier = classifier

    def select(self, ctx: SelectionContext) -> CategorySelection | None:
        decision = self._classifier.classify(ctx.analysis, ctx.continuity)
        if decision is None:
            return None
        return CategorySelection(
            category=decision.category,
            source=SelectionSource.FALLBACK,
            confidence=decision.confidence,
            continuity_applied=decision.continuity_applied,
        )


class DefaultStrategy:
    """Terminal strategy: always answers with the default category."""

    name = "default"

    def __init__(self, category: Category = Category.DEFAULT) -> None:
        self._category = category

    def select(self, ctx: SelectionContext) -> CategorySelection:
        return CategorySelection(
            category=self._category,
            source=SelectionSource.DEFAULT,
            confidence=0.0,
        )


class CategorySelector:
    """Selects exactly one category per request.

    Args:
        config: Routing settings. Defaults to RoutingConfig().
        cache: Route cache. Built from config when omitted.
        classifier: Fallback classifier. Built from config when omitted.
    """

    def __init__(
        self,
        config: RoutingConfig | None = None,
        cache: RouteCache | None = None,
        classifier: FallbackCategoryClassifier | None = None,
    ) -> None:
        self._config = config or RoutingConfig()
        self._cache = cache or RouteCache(
            ttl_seconds=self._config.cache_ttl_seconds,
            max_entries=self._config.cache_max_entries,
        )
        self._classifier = classifier or FallbackCategoryClassifier(self._config)
        self._default = DefaultStrategy(self._config.default_category)
        self._strategies: tuple[SelectionStrategy, ...] = (
            OverrideStrategy(),
            CacheStrategy(self._cache),
            RuleTableStrategy(self._config.rule_min_confidence),
            FallbackStrategy(self._classifier),
            self._default,
        )

    @property
    def cache(self) -> RouteCache:
        """The route cache backing the cache strategy."""
        return self._cache

    def select(
        self,
        analysis: AnalysisResult,
        continuity: ContinuityContext = NO_CONTINUITY,
        tenant_overrides: TenantConfig | None = None,
        tenant_id: str = "",
        request_pin: Category | None = None,
    ) -> CategorySelection:
        """Select the category for an analyzed request.

        Args:
            analysis: Analysis of the request.
            continuity: Conversation continuity context.
            tenant_overrides: Tenant routing overrides.
            tenant_id: Tenant the request belongs to; scopes cache entries.
            request_pin: Category pinned by the request itself.

        Returns:
            CategorySelection naming the winning strategy.
        """
        boosted = (
            continuity.last_category if self._classifier.boost_applies(continuity) else None
        )
        ctx = SelectionContext(
            analysis=analysis,
            continuity=continuity,
            tenant_id=tenant_id,
            tenant_overrides=tenant_overrides or TenantConfig(),
            request_pin=request_pin,
            cache_key=build_cache_key(tenant_id, analysis, boosted),
        )

        for strategy in self._strategies:
            selection = strategy.select(ctx)
            if selection is None:
                continue
            if selection.source in _CACHEABLE_SOURCES:
                self._cache.put(ctx.cache_key, selection, tenant_id=tenant_id)
            logger.debug(
                "Selected category %s via %s (tenant=%s intent=%s)",
                selection.category.value,
                strategy.name,
                tenant_id,
                analysis.intent.value,
            )
            return selection

        # DefaultStrategy always answers; kept for type checkers
        return self._default.select(ctx)
