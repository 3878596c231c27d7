"""Tests for category selection, the fallback classifier and the route cache."""

from unittest.mock import MagicMock

import pytest

from taskrelay.config import RoutingConfig, TenantConfig
from taskrelay.orchestrator.models import (
    AnalysisResult,
    Category,
    ContinuityContext,
    Entity,
    EntityType,
    Intent,
)
from taskrelay.orchestrator.models.routing import CategorySelection, SelectionSource
from taskrelay.orchestrator.routing import (
    CategorySelector,
    FallbackCategoryClassifier,
    FallbackDecision,
    RouteCache,
    build_cache_key,
)
from tests.helpers import FakeClock


def _analysis(intent=Intent.UNKNOWN, confidence=0.0, topics=(), follow_up=False):
    return AnalysisResult(
        intent=intent,
        confidence=confidence,
        entities=tuple(Entity(type=EntityType.TOPIC, value=t) for t in topics),
        is_follow_up=follow_up,
    )


CREATE_TASK = _analysis(Intent.CREATE_TASK, 0.9)


# ============================================================================
# Strategy order
# ============================================================================


class TestOverrides:
    """Pins beat every other strategy and are never cached."""

    def test_request_pin_beats_tenant_pin(self):
        selector = CategorySelector()
        selection = selector.select(
            CREATE_TASK,
            tenant_overrides=TenantConfig(pinned_category=Category.WRITING),
            request_pin=Category.CREATIVE,
        )
        assert selection.category == Category.CREATIVE
        assert selection.source == SelectionSource.REQUEST_PIN

    def test_tenant_pin(self):
        selector = CategorySelector()
        selection = selector.select(
            CREATE_TASK,
            tenant_overrides=TenantConfig(pinned_category=Category.WRITING),
            tenant_id="acme",
        )
        assert selection.category == Category.WRITING
        assert selection.source == SelectionSource.TENANT_PIN

    def test_pins_not_cached(self):
        selector = CategorySelector()
        selector.select(CREATE_TASK, request_pin=Category.VISUAL)
        assert len(selector.cache) == 0


class TestRuleTable:
    """Confident intents map straight to their category."""

    def test_create_task_is_quick(self):
        selection = CategorySelector().select(CREATE_TASK, tenant_id="acme")
        assert selection.category == Category.QUICK
        assert selection.source == SelectionSource.RULE
        assert selection.confidence == 0.9

    def test_low_confidence_defers_to_fallback(self):
        analysis = _analysis(Intent.UPDATE_TASK, 0.4)
        selection = CategorySelector().select(analysis)
        assert selection.category == Category.QUICK
        assert selection.source == SelectionSource.FALLBACK

    def test_second_selection_hits_cache(self):
        selector = CategorySelector()
        selector.select(CREATE_TASK, tenant_id="acme")
        selection = selector.select(CREATE_TASK, tenant_id="acme")
        assert selection.source == SelectionSource.CACHE
        assert selection.category == Category.QUICK

    def test_cache_scoped_by_tenant(self):
        selector = CategorySelector()
        selector.select(CREATE_TASK, tenant_id="acme")
        selection = selector.select(CREATE_TASK, tenant_id="globex")
        assert selection.source == SelectionSource.RULE


class TestCacheShortCircuit:
    """A cache hit skips the fallback classifier."""

    def test_fallback_not_consulted_on_hit(self):
        classifier = MagicMock(spec=FallbackCategoryClassifier)
        classifier.boost_applies.return_value = False
        classifier.classify.return_value = FallbackDecision(
            category=Category.CREATIVE, score=0.6, confidence=0.7, continuity_applied=False
        )
        selector = CategorySelector(classifier=classifier)
        analysis = _analysis(topics=("creative",))

        first = selector.select(analysis, tenant_id="acme")
        second = selector.select(analysis, tenant_id="acme")

        assert first.source == SelectionSource.FALLBACK
        assert second.source == SelectionSource.CACHE
        assert second.category == Category.CREATIVE
        classifier.classify.assert_called_once()


class TestFallbackAndDefault:
    """Weighted evidence, continuity boost and the terminal default."""

    def test_topic_evidence(self):
        selection = CategorySelector().select(_analysis(topics=("frontend",)))
        assert selection.category == Category.VISUAL
        assert selection.source == SelectionSource.FALLBACK

    def test_continuity_carries_previous_category(self):
        continuity = ContinuityContext(score=0.786, last_category=Category.DEEP_REASONING)
        selection = CategorySelector().select(
            _analysis(follow_up=True), continuity, tenant_id="acme"
        )
        assert selection.category == Category.DEEP_REASONING
        assert selection.source == SelectionSource.FALLBACK
        assert selection.continuity_applied

    def test_weak_continuity_ignored(self):
        continuity = ContinuityContext(score=0.1, last_category=Category.DEEP_REASONING)
        selection = CategorySelector().select(_analysis(), continuity)
        assert selection.category == Category.DEFAULT
        assert selection.source == SelectionSource.DEFAULT

    def test_no_evidence_selects_default(self):
        selection = CategorySelector().select(_analysis())
        assert selection.category == Category.DEFAULT
        assert selection.source == SelectionSource.DEFAULT
        assert selection.confidence == 0.0

    def test_configured_default_category(self):
        selector = CategorySelector(RoutingConfig(default_category=Category.WRITING))
        assert selector.select(_analysis()).category == Category.WRITING

    def test_deterministic(self):
        analysis = _analysis(Intent.BRAINSTORM, 0.6, topics=("creative",))
        assert CategorySelector().select(analysis) == CategorySelector().select(analysis)


class TestFallbackClassifier:
    """Scoring and tie-breaking."""

    def test_continuity_wins_ties(self):
        classifier = FallbackCategoryClassifier()
        continuity = ContinuityContext(score=0.5, last_category=Category.CREATIVE)
        decision = classifier.classify(_analysis(topics=("documentation",)), continuity)
        assert decision.category == Category.CREATIVE
        assert decision.continuity_applied

    def test_below_minimum_returns_none(self):
        classifier = FallbackCategoryClassifier()
        assert classifier.classify(_analysis(), ContinuityContext()) is None

    def test_confidence_is_share_of_total(self):
        classifier = FallbackCategoryClassifier()
        decision = classifier.classify(_analysis(topics=("frontend",)), ContinuityContext())
        assert decision.score == 0.5
        assert decision.confidence == pytest.approx(0.5 / 0.75, abs=1e-4)


# ============================================================================
# Route cache
# ============================================================================


class TestRouteCache:
    """TTL expiry, LRU bound and key construction."""

    def _selection(self, category=Category.QUICK):
        return CategorySelection(category=category, source=SelectionSource.RULE, confidence=0.9)

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = RouteCache(ttl_seconds=300, clock=clock)
        cache.put("k", self._selection())
        clock.advance(299)
        assert cache.get("k") is not None
        clock.advance(1)
        assert cache.get("k") is None

    def test_lru_eviction(self):
        cache = RouteCache(max_entries=2)
        cache.put("a", self._selection())
        cache.put("b", self._selection())
        cache.get("a")
        cache.put("c", self._selection())
        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.stats().evictions == 1

    def test_stats(self):
        cache = RouteCache()
        cache.put("a", self._selection())
        cache.get("a")
        cache.get("missing")
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)

    def test_invalidate_tenant(self):
        cache = RouteCache()
        cache.put("a1", self._selection(), tenant_id="acme")
        cache.put("a2", self._selection(), tenant_id="acme")
        cache.put("g1", self._selection(), tenant_id="globex")

        assert cache.invalidate_tenant("acme") == 2
        assert cache.get("a1") is None
        assert cache.get("g1") is not None
        assert cache.invalidate_tenant("acme") == 0

    def test_selector_entries_invalidated_per_tenant(self):
        selector = CategorySelector()
        selector.select(CREATE_TASK, tenant_id="acme")
        selector.select(CREATE_TASK, tenant_id="globex")

        selector.cache.invalidate_tenant("acme")

        assert selector.select(CREATE_TASK, tenant_id="acme").source == SelectionSource.RULE
        assert selector.select(CREATE_TASK, tenant_id="globex").source == SelectionSource.CACHE

    def test_clear(self):
        cache = RouteCache()
        cache.put("a", self._selection())
        cache.clear()
        assert len(cache) == 0

    def test_key_ignores_entity_order_and_case(self):
        first = AnalysisResult(
            intent=Intent.CREATE_TASK,
            entities=(
                Entity(type=EntityType.TARGET, value="Linear"),
                Entity(type=EntityType.ACTION, value="create"),
            ),
        )
        second = AnalysisResult(
            intent=Intent.CREATE_TASK,
            entities=(
                Entity(type=EntityType.ACTION, value="create"),
                Entity(type=EntityType.TARGET, value="linear"),
            ),
        )
        assert build_cache_key("acme", first) == build_cache_key("acme", second)

    def test_key_ignores_assignee(self):
        plain = AnalysisResult(intent=Intent.CREATE_TASK)
        assigned = AnalysisResult(
            intent=Intent.CREATE_TASK,
            entities=(Entity(type=EntityType.ASSIGNEE, value="sam"),),
        )
        assert build_cache_key("acme", plain) == build_cache_key("acme", assigned)

    def test_key_includes_boosted_category(self):
        analysis = AnalysisResult(intent=Intent.UNKNOWN)
        assert build_cache_key("acme", analysis) != build_cache_key(
            "acme", analysis, Category.WRITING
        )
