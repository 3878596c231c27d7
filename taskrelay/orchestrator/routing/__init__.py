"""Routing: category selection, route cache and skill selection."""

from taskrelay.orchestrator.routing.category_classifier import (
    INTENT_CATEGORY_RULES,
    TOPIC_CATEGORY,
    FallbackCategoryClassifier,
    FallbackDecision,
)
from taskrelay.orchestrator.routing.category_selector import (
    CacheStrategy,
    CategorySelector,
    DefaultStrategy,
    FallbackStrategy,
    OverrideStrategy,
    RuleTableStrategy,
    SelectionContext,
)
from taskrelay.orchestrator.routing.route_cache import (
    CacheStats,
    RouteCache,
    build_cache_key,
)
from taskrelay.orchestrator.routing.skill_selector import (
    SIDE_EFFECT_SKILLS,
    SKILL_DEPENDENCIES,
    SKILL_TRIGGERS,
    SkillDependencies,
    SkillSelector,
    is_idempotent,
    resolve_dependencies,
)

__all__ = [
    "CategorySelector",
    "SelectionContext",
    "OverrideStrategy",
    "CacheStrategy",
    "RuleTableStrategy",
    "FallbackStrategy",
    "DefaultStrategy",
    "FallbackCategoryClassifier",
    "FallbackDecision",
    "INTENT_CATEGORY_RULES",
    "TOPIC_CATEGORY",
    "RouteCache",
    "CacheStats",
    "build_cache_key",
    "SkillSelector",
    "SKILL_TRIGGERS",
    "SKILL_DEPENDENCIES",
    "SkillDependencies",
    "resolve_dependencies",
    "SIDE_EFFECT_SKILLS",
    "is_idempotent",
]
