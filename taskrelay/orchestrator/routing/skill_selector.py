"""Skill selection: independent trigger predicates, one per skill.

Each predicate looks at (intent, entities, category) and says whether its
skill applies. The result is the union of firing predicates, expanded by
the dependency table (required skills first, then suggested ones), minus
any skill the tenant has disabled. Selection never consults the route
cache.
"""

import logging
from typing import Callable, Iterable, NamedTuple

from taskrelay.orchestrator.models.analysis import AnalysisResult, EntityType, Intent
from taskrelay.orchestrator.models.routing import Category, Skill, sorted_skills

logger = logging.getLogger(__name__)

SkillTrigger = Callable[[AnalysisResult, Category], bool]


def _wants_frontend(analysis: AnalysisResult, category: Category) -> bool:
    return (
        category == Category.VISUAL
        or analysis.intent == Intent.DESIGN_UI
        or analysis.has_entity(EntityType.TOPIC, "frontend")
    )


def _wants_browser(analysis: AnalysisResult, category: Category) -> bool:
    return analysis.has_entity(EntityType.TOPIC, "browser")


def _wants_git(analysis: AnalysisResult, category: Category) -> bool:
    return analysis.has_entity(EntityType.TOPIC, "vcs")


def _wants_integrations(analysis: AnalysisResult, category: Category) -> bool:
    return analysis.has_entity(EntityType.TARGET)


SKILL_TRIGGERS: dict[Skill, SkillTrigger] = {
    Skill.FRONTEND_UI: _wants_frontend,
    Skill.BROWSER_AUTOMATION: _wants_browser,
    Skill.GIT: _wants_git,
    Skill.INTEGRATIONS: _wants_integrations,
}


class SkillDependencies(NamedTuple):
    """Skills pulled in when a skill is selected."""

    requires: tuple[Skill, ...] = ()
    suggests: tuple[Skill, ...] = ()


SKILL_DEPENDENCIES: dict[Skill, SkillDependencies] = {
    Skill.FRONTEND_UI: SkillDependencies(suggests=(Skill.BROWSER_AUTOMATION,)),
}


def resolve_dependencies(
    skills: Iterable[Skill],
    dependencies: dict[Skill, SkillDependencies],
    blocked: frozenset[Skill] = frozenset(),
) -> frozenset[Skill]:
    """Expand a skill set with the required and suggested skills of its members.

    Expansion is one level deep. Blocked skills are never added.
    """
    resolved = set(skills)
    for skill in sorted_skills(resolved):
        deps = dependencies.get(skill)
        if deps is None:
            continue
        for extra in (*deps.requires, *deps.suggests):
            if extra not in blocked and extra not in resolved:
                resolved.add(extra)
                logger.debug("Added %s as a dependency of %s", extra.value, skill.value)
    return frozenset(resolved)


# Skills whose tools write to external systems
SIDE_EFFECT_SKILLS: frozenset[Skill] = frozenset({Skill.INTEGRATIONS})


def is_idempotent(skills: Iterable[Skill]) -> bool:
    """Whether a plan with these skills can be retried safely."""
    return not (set(skills) & SIDE_EFFECT_SKILLS)


class SkillSelector:
    """Selects zero or more skills for a request.

    Args:
        triggers: Skill -> predicate table. Defaults to SKILL_TRIGGERS.
        dependencies: Skill -> dependencies table. Defaults to
            SKILL_DEPENDENCIES.
    """

    def __init__(
        self,
        triggers: dict[Skill, SkillTrigger] | None = None,
        dependencies: dict[Skill, SkillDependencies] | None = None,
    ) -> None:
        self._triggers = triggers if triggers is not None else SKILL_TRIGGERS
        self._dependencies = dependencies if dependencies is not None else SKILL_DEPENDENCIES

    def select(
        self,
        analysis: AnalysisResult,
        category: Category,
        disabled: Iterable[Skill] = (),
    ) -> frozenset[Skill]:
        """Select skills for an analyzed request.

        Args:
            analysis: Analysis of the request.
            category: Category selected for the request.
            disabled: Skills the tenant has turned off.

        Returns:
            Frozen set of skills; empty when nothing applies.
        """
        blocked = frozenset(disabled)
        triggered = frozenset(
            skill
            for skill, trigger in self._triggers.items()
            if skill not in blocked and trigger(analysis, category)
        )
        selected = resolve_dependencies(triggered, self._dependencies, blocked)
        logger.debug(
            "Selected skills %s for intent=%s category=%s",
            [s.value for s in sorted_skills(selected)],
            analysis.intent.value,
            category.value,
        )
        return selected
