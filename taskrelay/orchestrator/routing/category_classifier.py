"""Fallback category classifier.

Scores every category from three kinds of evidence and picks the best:

- intent evidence: the analyzer's intent, weighted by its confidence,
  counts toward the intent's rule-table category;
- topic evidence: each topic entity counts toward its category;
- continuity: the previous turn's category receives a boost proportional
  to the continuity score, once that score clears a minimum.

The configured default category carries a small prior. Ties go to the
continuity category, then the default category, then declaration order.
"""

import logging
from dataclasses import dataclass

from taskrelay.config import RoutingConfig
from taskrelay.orchestrator.models.analysis import AnalysisResult, EntityType, Intent
from taskrelay.orchestrator.models.routing import Category, ContinuityContext

logger = logging.getLogger(__name__)

# Intent -> category. Shared with the rule-table strategy.
INTENT_CATEGORY_RULES: dict[Intent, Category] = {
    Intent.CREATE_TASK: Category.QUICK,
    Intent.UPDATE_TASK: Category.QUICK,
    Intent.QUERY_DATA: Category.QUICK,
    Intent.APPROVE_REQUEST: Category.QUICK,
    Intent.QUICK_FIX: Category.QUICK,
    Intent.GENERATE_REPORT: Category.WRITING,
    Intent.WRITE_DOCUMENT: Category.WRITING,
    Intent.DESIGN_UI: Category.VISUAL,
    Intent.ANALYZE_SYSTEM: Category.DEEP_REASONING,
    Intent.BRAINSTORM: Category.CREATIVE,
}

TOPIC_CATEGORY: dict[str, Category] = {
    "frontend": Category.VISUAL,
    "architecture": Category.DEEP_REASONING,
    "creative": Category.CREATIVE,
    "documentation": Category.WRITING,
    "quick-fix": Category.QUICK,
}

TOPIC_WEIGHT = 0.5


@dataclass(frozen=True)
class FallbackDecision:
    """Fallback classifier outcome.

    Attributes:
        category: Winning category.
        score: Winning raw score.
        confidence: Winning share of the total score, in [0, 1].
        continuity_applied: Whether the continuity boost was added.
    """

    category: Category
    score: float
    confidence: float
    continuity_applied: bool


class FallbackCategoryClassifier:
    """Weighted-evidence classifier with continuity boost and default prior."""

    def __init__(self, config: RoutingConfig | None = None) -> None:
        self._config = config or RoutingConfig()

    def boost_applies(self, continuity: ContinuityContext) -> bool:
        """Whether continuity is strong enough to boost the previous category."""
        return (
            continuity.last_category is not None
            and continuity.score >= self._config.continuity_min_score
            and self._config.continuity_weight > 0
        )

    def score(
        self,
        analysis: AnalysisResult,
        continuity: ContinuityContext,
    ) -> dict[Category, float]:
        """Score every category for an analysis."""
        scores = {category: 0.0 for category in Category}
        scores[self._config.default_category] += self._config.default_prior

        mapped = INTENT_CATEGORY_RULES.get(analysis.intent)
        if mapped is not None:
            scores[mapped] += analysis.confidence

        for topic in analysis.values_of(EntityType.TOPIC):
            category = TOPIC_CATEGORY.get(topic)
            if category is not None:
                scores[category] += TOPIC_WEIGHT

        if self.boost_applies(continuity):
            scores[continuity.last_category] += self._config.continuity_weight * continuity.score

        return scores

    def classify(
        self,
        analysis: AnalysisResult,
        continuity: ContinuityContext,
    ) -> FallbackDecision | None:
        """Pick a category, or None when the evidence is below the minimum score.

        Args:
            analysis: Analysis of the request.
            continuity: Conversation continuity context.

        Returns:
            FallbackDecision, or None to defer to the default strategy.
        """
        scores = self.score(analysis, continuity)
        boosted = continuity.last_category if self.boost_applies(continuity) else None
        order = list(Category)

        def rank(category: Category) -> tuple[float, int, int, int]:
            return (
                -scores[category],
                0 if category == boosted else 1,
                0 if category == self._config.default_category else 1,
                order.index(category),
            )

        winner = min(scores, key=rank)
        best = scores[winner]
        if best < self._config.fallback_min_score:
            logger.debug("Fallback evidence too weak (best=%s %.3f)", winner.value, best)
            return None

        total = sum(scores.values())
        confidence = min(1.0, best / total) if total > 0 else 0.0
        logger.debug(
            "Fallback classifier chose %s (score=%.3f, boosted=%s)",
            winner.value,
            best,
            boosted.value if boosted else None,
        )
        return FallbackDecision(
            category=winner,
            score=best,
            confidence=round(confidence, 4),
            continuity_applied=boosted is not None,
        )
