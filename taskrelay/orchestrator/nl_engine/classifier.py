"""Token-weight intent classifier for text the pattern rules miss.

Each intent owns a small vocabulary of weighted tokens. A request scores
the sum of weights of the distinct vocabulary tokens it contains, and the
best-scoring intent wins. Confidence equals the score, capped below the
rule confidence so rule matches always outrank classifier guesses.
"""

import re
from dataclasses import dataclass

from taskrelay.orchestrator.models.analysis import Intent

_TOKEN = re.compile(r"[a-z][a-z0-9'-]*")

INTENT_TOKEN_WEIGHTS: dict[Intent, dict[str, float]] = {
    Intent.CREATE_TASK: {
        "task": 0.3, "todo": 0.4, "ticket": 0.3, "assign": 0.3, "create": 0.2,
        "add": 0.15, "new": 0.1, "schedule": 0.2,
    },
    Intent.UPDATE_TASK: {
        "update": 0.35, "change": 0.25, "status": 0.3, "reassign": 0.4,
        "done": 0.2, "progress": 0.2, "postpone": 0.35, "reschedule": 0.4,
    },
    Intent.QUERY_DATA: {
        "show": 0.25, "list": 0.3, "find": 0.3, "search": 0.35, "where": 0.2,
        "which": 0.2, "lookup": 0.3, "pending": 0.2, "overdue": 0.25,
    },
    Intent.APPROVE_REQUEST: {
        "approve": 0.5, "reject": 0.5, "approval": 0.45, "sign-off": 0.45,
        "decline": 0.4,
    },
    Intent.GENERATE_REPORT: {
        "report": 0.45, "summary": 0.35, "metrics": 0.3, "stats": 0.3,
        "analytics": 0.35, "weekly": 0.1, "monthly": 0.1, "kpi": 0.35,
    },
    Intent.DESIGN_UI: {
        "design": 0.3, "ui": 0.4, "ux": 0.4, "layout": 0.35, "mockup": 0.4,
        "button": 0.3, "page": 0.2, "css": 0.4, "color": 0.2, "responsive": 0.35,
        "component": 0.25, "frontend": 0.35,
    },
    Intent.ANALYZE_SYSTEM: {
        "architecture": 0.45, "performance": 0.35, "bottleneck": 0.4,
        "scalability": 0.4, "debug": 0.3, "analyze": 0.3, "analyse": 0.3,
        "algorithm": 0.35, "refactor": 0.3, "complex": 0.2, "latency": 0.3,
    },
    Intent.WRITE_DOCUMENT: {
        "write": 0.3, "draft": 0.35, "document": 0.3, "documentation": 0.4,
        "readme": 0.4, "email": 0.3, "article": 0.35, "blog": 0.35,
        "proposal": 0.3, "memo": 0.35,
    },
    Intent.BRAINSTORM: {
        "ideas": 0.4, "idea": 0.35, "brainstorm": 0.5, "creative": 0.35,
        "slogan": 0.4, "story": 0.3, "tagline": 0.4, "name": 0.15,
    },
    Intent.QUICK_FIX: {
        "typo": 0.5, "fix": 0.25, "rename": 0.35, "quick": 0.3, "small": 0.15,
        "tweak": 0.35, "minor": 0.2,
    },
}


@dataclass(frozen=True)
class ClassifierResult:
    """Best intent and its score."""

    intent: Intent
    confidence: float


def tokenize(text: str) -> set[str]:
    """Lower-case word tokens, with a trailing plural ``s`` also indexed."""
    tokens = set(_TOKEN.findall(text.lower()))
    singulars = {t[:-1] for t in tokens if len(t) > 3 and t.endswith("s")}
    return tokens | singulars


class TokenClassifier:
    """Weighted-vocabulary intent classifier.

    Args:
        max_confidence: Upper bound for reported confidence.
        min_score: Scores below this are reported as ``unknown``.
        weights: Per-intent token weights; defaults to INTENT_TOKEN_WEIGHTS.
    """

    def __init__(
        self,
        max_confidence: float = 0.85,
        min_score: float = 0.2,
        weights: dict[Intent, dict[str, float]] | None = None,
    ) -> None:
        self._max_confidence = max_confidence
        self._min_score = min_score
        self._weights = weights or INTENT_TOKEN_WEIGHTS

    def score(self, text: str) -> dict[Intent, float]:
        """Score every intent against text."""
        tokens = tokenize(text)
        return {
            intent: sum(w for token, w in vocab.items() if token in tokens)
            for intent, vocab in self._weights.items()
        }

    def classify(self, text: str) -> ClassifierResult:
        """Classify text, returning ``unknown`` with confidence 0 on no evidence.

        Ties go to the intent listed first in the weight table.
        """
        scores = self.score(text)
        best_intent = Intent.UNKNOWN
        best_score = 0.0
        for intent, value in scores.items():
            if value > best_score:
                best_intent, best_score = intent, value
        if best_score < self._min_score:
            return ClassifierResult(Intent.UNKNOWN, 0.0)
        return ClassifierResult(best_intent, round(min(best_score, self._max_confidence), 4))
