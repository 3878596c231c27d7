"""Request analyzer: intent, entities and confidence from raw text.

Analysis is layered:

1. Ordered pattern rules. The first registered rule that fires sets the
   intent with the configured rule confidence.
2. A token-weight classifier for anything the rules miss, reporting its
   own (lower) confidence.

Entities, follow-up detection and ambiguity detection run on every
request. Analysis is a pure function of the text, the context and the
rule tables; it never raises for malformed input.

Example:
    analyzer = RequestAnalyzer()
    result = analyzer.analyze("create a task due Friday for the launch")
    # result.intent == Intent.CREATE_TASK, result.confidence == 0.9
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from taskrelay.config import AnalyzerConfig
from taskrelay.orchestrator.models.analysis import UNKNOWN_ANALYSIS, AnalysisResult
from taskrelay.orchestrator.nl_engine.classifier import TokenClassifier
from taskrelay.orchestrator.nl_engine.entity_extraction import (
    detect_ambiguity,
    detect_follow_up,
    extract_entities,
)
from taskrelay.orchestrator.nl_engine.intent_rules import INTENT_RULES, IntentRule, match_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisContext:
    """Caller context for one analysis.

    Attributes:
        tenant_id: Tenant the request belongs to.
        has_history: Whether the conversation already has turns. Follow-up
            detection only fires when it does.
        now: Reference time for relative dates.
    """

    tenant_id: str = ""
    has_history: bool = False
    now: datetime | None = None


class RequestAnalyzer:
    """Layered rule + classifier request analyzer.

    Args:
        config: Analyzer settings. Defaults to AnalyzerConfig().
        rules: Ordered rule table. Defaults to INTENT_RULES.
        classifier: Fallback classifier. Built from config when omitted.
    """

    def __init__(
        self,
        config: AnalyzerConfig | None = None,
        rules: tuple[IntentRule, ...] = INTENT_RULES,
        classifier: TokenClassifier | None = None,
    ) -> None:
        self._config = config or AnalyzerConfig()
        self._rules = rules
        self._classifier = classifier or TokenClassifier(
            max_confidence=self._config.classifier_max_confidence,
        )

    def analyze(
        self,
        text: object,
        tenant_context: AnalysisContext | None = None,
    ) -> AnalysisResult:
        """Analyze request text.

        Args:
            text: Raw request text. Non-strings and blank strings yield the
                ``unknown`` result with no entities and confidence 0.
            tenant_context: Optional caller context.

        Returns:
            AnalysisResult for the text.
        """
        if not isinstance(text, str) or not text.strip():
            logger.debug("Blank or non-string request text, returning unknown analysis")
            return UNKNOWN_ANALYSIS

        text = text[: self._config.max_text_length]
        now = tenant_context.now if tenant_context else None

        rule = match_rules(text, self._rules)
        if rule is not None:
            intent = rule.intent
            confidence = self._config.rule_confidence
            matched_rule: str | None = rule.name
        else:
            classified = self._classifier.classify(text)
            intent = classified.intent
            confidence = classified.confidence
            matched_rule = None

        entities = extract_entities(text, now=now)
        follow_up = detect_follow_up(text)
        if tenant_context is not None and not tenant_context.has_history:
            follow_up = False

        result = AnalysisResult(
            intent=intent,
            entities=tuple(entities),
            confidence=confidence,
            is_follow_up=follow_up,
            ambiguity=detect_ambiguity(text, entities),
            matched_rule=matched_rule,
        )
        logger.debug(
            "Analyzed request: intent=%s confidence=%.2f rule=%s entities=%d follow_up=%s",
            result.intent.value,
            result.confidence,
            matched_rule,
            len(entities),
            follow_up,
        )
        return result


_default_analyzer: RequestAnalyzer | None = None


def analyze(text: object, tenant_context: AnalysisContext | None = None) -> AnalysisResult:
    """Analyze text with a process-wide default analyzer.

    Args:
        text: Raw request text.
        tenant_context: Optional caller context.

    Returns:
        AnalysisResult for the text.
    """
    global _default_analyzer
    if _default_analyzer is None:
        _default_analyzer = RequestAnalyzer()
    return _default_analyzer.analyze(text, tenant_context)

