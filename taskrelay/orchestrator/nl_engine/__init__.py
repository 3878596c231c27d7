"""Natural language engine for request analysis.

This package provides intent classification (ordered pattern rules with a
token-weight classifier fallback), entity extraction, follow-up detection
and ambiguity detection.
"""

from taskrelay.orchestrator.nl_engine.analyzer import (
    AnalysisContext,
    RequestAnalyzer,
    analyze,
)
from taskrelay.orchestrator.nl_engine.classifier import (
    INTENT_TOKEN_WEIGHTS,
    ClassifierResult,
    TokenClassifier,
)
from taskrelay.orchestrator.nl_engine.entity_extraction import (
    detect_ambiguity,
    detect_follow_up,
    extract_due_date,
    extract_entities,
    extract_topics,
    normalize_date,
)
from taskrelay.orchestrator.nl_engine.intent_rules import (
    INTENT_RULES,
    IntentRule,
    match_rules,
)

__all__ = [
    # Analyzer
    "AnalysisContext",
    "RequestAnalyzer",
    "analyze",
    # Classifier
    "TokenClassifier",
    "ClassifierResult",
    "INTENT_TOKEN_WEIGHTS",
    # Entities
    "extract_entities",
    "extract_topics",
    "extract_due_date",
    "normalize_date",
    "detect_follow_up",
    "detect_ambiguity",
    # Rules
    "IntentRule",
    "INTENT_RULES",
    "match_rules",
]
