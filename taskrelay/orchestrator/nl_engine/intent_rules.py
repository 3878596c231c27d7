"""Ordered pattern rules for intent classification.

Rules are evaluated in registration order and the first rule with any
matching pattern wins, regardless of where in the text the match occurs.
The table is built once at import time and never mutated.
"""

import re
from dataclasses import dataclass

from taskrelay.orchestrator.models.analysis import Intent


@dataclass(frozen=True)
class IntentRule:
    """A named rule mapping text patterns to an intent.

    Attributes:
        name: Stable rule identifier, reported on the analysis result.
        intent: Intent assigned when the rule fires.
        patterns: Compiled patterns; any match fires the rule.
    """

    name: str
    intent: Intent
    patterns: tuple[re.Pattern, ...]

    def matches(self, text: str) -> bool:
        """Check whether any pattern matches text."""
        return any(p.search(text) for p in self.patterns)


def _rule(name: str, intent: Intent, *patterns: str) -> IntentRule:
    return IntentRule(
        name=name,
        intent=intent,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
    )


INTENT_RULES: tuple[IntentRule, ...] = (
    _rule(
        "approval",
        Intent.APPROVE_REQUEST,
        r"\b(?:approve|reject|deny|decline)\s+(?:this|that|the|my|his|her|their|\w+'s)\b",
        r"\b(?:should|can)\s+i\s+(?:approve|reject)\b",
        r"\bsign\s+off\s+on\b",
    ),
    _rule(
        "report",
        Intent.GENERATE_REPORT,
        r"\b(?:generate|create|make|build|prepare|produce)\s+(?:an?\s+|the\s+|my\s+)?"
        r"(?:\w+\s+)?(?:report|summary|overview|analytics|stats|statistics)\b",
        r"\b(?:report|analytics|summary|stats)\s+(?:on|about|for)\b",
        r"\bhow\s+many\b",
    ),
    _rule(
        "task_creation",
        Intent.CREATE_TASK,
        r"\b(?:create|add|make|open|file|schedule)\s+(?:an?\s+|the\s+|new\s+)*"
        r"(?:task|ticket|issue|job|assignment|todo)s?\b",
        r"\bnew\s+(?:task|ticket|issue|todo)\b",
        r"\bassign\s+(?:this|it|a\s+task)\s+to\b",
    ),
    _rule(
        "task_update",
        Intent.UPDATE_TASK,
        r"\b(?:update|modify|change|edit|close|reassign|reopen)\s+(?:the\s+|this\s+|that\s+|my\s+)?"
        r"(?:task|ticket|issue|status|assignment|due\s+date|priority)\b",
        r"\bmark\s+.+?\s+as\s+(?:done|complete|completed|closed|blocked)\b",
    ),
    _rule(
        "ui_design",
        Intent.DESIGN_UI,
        r"\b(?:design|redesign|mock\s*up|wireframe|prototype|style)\b.*"
        r"\b(?:ui|ux|page|screen|layout|component|dashboard|interface|form|navbar)\b",
        r"\bbuild\s+(?:a|an|the)\s+(?:landing\s+page|login\s+page|signup\s+form|navbar|component)\b",
    ),
    _rule(
        "system_analysis",
        Intent.ANALYZE_SYSTEM,
        r"\b(?:analy[sz]e|debug|investigate|diagnose|profile|optimi[sz]e|review)\b.*"
        r"\b(?:architecture|system|performance|bottleneck|race\s+condition|memory\s+leak|"
        r"algorithm|scalability|latency)\b",
        r"\broot\s+cause\b",
        r"\btrade-?offs?\s+(?:between|of)\b",
    ),
    _rule(
        "documentation",
        Intent.WRITE_DOCUMENT,
        r"\b(?:write|draft|compose)\s+(?:an?\s+|the\s+|some\s+)?(?:\w+\s+)?"
        r"(?:doc|docs|documentation|readme|email|blog\s+post|article|spec|proposal|"
        r"announcement|release\s+notes|memo)\b",
    ),
    _rule(
        "brainstorm",
        Intent.BRAINSTORM,
        r"\bbrainstorm\w*\b",
        r"\b(?:ideas?|names?|slogans?|taglines?)\s+for\b",
        r"\bcome\s+up\s+with\b",
    ),
    _rule(
        "quick_fix",
        Intent.QUICK_FIX,
        r"\b(?:fix|correct)\s+(?:a\s+|the\s+|this\s+|that\s+)?(?:typo|typos|spelling|small\s+bug)\b",
        r"\bquick\s+fix\b",
        r"\brename\s+(?:the\s+|this\s+)?(?:variable|function|file|method|class)\b",
    ),
    _rule(
        "data_query",
        Intent.QUERY_DATA,
        r"\b(?:show|list|find|search|look\s+up|get)\s+(?:me\s+)?(?:my|all|the|open|pending|overdue)\s+\w+",
        r"\bwhat'?s\s+(?:on|in)\s+(?:my|the)\s+(?:plate|list|queue|backlog)\b",
        r"\bwhere\s+is\s+(?:the|my)\b",
    ),
)


def match_rules(text: str, rules: tuple[IntentRule, ...] = INTENT_RULES) -> IntentRule | None:
    """Return the earliest-registered rule that fires on text.

    Args:
        text: Request text.
        rules: Rule table to evaluate, in priority order.

    Returns:
        The winning IntentRule, or None if no rule fires.
    """
    for rule in rules:
        if rule.matches(text):
            return rule
    return None
