"""Entity extraction, follow-up and ambiguity detection for request text.

Extraction is keyword and pattern based. Every extractor returns entities
with character spans into the original text so callers can highlight or
strip them. Due dates are normalized to ISO dates with python-dateutil,
relative to a caller-supplied ``now``.

Example:
    >>> entities = extract_entities("create a task due Friday for the launch")
    >>> [(e.type.value, e.value) for e in entities]
    [('action', 'create'), ('object', 'task'), ('dueDate', 'Friday')]
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from taskrelay.orchestrator.models.analysis import AmbiguityReport, Entity, EntityType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordPattern:
    """Compiled keyword pattern mapping to an entity value."""

    value: str
    pattern: re.Pattern


def _keywords(value: str, *words: str) -> KeywordPattern:
    alternation = "|".join(re.escape(w).replace(r"\ ", r"\s+") for w in words)
    return KeywordPattern(value, re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE))


# Integration providers a request may target
TARGET_PATTERNS: tuple[KeywordPattern, ...] = (
    _keywords("notion", "notion"),
    _keywords("slack", "slack"),
    _keywords("github", "github"),
    _keywords("linear", "linear"),
    _keywords("jira", "jira"),
    _keywords("asana", "asana"),
    _keywords("airtable", "airtable"),
)

ACTION_PATTERNS: tuple[KeywordPattern, ...] = (
    _keywords("create", "create", "add", "make", "open", "file"),
    _keywords("update", "update", "modify", "change", "edit", "reassign"),
    _keywords("delete", "delete", "remove", "archive"),
    _keywords("query", "show", "list", "find", "search", "get", "look up"),
    _keywords("approve", "approve", "reject", "sign off"),
)

OBJECT_PATTERNS: tuple[KeywordPattern, ...] = (
    _keywords("task", "task", "tasks", "ticket", "tickets", "issue", "issues", "todo"),
    _keywords("document", "document", "documents", "doc", "docs"),
    _keywords("workflow", "workflow", "workflows"),
    _keywords("page", "page", "pages"),
    _keywords("request", "request", "requests"),
)

PRIORITY_PATTERNS: tuple[KeywordPattern, ...] = (
    _keywords(
        "high", "urgent", "critical", "asap", "immediately", "high priority",
        "high-priority", "p0", "p1",
    ),
    _keywords("medium", "normal priority", "medium priority", "medium"),
    _keywords("low", "low priority", "low-priority", "whenever", "eventually"),
)

# Topic tags feed category fallback scoring and skill triggers
TOPIC_PATTERNS: tuple[KeywordPattern, ...] = (
    _keywords(
        "frontend", "ui", "ux", "css", "html", "react", "frontend", "front-end",
        "layout", "landing page", "component", "button", "navbar", "stylesheet",
        "responsive", "tailwind", "figma", "mockup", "wireframe",
    ),
    _keywords(
        "architecture", "architecture", "system design", "scalability",
        "distributed", "algorithm", "performance", "bottleneck", "concurrency",
        "race condition", "schema", "refactor", "trade-off", "tradeoffs",
    ),
    _keywords(
        "creative", "brainstorm", "slogan", "tagline", "story", "poem",
        "creative", "ideas", "naming", "campaign",
    ),
    _keywords(
        "documentation", "documentation", "docs", "readme", "report", "email",
        "blog", "article", "memo", "release notes", "proposal", "changelog",
    ),
    _keywords(
        "quick-fix", "typo", "typos", "rename", "quick fix", "small fix",
        "one-liner", "tweak",
    ),
    _keywords(
        "browser", "browser", "screenshot", "scrape", "playwright", "selenium",
        "website", "e2e", "navigate to", "click",
    ),
    _keywords(
        "vcs", "git", "commit", "branch", "merge", "rebase", "pull request",
        "cherry-pick", "diff",
    ),
)

_ASSIGNEE_HANDLE = re.compile(r"@([A-Za-z0-9_][\w.-]*)")
_ASSIGNEE_PHRASE = re.compile(
    r"\bassign(?:ed)?\s+(?:it\s+|this\s+|that\s+)?to\s+@?([A-Za-z0-9_][\w.-]*)",
    re.IGNORECASE,
)
_PROJECT_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"\bproject\s+[\"']?([A-Za-z0-9][\w-]*)", re.IGNORECASE),
    re.compile(r"\bin\s+the\s+([A-Z][\w-]*)\s+project\b"),
)

_WEEKDAYS = {
    "monday": MO,
    "tuesday": TU,
    "wednesday": WE,
    "thursday": TH,
    "friday": FR,
    "saturday": SA,
    "sunday": SU,
}
_MONTHS = (
    r"jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?"
)
_DATE_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b\d{4}-\d{2}-\d{2}\b",
        rf"\b(?:{_MONTHS})\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?\b",
        rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?(?:{_MONTHS})\b",
        r"\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b",
        r"\b(?:next\s+)?(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
        r"\b(?:today|tonight|tomorrow|next\s+week|end\s+of\s+(?:the\s+)?week)\b",
        r"\bin\s+\d{1,3}\s+days?\b",
    )
)

_FOLLOW_UP_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^\s*(?:also|and|plus)\b",
        r"\b(?:additionally|furthermore|moreover)\b",
        r"\b(?:same as before|same thing|the same|as before|like before|similar to)\b",
        r"\b(?:what|how)\s+about\b",
        r"\bwhat\s+if\b",
        r"\b(?:update|modify|change|adjust|tweak|fix)\s+(?:it|that|this|the previous)\b",
        r"^\s*(?:it|that|this|those|them)\b",
    )
)

_PRONOUN = re.compile(r"\b(?:it|this|that|them|those)\b", re.IGNORECASE)


def _earliest_match(
    text: str,
    patterns: tuple[KeywordPattern, ...],
    entity_type: EntityType,
) -> Entity | None:
    """Return the match closest to the start of text; table order breaks ties."""
    best: tuple[int, KeywordPattern, re.Match] | None = None
    for keyword in patterns:
        match = keyword.pattern.search(text)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), keyword, match)
    if best is None:
        return None
    _, keyword, match = best
    return Entity(type=entity_type, value=keyword.value, span=match.span())


def extract_topics(text: str) -> list[Entity]:
    """Extract one topic entity per topic whose keywords appear in text."""
    topics = []
    for keyword in TOPIC_PATTERNS:
        match = keyword.pattern.search(text)
        if match:
            topics.append(Entity(type=EntityType.TOPIC, value=keyword.value, span=match.span()))
    return topics


def extract_targets(text: str) -> list[Entity]:
    """Extract every integration provider mentioned in text."""
    targets = []
    for keyword in TARGET_PATTERNS:
        match = keyword.pattern.search(text)
        if match:
            targets.append(Entity(type=EntityType.TARGET, value=keyword.value, span=match.span()))
    return targets


def extract_assignee(text: str) -> Entity | None:
    """Extract an assignee from an @handle or an "assign to X" phrase."""
    match = _ASSIGNEE_HANDLE.search(text) or _ASSIGNEE_PHRASE.search(text)
    if not match:
        return None
    return Entity(type=EntityType.ASSIGNEE, value=match.group(1), span=match.span(1))


def extract_project(text: str) -> Entity | None:
    """Extract an explicitly named project."""
    for pattern in _PROJECT_PATTERNS:
        match = pattern.search(text)
        if match and len(match.group(1)) > 1:
            return Entity(type=EntityType.PROJECT, value=match.group(1), span=match.span(1))
    return None


def normalize_date(expression: str, now: datetime) -> str | None:
    """Normalize a date expression to an ISO date relative to ``now``.

    Weekday names resolve to the next occurrence (today counts). Explicit
    dates without a year take the year of ``now``.

    Args:
        expression: Date phrase as it appears in text (e.g. "Friday").
        now: Reference time.

    Returns:
        ISO date string (YYYY-MM-DD), or None when unparseable.
    """
    phrase = " ".join(expression.lower().split())
    today = now.date()

    if phrase in ("today", "tonight"):
        return today.isoformat()
    if phrase == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if phrase == "next week":
        return (today + timedelta(days=7)).isoformat()
    if phrase in ("end of week", "end of the week"):
        return (today + relativedelta(weekday=FR(+1))).isoformat()

    in_days = re.fullmatch(r"in (\d{1,3}) days?", phrase)
    if in_days:
        return (today + timedelta(days=int(in_days.group(1)))).isoformat()

    words = phrase.split()
    if words and words[-1] in _WEEKDAYS:
        weekday = _WEEKDAYS[words[-1]]
        target = today + relativedelta(weekday=weekday(+1))
        if words[0] == "next" and target == today:
            target = today + relativedelta(days=1, weekday=weekday(+1))
        return target.isoformat()

    try:
        default = datetime(now.year, now.month, now.day)
        parsed = date_parser.parse(expression, default=default, fuzzy=True)
    except (ValueError, OverflowError):
        logger.debug("Could not parse date expression %r", expression)
        return None
    return parsed.date().isoformat()


def extract_due_date(text: str, now: datetime | None = None) -> Entity | None:
    """Extract the earliest-positioned date expression as a due date.

    Args:
        text: Request text.
        now: Reference time for relative dates. Defaults to current UTC time.

    Returns:
        Due date entity with the raw phrase as value and ISO normalization.
    """
    now = now or datetime.now(timezone.utc)
    best: re.Match | None = None
    for pattern in _DATE_PATTERNS:
        match = pattern.search(text)
        if match and (best is None or match.start() < best.start()):
            best = match
    if best is None:
        return None
    raw = best.group(0)
    return Entity(
        type=EntityType.DUE_DATE,
        value=raw,
        span=best.span(),
        normalized=normalize_date(raw, now),
    )


def extract_entities(text: str, now: datetime | None = None) -> list[Entity]:
    """Extract all entities from request text.

    Args:
        text: Request text.
        now: Reference time for relative dates.

    Returns:
        Entities sorted by position in the text.
    """
    entities: list[Entity] = []
    entities.extend(extract_targets(text))
    for patterns, entity_type in (
        (ACTION_PATTERNS, EntityType.ACTION),
        (OBJECT_PATTERNS, EntityType.OBJECT),
        (PRIORITY_PATTERNS, EntityType.PRIORITY),
    ):
        entity = _earliest_match(text, patterns, entity_type)
        if entity is not None:
            entities.append(entity)

    for extracted in (extract_assignee(text), extract_due_date(text, now), extract_project(text)):
        if extracted is not None:
            entities.append(extracted)

    entities.extend(extract_topics(text))
    return sorted(entities, key=lambda e: (e.span[0], e.type.value))


def detect_follow_up(text: str) -> bool:
    """Check whether text reads as a follow-up to an earlier turn."""
    return any(pattern.search(text) for pattern in _FOLLOW_UP_PATTERNS)


def detect_ambiguity(text: str, entities: list[Entity]) -> AmbiguityReport:
    """Report missing information with clarifying questions.

    Args:
        text: Request text.
        entities: Entities already extracted from the text.

    Returns:
        AmbiguityReport listing what is missing.
    """
    present = {e.type for e in entities}
    reasons: list[str] = []
    questions: list[str] = []

    if EntityType.ASSIGNEE not in present and re.search(
        r"\b(?:assign|allocate|assignee|owner)\b", text, re.IGNORECASE
    ):
        reasons.append("assignee")
        questions.append("Who should this be assigned to?")

    if EntityType.DUE_DATE not in present and re.search(
        r"\b(?:by|before|until|deadline|due)\b", text, re.IGNORECASE
    ):
        reasons.append("dueDate")
        questions.append("When is the deadline?")

    if EntityType.PRIORITY not in present and re.search(
        r"\b(?:priority|important)\b", text, re.IGNORECASE
    ):
        reasons.append("priority")
        questions.append("What priority level should this have?")

    if EntityType.PROJECT not in present and re.search(r"\bproject\b", text, re.IGNORECASE):
        reasons.append("project")
        questions.append("Which project is this for?")

    if EntityType.OBJECT not in present and _PRONOUN.search(text):
        reasons.append("referent")
        questions.append("What are you referring to?")

    return AmbiguityReport(
        is_ambiguous=bool(reasons),
        reasons=tuple(reasons),
        clarifying_questions=tuple(questions),
    )
