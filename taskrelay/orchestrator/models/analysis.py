"""Analysis models produced by the request analyzer.

These Pydantic models describe what the analyzer understood about a
request: the intent label, the extracted entities, a confidence score,
and conversational hints (follow-up, ambiguity).
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Intent(str, Enum):
    """Closed set of request intents."""

    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    QUERY_DATA = "query_data"
    APPROVE_REQUEST = "approve_request"
    GENERATE_REPORT = "generate_report"
    DESIGN_UI = "design_ui"
    ANALYZE_SYSTEM = "analyze_system"
    WRITE_DOCUMENT = "write_document"
    BRAINSTORM = "brainstorm"
    QUICK_FIX = "quick_fix"
    UNKNOWN = "unknown"


class EntityType(str, Enum):
    """Kinds of entities the analyzer extracts."""

    TARGET = "target"
    ACTION = "action"
    OBJECT = "object"
    ASSIGNEE = "assignee"
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    PROJECT = "project"
    TOPIC = "topic"


# Entity types that make up a routing signature. Assignee, project and due
# date are excluded.
SIGNATURE_ENTITY_TYPES: frozenset[EntityType] = frozenset(
    {
        EntityType.TOPIC,
        EntityType.TARGET,
        EntityType.OBJECT,
        EntityType.ACTION,
        EntityType.PRIORITY,
    }
)


class Entity(BaseModel):
    """A typed value extracted from request text.

    Attributes:
        type: Entity kind.
        value: Extracted value as it appears (lower-cased for keywords).
        span: Character offsets (start, end) in the original text.
        normalized: Optional canonical form (e.g. ISO date for due dates).
    """

    model_config = ConfigDict(frozen=True)

    type: EntityType
    value: str
    span: tuple[int, int] = (0, 0)
    normalized: Optional[str] = None


class AmbiguityReport(BaseModel):
    """Ambiguity findings with clarifying questions."""

    model_config = ConfigDict(frozen=True)

    is_ambiguous: bool = False
    reasons: tuple[str, ...] = ()
    clarifying_questions: tuple[str, ...] = ()


class AnalysisResult(BaseModel):
    """Result of analyzing one request.

    Attributes:
        intent: Classified intent, ``unknown`` when nothing matched.
        entities: Entities in order of appearance in the text.
        confidence: Classification confidence in [0, 1].
        is_follow_up: Whether the text reads as a follow-up to a prior turn.
        ambiguity: Missing-information report.
        matched_rule: Name of the pattern rule that fired, if any.
    """

    model_config = ConfigDict(frozen=True)

    intent: Intent = Intent.UNKNOWN
    entities: tuple[Entity, ...] = ()
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    is_follow_up: bool = False
    ambiguity: AmbiguityReport = Field(default_factory=AmbiguityReport)
    matched_rule: Optional[str] = None

    def values_of(self, entity_type: EntityType) -> list[str]:
        """Return entity values of one type, in order of appearance."""
        return [e.value for e in self.entities if e.type == entity_type]

    def has_entity(self, entity_type: EntityType, value: str | None = None) -> bool:
        """Check for an entity of a type, optionally with a specific value."""
        return any(
            e.type == entity_type and (value is None or e.value == value)
            for e in self.entities
        )

    def entity_signature(self) -> tuple[tuple[str, str], ...]:
        """Sorted, de-duplicated (type, value) pairs of routing-relevant entities."""
        pairs = {
            (e.type.value, e.value.lower())
            for e in self.entities
            if e.type in SIGNATURE_ENTITY_TYPES
        }
        return tuple(sorted(pairs))


UNKNOWN_ANALYSIS = AnalysisResult()
