"""Routing models: categories, skills and selection results."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Category(str, Enum):
    """Execution profile a request is routed to. Exactly one per request."""

    VISUAL = "visual"
    DEEP_REASONING = "deep-reasoning"
    CREATIVE = "creative"
    WRITING = "writing"
    QUICK = "quick"
    DEFAULT = "default"


class Skill(str, Enum):
    """Capability module attached to a request. Zero or many per request."""

    FRONTEND_UI = "frontend-ui"
    BROWSER_AUTOMATION = "browser-automation"
    GIT = "git"
    INTEGRATIONS = "integrations"


class SelectionSource(str, Enum):
    """Which strategy produced a category selection."""

    REQUEST_PIN = "request_pin"
    TENANT_PIN = "tenant_pin"
    CACHE = "cache"
    RULE = "rule"
    FALLBACK = "fallback"
    DEFAULT = "default"


class ContinuityContext(BaseModel):
    """Conversation context consulted by the selectors.

    Attributes:
        score: Continuity score in [0, 1] against the previous turn.
        last_category: Category of the previous turn, if any.
        last_skills: Skills of the previous turn.
    """

    model_config = ConfigDict(frozen=True)

    score: float = Field(default=0.0, ge=0.0, le=1.0)
    last_category: Optional[Category] = None
    last_skills: frozenset[Skill] = frozenset()


NO_CONTINUITY = ContinuityContext()


class CategorySelection(BaseModel):
    """Outcome of category selection.

    Attributes:
        category: The selected category.
        source: Strategy that produced the selection.
        confidence: Strategy confidence in [0, 1].
        continuity_applied: Whether a continuity boost influenced the result.
    """

    model_config = ConfigDict(frozen=True)

    category: Category
    source: SelectionSource
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    continuity_applied: bool = False


def sorted_skills(skills: frozenset[Skill] | set[Skill]) -> list[Skill]:
    """Report skills in a stable order."""
    return sorted(skills, key=lambda s: s.value)
