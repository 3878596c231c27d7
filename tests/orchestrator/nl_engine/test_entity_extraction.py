"""Tests for entity extraction, date normalization, follow-up and ambiguity detection."""

from datetime import datetime, timezone

import pytest

from taskrelay.orchestrator.models import EntityType
from taskrelay.orchestrator.nl_engine.entity_extraction import (
    detect_ambiguity,
    detect_follow_up,
    extract_assignee,
    extract_due_date,
    extract_entities,
    extract_project,
    extract_targets,
    extract_topics,
    normalize_date,
)

# Wednesday
NOW = datetime(2026, 10, 14, 9, 30, tzinfo=timezone.utc)


def _pairs(entities):
    return [(e.type.value, e.value) for e in entities]


# ============================================================================
# extract_entities
# ============================================================================


class TestExtractEntities:
    """Full extraction over request text."""

    def test_task_with_due_date(self):
        entities = extract_entities("create a task due Friday for the launch", now=NOW)
        assert _pairs(entities) == [
            ("action", "create"),
            ("object", "task"),
            ("dueDate", "Friday"),
        ]
        due = entities[2]
        assert due.normalized == "2026-10-16"

    def test_sorted_by_position(self):
        entities = extract_entities("In Linear, urgent: create a ticket", now=NOW)
        starts = [e.span[0] for e in entities]
        assert starts == sorted(starts)

    def test_spans_point_into_text(self):
        text = "Please file an issue in GitHub"
        target = next(e for e in extract_entities(text, now=NOW) if e.type == EntityType.TARGET)
        start, end = target.span
        assert text[start:end] == "GitHub"

    def test_one_action_earliest_wins(self):
        entities = extract_entities("show me how to delete the page", now=NOW)
        actions = [e.value for e in entities if e.type == EntityType.ACTION]
        assert actions == ["query"]

    def test_empty_text(self):
        assert extract_entities("", now=NOW) == []


class TestTargetsAndTopics:
    """Provider and topic keyword extraction."""

    def test_multiple_targets(self):
        values = [e.value for e in extract_targets("Sync Jira issues into Notion")]
        assert values == ["notion", "jira"]

    def test_word_boundaries(self):
        assert extract_targets("a slackline is fun") == []

    def test_topics(self):
        values = {e.value for e in extract_topics("fix the typo in the navbar css")}
        assert values == {"frontend", "quick-fix"}

    def test_multi_word_topic(self):
        values = {e.value for e in extract_topics("open a pull request for the fix")}
        assert values == {"vcs"}


class TestAssigneeAndProject:
    """Assignee and project extraction."""

    def test_handle(self):
        assert extract_assignee("assign it to @maria.k please").value == "maria.k"

    def test_phrase(self):
        assert extract_assignee("assign this to bob").value == "bob"

    def test_none(self):
        assert extract_assignee("create a task") is None

    def test_project_keyword(self):
        assert extract_project("add it to project Apollo").value == "Apollo"

    def test_project_suffix_form(self):
        assert extract_project("a task in the Apollo project").value == "Apollo"


# ============================================================================
# Dates
# ============================================================================


class TestNormalizeDate:
    """Date phrases normalize relative to a reference time."""

    @pytest.mark.parametrize(
        "phrase,expected",
        [
            ("today", "2026-10-14"),
            ("tomorrow", "2026-10-15"),
            ("Friday", "2026-10-16"),
            ("next friday", "2026-10-16"),
            ("wednesday", "2026-10-14"),
            ("next wednesday", "2026-10-21"),
            ("next week", "2026-10-21"),
            ("end of the week", "2026-10-16"),
            ("in 3 days", "2026-10-17"),
            ("2026-11-02", "2026-11-02"),
            ("March 5", "2026-03-05"),
            ("12/25", "2026-12-25"),
        ],
    )
    def test_phrases(self, phrase, expected):
        assert normalize_date(phrase, NOW) == expected


class TestExtractDueDate:
    """Due date extraction picks the earliest phrase."""

    def test_earliest(self):
        due = extract_due_date("due tomorrow or Friday at the latest", now=NOW)
        assert due.value == "tomorrow"
        assert due.normalized == "2026-10-15"

    def test_none(self):
        assert extract_due_date("no dates here", now=NOW) is None


# ============================================================================
# Follow-up and ambiguity
# ============================================================================


@pytest.mark.parametrize(
    "text,expected",
    [
        ("also add a due date", True),
        ("What about the backend?", True),
        ("same as before but for marketing", True),
        ("update it to high priority", True),
        ("Create a task for the launch", False),
    ],
)
def test_detect_follow_up(text, expected):
    assert detect_follow_up(text) is expected


class TestDetectAmbiguity:
    """Missing information produces clarifying questions."""

    def test_missing_assignee(self):
        text = "Create a task and assign an owner"
        report = detect_ambiguity(text, extract_entities(text, now=NOW))
        assert report.is_ambiguous
        assert report.reasons == ("assignee",)
        assert report.clarifying_questions == ("Who should this be assigned to?",)

    def test_deadline_and_referent(self):
        text = "Finish it by the deadline"
        report = detect_ambiguity(text, extract_entities(text, now=NOW))
        assert report.reasons == ("dueDate", "referent")

    def test_complete_request(self):
        text = "Create a task for @sam due Friday"
        report = detect_ambiguity(text, extract_entities(text, now=NOW))
        assert not report.is_ambiguous
        assert report.clarifying_questions == ()
