"""
Tests for status token mapping.

Tests cover:
- Reading Task Master tokens into canonical statuses
- Fail-open handling of unknown and non-string values
- Writing canonical statuses back as Task Master tokens
"""

import pytest

from taskmaster_bridge.core.models import TaskStatus
from taskmaster_bridge.core.status import STATUS_SYNONYMS, denormalize, normalize


class TestNormalize:
    """Tests for normalize()."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("pending", TaskStatus.TODO),
            ("todo", TaskStatus.TODO),
            ("done", TaskStatus.COMPLETED),
            ("completed", TaskStatus.COMPLETED),
            ("in-progress", TaskStatus.IN_PROGRESS),
            ("in_progress", TaskStatus.IN_PROGRESS),
            ("blocked", TaskStatus.BLOCKED),
            ("deferred", TaskStatus.DEFERRED),
            ("cancelled", TaskStatus.CANCELLED),
            ("review", TaskStatus.REVIEW),
        ],
    )
    def test_known_tokens(self, raw, expected):
        """Every Task Master token maps to its canonical status."""
        assert normalize(raw) == expected

    def test_case_and_whitespace_ignored(self):
        assert normalize("  DONE ") == TaskStatus.COMPLETED

    @pytest.mark.parametrize("raw", ["wip", "", None, 3, ["done"]])
    def test_unknown_values_become_todo(self, raw):
        """Unrecognised input never raises."""
        assert normalize(raw) == TaskStatus.TODO

    def test_canonical_status_passes_through(self):
        assert normalize(TaskStatus.REVIEW) is TaskStatus.REVIEW


class TestDenormalize:
    """Tests for denormalize()."""

    def test_todo_written_as_pending(self):
        assert denormalize(TaskStatus.TODO) == "pending"

    def test_completed_written_as_done(self):
        assert denormalize(TaskStatus.COMPLETED) == "done"

    def test_shared_tokens_unchanged(self):
        assert denormalize(TaskStatus.IN_PROGRESS) == "in-progress"
        assert denormalize(TaskStatus.BLOCKED) == "blocked"

    def test_accepts_raw_strings(self):
        assert denormalize("completed") == "done"
        assert denormalize("in_progress") == "in-progress"

    def test_every_synonym_survives_round_trip(self):
        """Writing then reading any token lands on the same canonical status."""
        for token, status in STATUS_SYNONYMS.items():
            assert normalize(denormalize(token)) == status
