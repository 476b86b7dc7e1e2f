"""
Tests for raw task sanitization.

Tests cover:
- Required id and title
- Field coercion (status, priority, dependencies, optional text)
- Recursive subtasks with parent ids
- Duplicate sibling ids
- Issue collection instead of raising
"""

from taskmaster_bridge.core.models import TaskPriority, TaskStatus
from taskmaster_bridge.core.validation import sanitize_task, sanitize_tasks


class TestSanitizeTask:
    """Tests for sanitize_task()."""

    def test_full_entry(self):
        raw = {
            "id": 3,
            "title": "  Build API  ",
            "description": "desc",
            "details": "details",
            "testStrategy": "unit tests",
            "status": "done",
            "priority": "HIGH",
            "category": "backend",
            "dependencies": [1, "2", None, ""],
            "created": "2025-01-01T00:00:00Z",
        }
        task, issues = sanitize_task(raw, source="file", path="tasks[0]")
        assert issues == []
        assert task.id == "3"
        assert task.title == "Build API"
        assert task.test_strategy == "unit tests"
        assert task.status == TaskStatus.COMPLETED
        assert task.priority == TaskPriority.HIGH
        assert task.category == "backend"
        assert task.dependencies == ["1", "2"]
        assert task.created == "2025-01-01T00:00:00Z"
        assert task.updated is None

    def test_defaults(self):
        task, _ = sanitize_task({"id": 1, "title": "T"}, source="file", path="p")
        assert task.status == TaskStatus.TODO
        assert task.priority == TaskPriority.MEDIUM
        assert task.category is None
        assert task.dependencies == []
        assert task.description == ""

    def test_unknown_priority_defaults_to_medium(self):
        task, _ = sanitize_task({"id": 1, "title": "T", "priority": "urgent"}, source="file", path="p")
        assert task.priority == TaskPriority.MEDIUM

    def test_missing_id(self):
        task, issues = sanitize_task({"title": "T"}, source="protocol", path="tasks[2]")
        assert task is None
        assert issues[0].reason == "missing id"
        assert issues[0].source == "protocol"
        assert issues[0].path == "tasks[2]"

    def test_missing_title(self):
        task, issues = sanitize_task({"id": 5, "title": "   "}, source="file", path="p")
        assert task is None
        assert issues[0].task_id == "5"

    def test_not_an_object(self):
        task, issues = sanitize_task("junk", source="file", path="p")
        assert task is None
        assert issues[0].reason == "entry is not an object"

    def test_subtasks_get_parent_id(self):
        raw = {"id": 1, "title": "P", "subtasks": [{"id": 1, "title": "C"}]}
        task, _ = sanitize_task(raw, source="file", path="tasks[0]")
        assert task.subtasks[0].parent_id == "1"

    def test_invalid_subtask_dropped_parent_kept(self):
        raw = {"id": 1, "title": "P", "subtasks": [{"id": 1}, {"id": 2, "title": "ok"}]}
        task, issues = sanitize_task(raw, source="file", path="tasks[0]")
        assert [sub.id for sub in task.subtasks] == ["2"]
        assert issues[0].path == "tasks[0].subtasks[0]"


class TestSanitizeTasks:
    """Tests for sanitize_tasks()."""

    def test_valid_remainder_returned(self):
        raw = [{"id": 1, "title": "A"}, {"title": "no id"}, {"id": 3, "title": "C"}]
        tasks, issues = sanitize_tasks(raw)
        assert [task.id for task in tasks] == ["1", "3"]
        assert len(issues) == 1

    def test_duplicate_sibling_ids_keep_first(self):
        raw = [{"id": 1, "title": "first"}, {"id": "1", "title": "second"}]
        tasks, issues = sanitize_tasks(raw)
        assert [task.title for task in tasks] == ["first"]
        assert issues[0].reason == "duplicate id"

    def test_non_list_input(self):
        tasks, issues = sanitize_tasks({"id": 1})
        assert tasks == []
        assert "expected a list" in issues[0].reason

    def test_issue_str(self):
        _, issues = sanitize_tasks([{"id": 4}], source="protocol")
        assert str(issues[0]) == "[protocol] tasks[0] (id=4): missing title"
