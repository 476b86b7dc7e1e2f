"""Canonical task model shared by every channel.

Whatever shape a task arrives in (protocol payload, CLI-managed tasks.json,
legacy file), it ends up as a ``Task`` tree built from these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple


class TaskStatus(str, Enum):
    """Canonical task status vocabulary."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"
    REVIEW = "review"


class TaskPriority(str, Enum):
    """Task priority levels, ordered low to critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        """Sort weight used when picking the next task (higher goes first)."""
        return _PRIORITY_WEIGHTS[self]

    @classmethod
    def parse(cls, raw: Any, default: Optional["TaskPriority"] = None) -> "TaskPriority":
        """Parse a raw priority value, falling back to ``default`` (medium)."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                pass
        return default or cls.MEDIUM


_PRIORITY_WEIGHTS = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.CRITICAL: 4,
}


@dataclass
class Task:
    """A task or subtask in the active tag's tree.

    Attributes:
        id: Identifier unique within the tag; dotted ids encode ancestry
        title: Non-empty title
        description: Short description
        details: Implementation details
        test_strategy: How the task is verified
        status: Canonical status
        priority: Priority (defaults to medium)
        category: Optional free-form category
        dependencies: Ids of tasks that must complete first
        subtasks: Owned child tasks
        created: ISO-8601 creation timestamp, if known
        updated: ISO-8601 timestamp of the last mutation, if known
        parent_id: Back-reference filled in during hierarchy reconstruction
    """

    id: str
    title: str
    description: str = ""
    details: str = ""
    test_strategy: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    subtasks: List["Task"] = field(default_factory=list)
    created: Optional[str] = None
    updated: Optional[str] = None
    parent_id: Optional[str] = None

    def walk(self) -> Iterator["Task"]:
        """Yield this task followed by all descendants, depth first."""
        yield self
        for subtask in self.subtasks:
            yield from subtask.walk()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the wire field names (camelCase)."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "details": self.details,
            "testStrategy": self.test_strategy,
            "status": self.status.value,
            "priority": self.priority.value,
            "category": self.category,
            "dependencies": list(self.dependencies),
            "subtasks": [subtask.to_dict() for subtask in self.subtasks],
            "created": self.created,
            "updated": self.updated,
            "parentId": self.parent_id,
        }


def iter_tasks(tasks: Iterable[Task]) -> Iterator[Task]:
    """Flatten a forest of tasks, depth first."""
    for task in tasks:
        yield from task.walk()


@dataclass
class Counts:
    """Status tallies for a set of tasks."""

    total: int = 0
    completed: int = 0
    in_progress: int = 0
    todo: int = 0
    blocked: int = 0

    def add(self, status: TaskStatus) -> None:
        self.total += 1
        if status == TaskStatus.COMPLETED:
            self.completed += 1
        elif status == TaskStatus.IN_PROGRESS:
            self.in_progress += 1
        elif status == TaskStatus.TODO:
            self.todo += 1
        elif status == TaskStatus.BLOCKED:
            self.blocked += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "inProgress": self.in_progress,
            "todo": self.todo,
            "blocked": self.blocked,
        }


@dataclass
class TaskProgress:
    """Progress for root tasks only and for every item in the tree."""

    main_tasks: Counts = field(default_factory=Counts)
    all_items: Counts = field(default_factory=Counts)

    def to_dict(self) -> Dict[str, Any]:
        # Flat totals mirror allItems for older consumers
        payload: Dict[str, Any] = dict(self.all_items.to_dict())
        payload["mainTasks"] = self.main_tasks.to_dict()
        payload["allItems"] = self.all_items.to_dict()
        return payload


@dataclass(frozen=True)
class TagContextInfo:
    """Snapshot of the active tag and the tags the document holds."""

    current_tag: str
    available_tags: Tuple[str, ...]
    is_tagged_format: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentTag": self.current_tag,
            "availableTags": list(self.available_tags),
            "isTaggedFormat": self.is_tagged_format,
        }
