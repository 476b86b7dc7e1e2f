"""Direct-file mutation of Task Master task documents.

Operations act on the raw task dicts of the active tag, so fields this
package does not model survive a round trip untouched. Targets are looked
up among root tasks first and only then through nested subtasks; a
subtask matches on its stored id or on its dotted path (``"3.2"`` for
subtask ``2`` of task ``3``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from taskmaster_bridge.core.errors import InvalidRequestError, NotFoundError
from taskmaster_bridge.core.formats import DocumentShape
from taskmaster_bridge.core.hierarchy import parent_id_of
from taskmaster_bridge.core.models import TaskPriority, TaskStatus
from taskmaster_bridge.core.status import denormalize

logger = logging.getLogger(__name__)

__all__ = [
    "SetStatus",
    "SetSubtaskStatus",
    "UpdateTask",
    "UpdateSubtask",
    "AddTask",
    "AddSubtask",
    "RemoveSubtask",
    "DeleteTask",
    "Operation",
    "TaskStore",
    "utc_now",
]

RawTask = Dict[str, Any]


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Operations
# =============================================================================


@dataclass(frozen=True)
class SetStatus:
    task_id: str
    status: TaskStatus


@dataclass(frozen=True)
class SetSubtaskStatus:
    parent_id: str
    subtask_id: str
    status: TaskStatus


@dataclass(frozen=True)
class UpdateTask:
    task_id: str
    updates: Mapping[str, Any]


@dataclass(frozen=True)
class UpdateSubtask:
    parent_id: str
    subtask_id: str
    updates: Mapping[str, Any]


@dataclass(frozen=True)
class AddTask:
    title: str
    description: str = ""
    details: str = ""
    test_strategy: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Optional[str] = None
    dependencies: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AddSubtask:
    parent_id: str
    title: str
    description: str = ""
    details: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: Optional[TaskPriority] = None
    dependencies: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RemoveSubtask:
    parent_id: str
    subtask_id: str


@dataclass(frozen=True)
class DeleteTask:
    task_id: str


Operation = Union[
    SetStatus,
    SetSubtaskStatus,
    UpdateTask,
    UpdateSubtask,
    AddTask,
    AddSubtask,
    RemoveSubtask,
    DeleteTask,
]


# =============================================================================
# Lookup
# =============================================================================


@dataclass
class _Match:
    node: RawTask
    siblings: List[RawTask]
    parent: Optional[RawTask] = None


def _sid(task: Mapping[str, Any]) -> str:
    return str(task.get("id"))


def _child_path(parent_path: str, child_id: str) -> str:
    # Subtasks stored with dotted ids already carry their full path
    return child_id if "." in child_id else f"{parent_path}.{child_id}"


def _subtasks(task: RawTask) -> Optional[List[RawTask]]:
    subtasks = task.get("subtasks")
    return subtasks if isinstance(subtasks, list) else None


def _find_nested(tasks: List[RawTask], target: str, prefix: str = "") -> Optional[_Match]:
    for task in tasks:
        if not isinstance(task, dict):
            continue
        path = _child_path(prefix, _sid(task)) if prefix else _sid(task)
        children = _subtasks(task)
        if not children:
            continue
        for child in children:
            if not isinstance(child, dict):
                continue
            child_id = _sid(child)
            if child_id == target or _child_path(path, child_id) == target:
                return _Match(node=child, siblings=children, parent=task)
        found = _find_nested(children, target, path)
        if found is not None:
            return found
    return None


def _find(tasks: List[RawTask], target: str) -> Optional[_Match]:
    """Root tasks first, then a recursive subtask search."""
    for task in tasks:
        if isinstance(task, dict) and _sid(task) == target:
            parent = None
            if "." in target:
                # Flat documents keep dotted subtasks beside their parent
                parent = next(
                    (t for t in tasks if isinstance(t, dict) and _sid(t) == parent_id_of(target)),
                    None,
                )
            return _Match(node=task, siblings=tasks, parent=parent)
    return _find_nested(tasks, target)


def _detach(match: _Match) -> None:
    for index, item in enumerate(match.siblings):
        if item is match.node:
            del match.siblings[index]
            return


def _find_child(parent: RawTask, parent_id: str, subtask_id: str) -> Optional[_Match]:
    children = _subtasks(parent) or []
    for child in children:
        if not isinstance(child, dict):
            continue
        child_id = _sid(child)
        candidates = (child_id, _child_path(parent_id, child_id))
        if subtask_id in candidates or child_id == f"{parent_id}.{subtask_id}":
            return _Match(node=child, siblings=children, parent=parent)
    return None


# =============================================================================
# Field updates
# =============================================================================

_UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "details": "details",
    "testStrategy": "testStrategy",
    "test_strategy": "testStrategy",
    "status": "status",
    "priority": "priority",
    "category": "category",
    "dependencies": "dependencies",
}


def _coerce_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = sorted(key for key in updates if key not in _UPDATABLE_FIELDS)
    if unknown:
        raise InvalidRequestError(f"Fields cannot be updated: {', '.join(unknown)}")

    result: Dict[str, Any] = {}
    for key, value in updates.items():
        raw_key = _UPDATABLE_FIELDS[key]
        if raw_key == "title":
            if not isinstance(value, str) or not value.strip():
                raise InvalidRequestError("Task title must be a non-empty string")
            value = value.strip()
        elif raw_key == "status":
            value = denormalize(value)
        elif raw_key == "priority":
            if isinstance(value, str) and value.strip().lower() not in {p.value for p in TaskPriority}:
                raise InvalidRequestError(f"Unknown priority: {value}")
            value = TaskPriority.parse(value).value
        elif raw_key == "dependencies":
            if not isinstance(value, (list, tuple)):
                raise InvalidRequestError("dependencies must be a list of task ids")
            value = [str(dep) for dep in value]
        result[raw_key] = value
    return result


def _next_id(existing: Sequence[RawTask]) -> int:
    numbers = [
        int(_sid(task))
        for task in existing
        if isinstance(task, dict) and _sid(task).isdigit()
    ]
    return max(numbers, default=0) + 1


def _uses_string_ids(existing: Sequence[RawTask]) -> bool:
    ids = [task.get("id") for task in existing if isinstance(task, dict)]
    return bool(ids) and all(isinstance(value, str) for value in ids)


def _stores_dotted_ids(tasks: Sequence[RawTask]) -> bool:
    return any(isinstance(task, dict) and "." in _sid(task) for task in tasks)


def _dotted_children(tasks: Sequence[RawTask], parent_path: str) -> List[RawTask]:
    """Direct children kept beside ``parent_path`` as "<parent>.N" entries."""
    return [
        task
        for task in tasks
        if isinstance(task, dict) and "." in _sid(task) and parent_id_of(_sid(task)) == parent_path
    ]


def _dependency_values(deps: Sequence[str], string_ids: bool) -> List[Any]:
    if string_ids:
        return [str(dep) for dep in deps]
    return [int(dep) if str(dep).isdigit() else str(dep) for dep in deps]


# =============================================================================
# Store
# =============================================================================


class TaskStore:
    """Applies operations to a parsed document and returns the affected id.

    Args:
        clock: Returns the ISO-8601 timestamp stamped on mutated tasks
    """

    def __init__(self, clock: Callable[[], str] = utc_now):
        self._clock = clock
        self._handlers: Dict[type, Callable[[Any, List[RawTask], str], str]] = {
            SetStatus: self._set_status,
            SetSubtaskStatus: self._set_subtask_status,
            UpdateTask: self._update_task,
            UpdateSubtask: self._update_subtask,
            AddTask: self._add_task,
            AddSubtask: self._add_subtask,
            RemoveSubtask: self._remove_subtask,
            DeleteTask: self._delete_task,
        }

    def apply(self, op: Operation, shape: DocumentShape) -> str:
        """Apply ``op`` to the active tag of ``shape`` in place.

        Returns:
            Id of the task the operation created or touched.

        Raises:
            NotFoundError: If the target task or subtask does not exist.
            InvalidRequestError: If the operation carries invalid values.
        """
        handler = self._handlers.get(type(op))
        if handler is None:
            raise InvalidRequestError(f"Unsupported operation: {type(op).__name__}")
        tasks = shape.active_tasks()
        task_id = handler(op, tasks, self._clock())
        shape.writeback(tasks)
        logger.debug("Applied %s to %s (tag=%s)", type(op).__name__, task_id, shape.tag)
        return task_id

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _require(tasks: List[RawTask], task_id: str) -> _Match:
        match = _find(tasks, str(task_id))
        if match is None:
            raise NotFoundError(f"Task with ID {task_id} not found.", task_id=str(task_id))
        return match

    def _require_child(self, tasks: List[RawTask], parent_id: str, subtask_id: str) -> _Match:
        parent = self._require(tasks, parent_id).node
        match = _find_child(parent, str(parent_id), str(subtask_id))
        if match is None:
            dotted = _find(tasks, _child_path(str(parent_id), str(subtask_id)))
            if dotted is not None and dotted.siblings is tasks:
                match = dotted
        if match is None:
            raise NotFoundError(
                f"Subtask {subtask_id} not found in task {parent_id}.",
                task_id=f"{parent_id}.{subtask_id}",
                resource="subtask",
            )
        return match

    @staticmethod
    def _touch(match: _Match, now: str) -> None:
        match.node["updated"] = now
        if match.parent is not None:
            match.parent["updated"] = now

    # -- handlers ------------------------------------------------------------

    def _set_status(self, op: SetStatus, tasks: List[RawTask], now: str) -> str:
        match = self._require(tasks, op.task_id)
        match.node["status"] = denormalize(op.status)
        self._touch(match, now)
        return op.task_id

    def _set_subtask_status(self, op: SetSubtaskStatus, tasks: List[RawTask], now: str) -> str:
        match = self._require_child(tasks, op.parent_id, op.subtask_id)
        match.node["status"] = denormalize(op.status)
        self._touch(match, now)
        return _child_path(op.parent_id, _sid(match.node))

    def _update_task(self, op: UpdateTask, tasks: List[RawTask], now: str) -> str:
        values = _coerce_updates(op.updates)
        match = self._require(tasks, op.task_id)
        match.node.update(values)
        self._touch(match, now)
        return op.task_id

    def _update_subtask(self, op: UpdateSubtask, tasks: List[RawTask], now: str) -> str:
        values = _coerce_updates(op.updates)
        match = self._require_child(tasks, op.parent_id, op.subtask_id)
        match.node.update(values)
        self._touch(match, now)
        return _child_path(op.parent_id, _sid(match.node))

    def _add_task(self, op: AddTask, tasks: List[RawTask], now: str) -> str:
        if not op.title.strip():
            raise InvalidRequestError("Task title must be a non-empty string")
        string_ids = _uses_string_ids(tasks)
        new_id = _next_id(tasks)
        raw: RawTask = {
            "id": str(new_id) if string_ids else new_id,
            "title": op.title.strip(),
            "description": op.description,
            "details": op.details,
            "testStrategy": op.test_strategy,
            "status": denormalize(op.status),
            "priority": op.priority.value,
            "dependencies": _dependency_values(op.dependencies, string_ids),
            "subtasks": [],
            "created": now,
            "updated": now,
        }
        if op.category:
            raw["category"] = op.category
        tasks.append(raw)
        return str(new_id)

    def _add_subtask(self, op: AddSubtask, tasks: List[RawTask], now: str) -> str:
        if not op.title.strip():
            raise InvalidRequestError("Subtask title must be a non-empty string")
        match = self._require(tasks, op.parent_id)
        parent = match.node
        children = _subtasks(parent)
        if not children and match.siblings is tasks and _stores_dotted_ids(tasks):
            return self._add_dotted_subtask(op, tasks, parent, now)
        if children is None:
            children = parent["subtasks"] = []

        existing = {_sid(child) for child in children if isinstance(child, dict)}
        new_id = len(children) + 1
        while str(new_id) in existing:
            new_id += 1

        string_ids = _uses_string_ids(children)
        raw_id = str(new_id) if string_ids else new_id
        children.append(self._subtask_entry(op, raw_id, string_ids, now))
        parent["updated"] = now
        return f"{op.parent_id}.{new_id}"

    def _add_dotted_subtask(
        self, op: AddSubtask, tasks: List[RawTask], parent: RawTask, now: str
    ) -> str:
        """Add "<parent>.N" as a root entry so flat documents stay flat."""
        parent_path = _sid(parent)
        siblings = _dotted_children(tasks, parent_path)
        taken = {_sid(task) for task in siblings}
        number = len(siblings) + 1
        while f"{parent_path}.{number}" in taken:
            number += 1
        new_id = f"{parent_path}.{number}"

        # After the parent's last descendant
        position = len(tasks)
        for index, task in enumerate(tasks):
            if isinstance(task, dict) and (
                _sid(task) == parent_path or _sid(task).startswith(f"{parent_path}.")
            ):
                position = index + 1
        tasks.insert(position, self._subtask_entry(op, new_id, _uses_string_ids(tasks), now))
        parent["updated"] = now
        return new_id

    @staticmethod
    def _subtask_entry(op: AddSubtask, raw_id: Any, string_ids: bool, now: str) -> RawTask:
        raw: RawTask = {
            "id": raw_id,
            "title": op.title.strip(),
            "description": op.description,
            "details": op.details,
            "status": denormalize(op.status),
            "dependencies": _dependency_values(op.dependencies, string_ids),
            "created": now,
            "updated": now,
        }
        if op.priority is not None:
            raw["priority"] = op.priority.value
        return raw

    def _remove_subtask(self, op: RemoveSubtask, tasks: List[RawTask], now: str) -> str:
        match = self._require_child(tasks, op.parent_id, op.subtask_id)
        _detach(match)
        if match.parent is not None:
            match.parent["updated"] = now
        return _child_path(op.parent_id, _sid(match.node))

    def _delete_task(self, op: DeleteTask, tasks: List[RawTask], now: str) -> str:
        target = str(op.task_id)
        match = self._require(tasks, target)
        _detach(match)
        if match.siblings is tasks:
            # Dotted descendants stored beside their ancestor go with it
            tasks[:] = [
                task
                for task in tasks
                if not (isinstance(task, dict) and _sid(task).startswith(f"{target}."))
            ]
        if match.parent is not None:
            match.parent["updated"] = now
        return target
