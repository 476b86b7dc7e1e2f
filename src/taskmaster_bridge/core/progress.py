"""Read-side queries over a canonical task tree.

These functions are pure: they take the root tasks returned by
``TaskMasterClient.get_tasks`` and never touch a channel.
"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from taskmaster_bridge.core.models import (
    Task,
    TaskPriority,
    TaskProgress,
    TaskStatus,
    iter_tasks,
)

logger = logging.getLogger(__name__)

__all__ = [
    "compute_progress",
    "find_next_task",
    "find_task_details",
    "filter_by_status",
    "filter_by_priority",
    "filter_by_category",
]


def _walk_paths(tasks: List[Task], prefix: str = "") -> Iterator[Tuple[str, Task]]:
    """Yield ``(dotted path, task)`` for every item in the tree."""
    for task in tasks:
        # Dotted ids already spell out their own path
        path = task.id if not prefix or "." in task.id else f"{prefix}.{task.id}"
        yield path, task
        yield from _walk_paths(task.subtasks, path)


def compute_progress(tasks: List[Task]) -> TaskProgress:
    """Count root tasks and every item of the tree separately."""
    progress = TaskProgress()
    for task in tasks:
        progress.main_tasks.add(task.status)
    for item in iter_tasks(tasks):
        progress.all_items.add(item.status)
    return progress


def find_next_task(tasks: List[Task]) -> Optional[Task]:
    """Pick the highest-priority root task that is ready to start.

    A task is ready when it is not completed and every dependency resolves
    to a completed item. Dependencies name root ids or dotted subtask paths;
    one on an id that no longer exists keeps the task waiting. Ties keep
    document order.
    """
    status_by_id: Dict[str, TaskStatus] = {}
    for path, item in _walk_paths(tasks):
        status_by_id.setdefault(path, item.status)

    ready = [
        task
        for task in tasks
        if task.status != TaskStatus.COMPLETED
        and all(status_by_id.get(dep) == TaskStatus.COMPLETED for dep in task.dependencies)
    ]
    if not ready:
        return None
    return sorted(ready, key=lambda task: task.priority.weight, reverse=True)[0]


def _match_subtask(main: Task, subtask_id: str) -> Optional[Task]:
    for sub in main.subtasks:
        if sub.id == subtask_id:
            return sub
    dotted = f"{main.id}.{subtask_id}"
    for sub in main.subtasks:
        if sub.id == dotted:
            return sub
    for sub in main.subtasks:
        if "." in sub.id and sub.id.split(".", 1)[1] == subtask_id:
            return sub
    return None


def _search_subtasks(tasks: List[Task], task_id: str) -> Optional[Task]:
    for task in tasks:
        for sub in task.subtasks:
            if sub.id == task_id:
                return sub
        found = _search_subtasks(task.subtasks, task_id)
        if found is not None:
            return found
    return None


def find_task_details(
    tasks: List[Task], main_id: str, subtask_id: Optional[str] = None
) -> Optional[Task]:
    """Locate a task or subtask by id.

    With ``subtask_id``, the subtask of ``main_id`` is matched on its exact
    id, then on the dotted id ``main.sub``, then on the suffix of a dotted
    id. A dotted ``main_id`` on its own is resolved as a path through the
    tree ("1.2.1" is subtask 1 of subtask 2 of task 1). Anything else
    matches a root task, then any nested subtask with that id.
    """
    main_id = str(main_id)
    by_id = {task.id: task for task in tasks}

    if subtask_id is not None:
        main = by_id.get(main_id)
        if main is None:
            logger.debug("Main task %s not found", main_id)
            return None
        found = _match_subtask(main, str(subtask_id))
        if found is None:
            logger.debug(
                "Subtask %s not found in task %s. Available subtasks: %s",
                subtask_id,
                main_id,
                ", ".join(sub.id for sub in main.subtasks) or "none",
            )
        return found

    if "." in main_id:
        for path, task in _walk_paths(tasks):
            if path == main_id:
                return task
        return None

    if main_id in by_id:
        return by_id[main_id]
    return _search_subtasks(tasks, main_id)


def filter_by_status(tasks: List[Task], status: TaskStatus) -> List[Task]:
    return [task for task in tasks if task.status == status]


def filter_by_priority(tasks: List[Task], priority: TaskPriority) -> List[Task]:
    return [task for task in tasks if task.priority == priority]


def filter_by_category(tasks: List[Task], category: str) -> List[Task]:
    return [task for task in tasks if task.category == category]
