"""Parent/child reconstruction from dotted task ids."""

import logging
import re
from typing import Dict, List, Tuple

from taskmaster_bridge.core.models import Task

logger = logging.getLogger(__name__)

__all__ = ["build_hierarchy", "parent_id_of", "nesting_level", "id_sort_key"]

_DIGITS = re.compile(r"(\d+)")


def parent_id_of(task_id: str) -> str:
    """Return everything before the last dot ("1.2.3" -> "1.2")."""
    return task_id.rsplit(".", 1)[0] if "." in task_id else ""


def nesting_level(task_id: str) -> int:
    """Number of dots in ``task_id`` ("1" -> 0, "1.2.3" -> 2)."""
    return task_id.count(".")


def id_sort_key(task_id: str) -> Tuple[int, Tuple[Tuple[int, object], ...], str]:
    """Total order over ids: depth first, then natural (numeric-aware) order.

    The raw id is the final tie-breaker so distinct ids never compare equal.
    """
    chunks = tuple(
        (0, int(chunk)) if chunk.isdigit() else (1, chunk)
        for chunk in _DIGITS.split(task_id)
        if chunk
    )
    return nesting_level(task_id), chunks, task_id


def build_hierarchy(tasks: List[Task]) -> List[Task]:
    """Attach dotted-id tasks to their parents and return the root tasks.

    Input that already carries subtasks, or has no dotted ids at all, is
    returned unchanged. A task whose parent is absent stays a root. Missing
    intermediate levels are not synthesized: "1.5" attaches to "1" even
    when "1.1" to "1.4" do not exist.
    """
    if any(task.subtasks for task in tasks):
        logger.debug("Tasks already have subtask arrays, skipping hierarchy build")
        return tasks
    if not any("." in task.id for task in tasks):
        return tasks

    by_id: Dict[str, Task] = {}
    for task in tasks:
        by_id.setdefault(task.id, task)

    roots: List[Task] = []
    for task_id in sorted(by_id, key=id_sort_key):
        task = by_id[task_id]
        if "." not in task_id:
            roots.append(task)
            continue
        parent = by_id.get(parent_id_of(task_id))
        if parent is None:
            logger.info(
                "Parent task %s not found for subtask %s, treating as root",
                parent_id_of(task_id),
                task_id,
            )
            roots.append(task)
            continue
        task.parent_id = parent.id
        parent.subtasks.append(task)

    logger.debug("Built hierarchy with %d root tasks", len(roots))
    return roots
