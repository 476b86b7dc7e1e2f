"""Sanitization of raw task entries into ``Task`` objects.

The same rules apply whether tasks came from the protocol channel or from
tasks.json: id and title are required, the status is normalized and
dependency ids become strings. Entries that fail are dropped and reported as
``ValidationIssue`` records; the valid remainder is always returned.
"""

import logging
from typing import Any, List, Mapping, Optional, Set, Tuple

from taskmaster_bridge.core.errors import ValidationIssue
from taskmaster_bridge.core.models import Task, TaskPriority
from taskmaster_bridge.core.status import normalize

logger = logging.getLogger(__name__)

__all__ = ["sanitize_tasks", "sanitize_task"]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _optional_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return _text(value)


def _dependencies(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(dep) for dep in value if dep is not None and dep != ""]


def sanitize_task(
    raw: Any,
    *,
    source: str,
    path: str,
    parent_id: Optional[str] = None,
) -> Tuple[Optional[Task], List[ValidationIssue]]:
    """Sanitize one raw entry and, recursively, its subtasks.

    Returns:
        ``(task, issues)``; ``task`` is None when the entry itself is invalid.
    """
    if not isinstance(raw, Mapping):
        return None, [ValidationIssue(path, "entry is not an object", source)]

    raw_id = raw.get("id")
    if raw_id is None or raw_id == "":
        return None, [ValidationIssue(path, "missing id", source)]
    task_id = str(raw_id)

    title = _text(raw.get("title")).strip()
    if not title:
        return None, [ValidationIssue(path, "missing title", source, task_id=task_id)]

    task = Task(
        id=task_id,
        title=title,
        description=_text(raw.get("description")),
        details=_text(raw.get("details")),
        test_strategy=_text(raw.get("testStrategy")),
        status=normalize(raw.get("status", "pending")),
        priority=TaskPriority.parse(raw.get("priority")),
        category=_optional_text(raw.get("category")),
        dependencies=_dependencies(raw.get("dependencies")),
        created=_optional_text(raw.get("created")),
        updated=_optional_text(raw.get("updated")),
        parent_id=parent_id or _optional_text(raw.get("parentId")),
    )

    issues: List[ValidationIssue] = []
    raw_subtasks = raw.get("subtasks")
    if raw_subtasks:
        task.subtasks, issues = sanitize_tasks(
            raw_subtasks,
            source=source,
            path=f"{path}.subtasks",
            parent_id=task_id,
            log_summary=False,
        )
    return task, issues


def sanitize_tasks(
    raw_tasks: Any,
    *,
    source: str = "file",
    path: str = "tasks",
    parent_id: Optional[str] = None,
    log_summary: bool = True,
) -> Tuple[List[Task], List[ValidationIssue]]:
    """Sanitize a batch of raw entries.

    Sibling entries sharing an id keep the first occurrence only.

    Args:
        raw_tasks: List of raw task mappings
        source: Label for diagnostics (``protocol``, ``file``)
        path: Location prefix used in issue records
        parent_id: Id assigned to each task's ``parent_id``
        log_summary: Emit a one-line pass/fail summary

    Returns:
        ``(tasks, issues)``
    """
    if not isinstance(raw_tasks, list):
        issue = ValidationIssue(
            path, f"expected a list, got {type(raw_tasks).__name__}", source
        )
        logger.warning("%s", issue)
        return [], [issue]

    tasks: List[Task] = []
    issues: List[ValidationIssue] = []
    seen: Set[str] = set()
    for index, raw in enumerate(raw_tasks):
        entry_path = f"{path}[{index}]"
        task, entry_issues = sanitize_task(
            raw, source=source, path=entry_path, parent_id=parent_id
        )
        issues.extend(entry_issues)
        if task is None:
            continue
        if task.id in seen:
            issues.append(
                ValidationIssue(entry_path, "duplicate id", source, task_id=task.id)
            )
            continue
        seen.add(task.id)
        tasks.append(task)

    for issue in issues:
        logger.debug("Dropped task entry %s", issue)
    if log_summary:
        logger.info(
            "%s validation: %d/%d tasks passed validation",
            source,
            len(tasks),
            len(raw_tasks),
        )
    return tasks, issues
