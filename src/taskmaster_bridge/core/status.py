"""Mapping between Task Master's status tokens and ``TaskStatus``.

Task Master reads and writes ``pending`` / ``done`` where the canonical model
uses ``todo`` / ``completed``; everything else is shared. Reads are fail-open:
unknown tokens become ``todo``.
"""

from typing import Any, Dict, Union

from taskmaster_bridge.core.models import TaskStatus

__all__ = ["normalize", "denormalize", "STATUS_SYNONYMS"]

STATUS_SYNONYMS: Dict[str, TaskStatus] = {
    "pending": TaskStatus.TODO,
    "todo": TaskStatus.TODO,
    "in-progress": TaskStatus.IN_PROGRESS,
    "in_progress": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "blocked": TaskStatus.BLOCKED,
    "deferred": TaskStatus.DEFERRED,
    "cancelled": TaskStatus.CANCELLED,
    "review": TaskStatus.REVIEW,
}

_WRITE_TOKENS: Dict[TaskStatus, str] = {
    TaskStatus.TODO: "pending",
    TaskStatus.COMPLETED: "done",
}


def normalize(raw: Any) -> TaskStatus:
    """Map a raw status token to its canonical status.

    Never raises; anything unrecognised (including non-strings) is ``todo``.
    """
    if isinstance(raw, TaskStatus):
        return raw
    if not isinstance(raw, str):
        return TaskStatus.TODO
    return STATUS_SYNONYMS.get(raw.strip().lower(), TaskStatus.TODO)


def denormalize(status: Union[TaskStatus, str]) -> str:
    """Return the token Task Master expects when writing ``status``."""
    canonical = normalize(status)
    return _WRITE_TOKENS.get(canonical, canonical.value)
