"""Channel abstraction shared by the MCP and CLI implementations.

A channel is one way of talking to Task Master. Each implementation
declares which operations it supports; everything else raises
``UnsupportedOperationError`` so the client can move on without an attempt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from taskmaster_bridge.core.errors import UnsupportedOperationError
from taskmaster_bridge.core.mutations import AddSubtask, AddTask

__all__ = [
    "COMMAND_TIMEOUT",
    "VERSION_TIMEOUT",
    "ChannelName",
    "ChannelOperation",
    "TaskChannel",
]

# Hard timeouts in seconds
COMMAND_TIMEOUT = 30.0
VERSION_TIMEOUT = 5.0


class ChannelName(str, Enum):
    """Where an operation was attempted."""

    PROTOCOL = "mcp"
    CLI = "cli"
    FILE = "file"


class ChannelOperation(str, Enum):
    """Operations a remote channel may implement."""

    GET_TASKS = "get_tasks"
    SET_STATUS = "set_status"
    ADD_TASK = "add_task"
    ADD_SUBTASK = "add_subtask"
    EXPAND_TASK = "expand_task"
    USE_TAG = "use_tag"
    CREATE_TAG = "create_tag"
    DELETE_TAG = "delete_tag"


class TaskChannel(ABC):
    """Base class for a Task Master channel.

    Subclasses set ``name`` and ``operations`` and override the methods for
    the operations they list.
    """

    name: ChannelName
    operations: FrozenSet[ChannelOperation] = frozenset()

    def supports(self, operation: ChannelOperation) -> bool:
        return operation in self.operations

    def _unsupported(self, operation: ChannelOperation) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{self.name.value} channel does not support {operation.value}",
            channel=self.name.value,
            operation=operation.value,
        )

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap check that the channel can be attempted at all."""

    @abstractmethod
    def get_version(self) -> Optional[str]:
        """Return the version this channel reports, or None if unknown."""

    def get_tasks(self, tag: str) -> List[Dict[str, Any]]:
        raise self._unsupported(ChannelOperation.GET_TASKS)

    def set_status(self, task_id: str, status: str, tag: str) -> None:
        raise self._unsupported(ChannelOperation.SET_STATUS)

    def add_task(self, task: AddTask, tag: str) -> None:
        raise self._unsupported(ChannelOperation.ADD_TASK)

    def add_subtask(self, subtask: AddSubtask, tag: str) -> None:
        raise self._unsupported(ChannelOperation.ADD_SUBTASK)

    def expand_task(self, task_id: str, force: bool, tag: str) -> None:
        raise self._unsupported(ChannelOperation.EXPAND_TASK)

    def use_tag(self, name: str) -> None:
        raise self._unsupported(ChannelOperation.USE_TAG)

    def create_tag(self, name: str) -> None:
        raise self._unsupported(ChannelOperation.CREATE_TAG)

    def delete_tag(self, name: str) -> None:
        raise self._unsupported(ChannelOperation.DELETE_TAG)
