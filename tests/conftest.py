"""
Root pytest configuration and shared fixtures.

Provides temporary ``.taskmaster`` project trees, scripted fake channels and
a deterministic refresh timer so client tests never spawn processes or
threads.
"""

import copy
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

import pytest

from taskmaster_bridge.core.channels import ChannelName, ChannelOperation, TaskChannel
from taskmaster_bridge.core.client import TaskMasterClient
from taskmaster_bridge.core.errors import ChannelError
from taskmaster_bridge.core.mutations import TaskStore
from taskmaster_bridge.core.refresh import RefreshCoalescer
from taskmaster_bridge.core.versions import VersionGate

FIXED_NOW = "2025-01-15T10:30:00Z"

_SAMPLE_TASKS: List[Dict[str, Any]] = [
    {
        "id": 1,
        "title": "Project setup",
        "description": "Bootstrap the repository",
        "status": "done",
        "priority": "high",
        "dependencies": [],
        "subtasks": [
            {"id": 1, "title": "Create repo", "status": "done", "dependencies": []},
            {"id": 2, "title": "Configure CI", "status": "in-progress", "dependencies": [1]},
        ],
    },
    {
        "id": 2,
        "title": "API layer",
        "status": "pending",
        "priority": "medium",
        "dependencies": [1],
        "subtasks": [],
    },
    {
        "id": 3,
        "title": "Write docs",
        "status": "pending",
        "priority": "critical",
        "dependencies": [2],
        "subtasks": [],
    },
    {
        "id": 4,
        "title": "Cleanup",
        "status": "blocked",
        "priority": "low",
        "category": "chore",
        "dependencies": [],
        "subtasks": [],
    },
]


def sample_tasks() -> List[Dict[str, Any]]:
    """Fresh copy of the four-task sample project."""
    return copy.deepcopy(_SAMPLE_TASKS)


@pytest.fixture
def raw_tasks() -> List[Dict[str, Any]]:
    return sample_tasks()


# =============================================================================
# Project trees
# =============================================================================


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Empty project with a ``.taskmaster/tasks`` directory."""
    (tmp_path / ".taskmaster" / "tasks").mkdir(parents=True)
    return tmp_path


@pytest.fixture
def tasks_path(project_root: Path) -> Path:
    return project_root / ".taskmaster" / "tasks" / "tasks.json"


@pytest.fixture
def write_document(tasks_path: Path) -> Callable[[Any], Path]:
    """Write a tasks.json document and return its path."""

    def _write(doc: Any) -> Path:
        tasks_path.write_text(json.dumps(doc, indent=2), encoding="utf-8")
        return tasks_path

    return _write


@pytest.fixture
def read_document(tasks_path: Path) -> Callable[[], Any]:
    def _read() -> Any:
        return json.loads(tasks_path.read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def write_state(project_root: Path) -> Callable[[Dict[str, Any]], Path]:
    def _write(state: Dict[str, Any]) -> Path:
        path = project_root / ".taskmaster" / "state.json"
        path.write_text(json.dumps(state), encoding="utf-8")
        return path

    return _write


# =============================================================================
# Fakes
# =============================================================================


class FakeTimer:
    """Stand-in for ``threading.Timer`` that only fires when told to."""

    def __init__(self, interval: float, function: Callable[[], None]):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function()


class TimerRecorder:
    """Timer factory that keeps every timer it builds."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer


class FakeChannel(TaskChannel):
    """Scripted channel that records calls.

    Args:
        name: Channel identity
        operations: Operations it claims to support
        available: Value returned by ``is_available``
        version: Value returned by ``get_version``
        failing: Operations that raise ``ChannelError``
        tasks: Raw task list returned by ``get_tasks``
    """

    def __init__(
        self,
        name: ChannelName,
        operations: Optional[Set[ChannelOperation]] = None,
        *,
        available: bool = True,
        version: Optional[str] = "0.20.0",
        failing: Optional[Set[ChannelOperation]] = None,
        tasks: Optional[List[Dict[str, Any]]] = None,
    ):
        self.name = name
        self.operations = frozenset(operations if operations is not None else set(ChannelOperation))
        self.available = available
        self.version = version
        self.failing = set(failing or ())
        self.tasks = tasks if tasks is not None else []
        self.calls: List[tuple] = []

    def is_available(self) -> bool:
        return self.available

    def get_version(self) -> Optional[str]:
        return self.version

    def _record(self, op: ChannelOperation, *args: Any) -> None:
        self.calls.append((op.value,) + args)
        if op in self.failing:
            raise ChannelError(f"{op.value} failed", channel=self.name.value, operation=op.value)

    def get_tasks(self, tag: str) -> List[Dict[str, Any]]:
        self._record(ChannelOperation.GET_TASKS, tag)
        return copy.deepcopy(self.tasks)

    def set_status(self, task_id: str, status: str, tag: str) -> None:
        self._record(ChannelOperation.SET_STATUS, task_id, status, tag)

    def add_task(self, task, tag: str) -> None:
        self._record(ChannelOperation.ADD_TASK, task.title, tag)

    def add_subtask(self, subtask, tag: str) -> None:
        self._record(ChannelOperation.ADD_SUBTASK, subtask.parent_id, subtask.title, tag)

    def expand_task(self, task_id: str, force: bool, tag: str) -> None:
        self._record(ChannelOperation.EXPAND_TASK, task_id, force, tag)

    def use_tag(self, name: str) -> None:
        self._record(ChannelOperation.USE_TAG, name)

    def create_tag(self, name: str) -> None:
        self._record(ChannelOperation.CREATE_TAG, name)

    def delete_tag(self, name: str) -> None:
        self._record(ChannelOperation.DELETE_TAG, name)


@pytest.fixture
def fake_channel():
    """The ``FakeChannel`` class, for building scripted channels."""
    return FakeChannel


@pytest.fixture
def timer_recorder() -> TimerRecorder:
    return TimerRecorder()


@pytest.fixture
def make_client(project_root: Path, timer_recorder: TimerRecorder):
    """Build a client over ``project_root`` with optional fake channels."""

    def _make(
        protocol: Optional[TaskChannel] = None,
        cli: Optional[TaskChannel] = None,
        *,
        prefer_cli_on_mismatch: bool = True,
    ) -> TaskMasterClient:
        gate = VersionGate(
            cli_probe=cli.get_version if cli else (lambda: None),
            mcp_probe=protocol.get_version if protocol else (lambda: None),
        )
        return TaskMasterClient(
            project_root,
            protocol=protocol,
            cli=cli,
            version_gate=gate,
            prefer_cli_on_mismatch=prefer_cli_on_mismatch,
            store=TaskStore(clock=lambda: FIXED_NOW),
            refresh=RefreshCoalescer(timer_factory=timer_recorder),
        )

    return _make


@pytest.fixture
def file_client(make_client) -> TaskMasterClient:
    """Client with no remote channels: every operation goes to tasks.json."""
    return make_client()
