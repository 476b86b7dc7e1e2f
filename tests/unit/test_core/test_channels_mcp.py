"""
Tests for the Task Master MCP channel.

Tests cover:
- Tool calls and the arguments sent with them
- Task list extraction from the payload shapes get_tasks returns
- Server version from the initialize handshake
- Error mapping (tool errors, timeouts, start failures, disabled channel)
"""

import asyncio
import json
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from mcp.types import CallToolResult, TextContent

from taskmaster_bridge.core.channels import ChannelOperation, ProtocolChannel
from taskmaster_bridge.core.errors import (
    ChannelError,
    ChannelTimeoutError,
    ChannelUnavailableError,
    UnsupportedOperationError,
)
from taskmaster_bridge.core.models import TaskPriority
from taskmaster_bridge.core.mutations import AddSubtask, AddTask


def _result(payload, *, is_error=False):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


class FakeSession:
    """Records tool calls and answers from a per-tool script."""

    def __init__(self, results=None, delay=0.0):
        self.results = results or {}
        self.delay = delay
        self.calls = []

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.get(name, _result({"success": True}))
        if isinstance(result, Exception):
            raise result
        return result


def _factory(session, version="0.20.0", fail_with=None):
    @asynccontextmanager
    async def open_session():
        if fail_with is not None:
            raise fail_with
        yield session, SimpleNamespace(serverInfo=SimpleNamespace(name="task-master-ai", version=version))

    return open_session


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def channel(tmp_path, session):
    return ProtocolChannel(tmp_path, session_factory=_factory(session), which=lambda name: "/usr/bin/npx")


class TestAvailability:
    """Tests for is_available() and supported operations."""

    def test_available_when_command_on_path(self, channel):
        assert channel.is_available()

    def test_unavailable_when_command_missing(self, tmp_path, session):
        channel = ProtocolChannel(tmp_path, session_factory=_factory(session), which=lambda name: None)
        assert not channel.is_available()

    def test_disabled(self, tmp_path, session):
        channel = ProtocolChannel(tmp_path, enabled=False, session_factory=_factory(session))
        assert not channel.is_available()
        with pytest.raises(ChannelUnavailableError):
            channel.set_status("1", "done", "master")
        assert session.calls == []

    def test_supports(self, channel):
        assert channel.supports(ChannelOperation.GET_TASKS)
        assert channel.supports(ChannelOperation.USE_TAG)
        assert not channel.supports(ChannelOperation.CREATE_TAG)
        with pytest.raises(UnsupportedOperationError):
            channel.delete_tag("x")


class TestGetTasks:
    """Tests for get_tasks()."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"data": {"tasks": [{"id": 1, "title": "A"}]}},
            {"data": [{"id": 1, "title": "A"}]},
            {"tasks": [{"id": 1, "title": "A"}]},
            [{"id": 1, "title": "A"}],
        ],
    )
    def test_payload_shapes(self, tmp_path, payload):
        session = FakeSession({"get_tasks": _result(payload)})
        channel = ProtocolChannel(tmp_path, session_factory=_factory(session), which=lambda name: "x")
        assert channel.get_tasks("master") == [{"id": 1, "title": "A"}]

    def test_arguments(self, channel, session, tmp_path):
        session.results["get_tasks"] = _result({"data": {"tasks": []}})
        channel.get_tasks("feature")
        assert session.calls == [
            ("get_tasks", {"projectRoot": str(tmp_path), "withSubtasks": True, "tag": "feature"})
        ]

    def test_no_task_list(self, channel, session):
        session.results["get_tasks"] = _result({"data": {"message": "nothing"}})
        with pytest.raises(ChannelError):
            channel.get_tasks("master")

    def test_non_json_content(self, channel, session):
        session.results["get_tasks"] = _result("Tasks: 1, 2, 3")
        with pytest.raises(ChannelError):
            channel.get_tasks("master")


class TestWrites:
    """Tests for mutating tool calls."""

    def test_set_status(self, channel, session):
        channel.set_status("1.2", "done", "master")
        name, arguments = session.calls[0]
        assert name == "set_task_status"
        assert arguments["id"] == "1.2"
        assert arguments["status"] == "done"
        assert arguments["tag"] == "master"

    def test_add_task(self, channel, session):
        channel.add_task(AddTask(title="Docs", priority=TaskPriority.LOW, dependencies=("1",)), "master")
        name, arguments = session.calls[0]
        assert name == "add_task"
        assert arguments["title"] == "Docs"
        assert arguments["priority"] == "low"
        assert arguments["dependencies"] == "1"

    def test_add_subtask(self, channel, session):
        channel.add_subtask(AddSubtask(parent_id="3", title="Step"), "feature")
        name, arguments = session.calls[0]
        assert name == "add_subtask"
        assert arguments["id"] == "3"
        assert arguments["status"] == "pending"
        assert arguments["tag"] == "feature"
        assert "dependencies" not in arguments

    def test_expand_and_use_tag(self, channel, session):
        channel.expand_task("4", True, "master")
        channel.use_tag("feature")
        assert [call[0] for call in session.calls] == ["expand_task", "use_tag"]
        assert session.calls[0][1]["force"] is True
        assert session.calls[1][1]["name"] == "feature"


class TestErrors:
    """Tests for error mapping."""

    def test_tool_error(self, channel, session):
        session.results["set_task_status"] = _result("Task 9 not found", is_error=True)
        with pytest.raises(ChannelError) as exc_info:
            channel.set_status("9", "done", "master")
        assert "Task 9 not found" in str(exc_info.value)
        assert exc_info.value.channel == "mcp"

    def test_timeout(self, tmp_path):
        session = FakeSession(delay=1.0)
        channel = ProtocolChannel(
            tmp_path, timeout=0.05, session_factory=_factory(session), which=lambda name: "x"
        )
        with pytest.raises(ChannelTimeoutError) as exc_info:
            channel.set_status("1", "done", "master")
        assert exc_info.value.timeout_seconds == 0.05

    def test_server_fails_to_start(self, tmp_path, session):
        channel = ProtocolChannel(
            tmp_path,
            session_factory=_factory(session, fail_with=FileNotFoundError("npx")),
            which=lambda name: "x",
        )
        with pytest.raises(ChannelUnavailableError):
            channel.set_status("1", "done", "master")

    def test_unexpected_exception_wrapped(self, channel, session):
        session.results["expand_task"] = RuntimeError("connection reset")
        with pytest.raises(ChannelError) as exc_info:
            channel.expand_task("1", False, "master")
        assert "connection reset" in str(exc_info.value)


class TestVersion:
    """Tests for get_version()."""

    def test_from_server_info(self, channel, session):
        assert channel.get_version() == "0.20.0"
        assert session.calls == []

    def test_unknown_version(self, tmp_path, session):
        channel = ProtocolChannel(tmp_path, session_factory=_factory(session, version="unknown"))
        assert channel.get_version() is None

    def test_start_failure(self, tmp_path, session):
        channel = ProtocolChannel(
            tmp_path, session_factory=_factory(session, fail_with=OSError("spawn failed"))
        )
        assert channel.get_version() is None

    def test_disabled(self, tmp_path, session):
        channel = ProtocolChannel(tmp_path, enabled=False, session_factory=_factory(session))
        assert channel.get_version() is None
