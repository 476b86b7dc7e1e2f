"""Task Master MCP server channel.

Each call starts the server over stdio (``npx -y task-master-ai`` by
default), initializes a ``ClientSession``, invokes one tool and shuts the
session down. Calls are blocking from the caller's point of view and are
bounded by a hard timeout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import CallToolResult, InitializeResult, TextContent

from taskmaster_bridge.core.channels.base import (
    COMMAND_TIMEOUT,
    VERSION_TIMEOUT,
    ChannelName,
    ChannelOperation,
    TaskChannel,
)
from taskmaster_bridge.core.errors import (
    ChannelError,
    ChannelTimeoutError,
    ChannelUnavailableError,
    CommandTimeoutError,
)
from taskmaster_bridge.core.mutations import AddSubtask, AddTask
from taskmaster_bridge.core.status import denormalize

logger = logging.getLogger(__name__)

DEFAULT_SERVER_COMMAND = "npx"
DEFAULT_SERVER_ARGS: Tuple[str, ...] = ("-y", "--package=task-master-ai", "task-master-ai")

SessionFactory = Callable[[], AsyncContextManager[Tuple[Any, InitializeResult]]]


def _stdio_session_factory(params: StdioServerParameters) -> SessionFactory:
    @asynccontextmanager
    async def open_session() -> AsyncIterator[Tuple[ClientSession, InitializeResult]]:
        async with stdio_client(params) as (read_stream, write_stream):
            async with ClientSession(read_stream, write_stream) as session:
                init = await session.initialize()
                yield session, init

    return open_session


def _result_payload(result: CallToolResult, tool: str) -> Any:
    """Decode the JSON payload of a tool result."""
    texts = [item.text for item in result.content if isinstance(item, TextContent)]
    if result.isError:
        raise ChannelError(
            f"MCP tool {tool} returned an error: {' '.join(texts) or 'no details'}",
            channel=ChannelName.PROTOCOL.value,
            operation=tool,
        )
    structured = getattr(result, "structuredContent", None)
    if structured:
        return structured
    if not texts:
        return None
    try:
        return json.loads("".join(texts))
    except ValueError as exc:
        raise ChannelError(
            f"MCP tool {tool} returned non-JSON content",
            channel=ChannelName.PROTOCOL.value,
            operation=tool,
        ) from exc


def _extract_task_list(payload: Any) -> Optional[List[Any]]:
    """Find the task array in the shapes Task Master's get_tasks returns."""
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("tasks"), list):
        return data["tasks"]
    if isinstance(data, list):
        return data
    if isinstance(payload.get("tasks"), list):
        return payload["tasks"]
    return None


class ProtocolChannel(TaskChannel):
    """Channel backed by the Task Master MCP server."""

    name = ChannelName.PROTOCOL
    operations = frozenset(
        {
            ChannelOperation.GET_TASKS,
            ChannelOperation.SET_STATUS,
            ChannelOperation.ADD_TASK,
            ChannelOperation.ADD_SUBTASK,
            ChannelOperation.EXPAND_TASK,
            ChannelOperation.USE_TAG,
        }
    )

    def __init__(
        self,
        project_root: Path,
        *,
        command: str = DEFAULT_SERVER_COMMAND,
        args: Sequence[str] = DEFAULT_SERVER_ARGS,
        enabled: bool = True,
        timeout: float = COMMAND_TIMEOUT,
        version_timeout: float = VERSION_TIMEOUT,
        env: Optional[Dict[str, str]] = None,
        session_factory: Optional[SessionFactory] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.project_root = Path(project_root)
        self.command = command
        self.args = list(args)
        self.enabled = enabled
        self.timeout = timeout
        self.version_timeout = version_timeout
        self._which = which
        self._session_factory = session_factory or _stdio_session_factory(
            StdioServerParameters(
                command=command,
                args=self.args,
                env=env,
                cwd=str(self.project_root),
            )
        )

    def is_available(self) -> bool:
        if not self.enabled:
            return False
        return self._which(self.command) is not None

    # -- plumbing ------------------------------------------------------------

    async def _invoke(self, tool: Optional[str], arguments: Dict[str, Any]) -> Tuple[Any, InitializeResult]:
        async with self._session_factory() as (session, init):
            if tool is None:
                return None, init
            result = await session.call_tool(tool, arguments)
            return _result_payload(result, tool), init

    def _call(self, tool: Optional[str], arguments: Dict[str, Any], *, timeout: float) -> Tuple[Any, InitializeResult]:
        operation = tool or "initialize"
        if not self.enabled:
            raise ChannelUnavailableError(
                "MCP channel is disabled", channel=self.name.value, operation=operation
            )
        try:
            return asyncio.run(asyncio.wait_for(self._invoke(tool, arguments), timeout))
        except asyncio.TimeoutError as exc:
            raise ChannelTimeoutError(
                f"MCP call {operation} timed out after {timeout} seconds",
                timeout_seconds=timeout,
                channel=self.name.value,
                operation=operation,
            ) from exc
        except ChannelError:
            raise
        except OSError as exc:
            raise ChannelUnavailableError(
                f"MCP server '{self.command}' could not be started: {exc}",
                channel=self.name.value,
                operation=operation,
            ) from exc
        except Exception as exc:
            raise ChannelError(
                f"MCP call {operation} failed: {exc}",
                channel=self.name.value,
                operation=operation,
            ) from exc

    def _tool(self, tool: str, arguments: Dict[str, Any]) -> Any:
        payload, _ = self._call(
            tool,
            {"projectRoot": str(self.project_root), **arguments},
            timeout=self.timeout,
        )
        return payload

    # -- operations ----------------------------------------------------------

    def get_version(self) -> Optional[str]:
        try:
            _, init = self._call(None, {}, timeout=self.version_timeout)
        except CommandTimeoutError:
            raise
        except ChannelError as exc:
            logger.debug("Could not get MCP version: %s", exc)
            return None
        server_info = getattr(init, "serverInfo", None)
        version = getattr(server_info, "version", None)
        return version if version and version != "unknown" else None

    def get_tasks(self, tag: str) -> List[Dict[str, Any]]:
        payload = self._tool("get_tasks", {"withSubtasks": True, "tag": tag})
        tasks = _extract_task_list(payload)
        if tasks is None:
            raise ChannelError(
                "MCP get_tasks returned no task list",
                channel=self.name.value,
                operation="get_tasks",
            )
        return tasks

    def set_status(self, task_id: str, status: str, tag: str) -> None:
        self._tool("set_task_status", {"id": str(task_id), "status": status, "tag": tag})

    def add_task(self, task: AddTask, tag: str) -> None:
        arguments: Dict[str, Any] = {
            "title": task.title,
            "description": task.description,
            "details": task.details,
            "testStrategy": task.test_strategy,
            "priority": task.priority.value,
            "tag": tag,
        }
        if task.dependencies:
            arguments["dependencies"] = ",".join(task.dependencies)
        self._tool("add_task", arguments)

    def add_subtask(self, subtask: AddSubtask, tag: str) -> None:
        arguments: Dict[str, Any] = {
            "id": str(subtask.parent_id),
            "title": subtask.title,
            "description": subtask.description,
            "details": subtask.details,
            "status": denormalize(subtask.status),
            "tag": tag,
        }
        if subtask.dependencies:
            arguments["dependencies"] = ",".join(subtask.dependencies)
        self._tool("add_subtask", arguments)

    def expand_task(self, task_id: str, force: bool, tag: str) -> None:
        self._tool("expand_task", {"id": str(task_id), "force": force, "tag": tag})

    def use_tag(self, name: str) -> None:
        self._tool("use_tag", {"name": name})
