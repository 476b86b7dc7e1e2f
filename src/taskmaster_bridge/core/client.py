"""Task Master client: channel selection and fallback.

Every logical operation walks the same chain, MCP server first, then the
CLI, then tasks.json on disk. A link is skipped when its channel is off,
cannot run the operation, or (for MCP) reports a version that disagrees
with the CLI while ``prefer_cli_on_mismatch`` is set. Each channel gets one
attempt per operation; there are no retries.

Reads favour availability and return an empty result when nothing works.
Writes favour correctness and raise the last error instead.

Usage:
    from taskmaster_bridge import create_client

    client = create_client()
    for task in client.get_tasks():
        print(task.id, task.title, task.status.value)
    client.set_task_status("1.2", "done")
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, TypeVar, Union

from taskmaster_bridge.config import BridgeConfig, get_config
from taskmaster_bridge.core.channels import (
    ChannelName,
    ChannelOperation,
    CLIChannel,
    ProtocolChannel,
    TaskChannel,
)
from taskmaster_bridge.core.context import operation_context
from taskmaster_bridge.core.errors import (
    BridgeError,
    ChannelError,
    ChannelUnavailableError,
    CommandTimeoutError,
    InvalidRequestError,
    NotFoundError,
)
from taskmaster_bridge.core.formats import (
    DEFAULT_TAG,
    DocumentShape,
    detect_shape,
    extract,
    find_document,
    load_document,
    load_task_files,
    save_document,
)
from taskmaster_bridge.core.hierarchy import build_hierarchy
from taskmaster_bridge.core.models import (
    TagContextInfo,
    Task,
    TaskPriority,
    TaskProgress,
    TaskStatus,
)
from taskmaster_bridge.core.mutations import (
    AddSubtask,
    AddTask,
    DeleteTask,
    Operation,
    RemoveSubtask,
    SetStatus,
    SetSubtaskStatus,
    TaskStore,
    UpdateSubtask,
    UpdateTask,
    utc_now,
)
from taskmaster_bridge.core.progress import (
    compute_progress,
    filter_by_category,
    filter_by_priority,
    filter_by_status,
    find_next_task,
    find_task_details,
)
from taskmaster_bridge.core.refresh import RefreshCoalescer
from taskmaster_bridge.core.status import denormalize, normalize
from taskmaster_bridge.core.tags import FALLBACK_TAG_CONTEXT, TagContext, validate_tag_context
from taskmaster_bridge.core.validation import sanitize_tasks
from taskmaster_bridge.core.versions import VersionCheck, VersionGate

logger = logging.getLogger(__name__)

__all__ = ["TaskMasterClient", "create_client"]

T = TypeVar("T")

StatusLike = Union[TaskStatus, str]


@dataclass
class _Attempt:
    """One link of the fallback chain."""

    channel: ChannelName
    call: Callable[[], Any]


def _subtask_path(parent_id: str, subtask_id: str) -> str:
    subtask_id = str(subtask_id)
    if subtask_id.startswith(f"{parent_id}."):
        return subtask_id
    return f"{parent_id}.{subtask_id}"


def _version_probe(channel: Optional[TaskChannel]) -> Callable[[], Optional[str]]:
    if channel is None:
        return lambda: None
    return channel.get_version


class TaskMasterClient:
    """Reads and mutates Task Master tasks through the best available channel.

    Args:
        project_root: Directory holding the Task Master directory
        taskmaster_dir: Name of the Task Master directory
        protocol: MCP channel, or None to never use it
        cli: CLI channel, or None to never use it
        version_gate: Version comparison; built from the channels if omitted
        prefer_cli_on_mismatch: Skip MCP when the gate reports incompatibility
            and the CLI version is known
        store: Direct-file mutator
        refresh: Notified after every successful write
    """

    def __init__(
        self,
        project_root: Path,
        *,
        taskmaster_dir: str = ".taskmaster",
        protocol: Optional[TaskChannel] = None,
        cli: Optional[TaskChannel] = None,
        version_gate: Optional[VersionGate] = None,
        prefer_cli_on_mismatch: bool = True,
        store: Optional[TaskStore] = None,
        refresh: Optional[RefreshCoalescer] = None,
    ):
        self.project_root = Path(project_root)
        self.taskmaster_path = self.project_root / taskmaster_dir
        self.tasks_dir = self.taskmaster_path / "tasks"
        self.protocol = protocol
        self.cli = cli
        self.version_gate = version_gate or VersionGate(
            cli_probe=_version_probe(cli),
            mcp_probe=_version_probe(protocol),
        )
        self.prefer_cli_on_mismatch = prefer_cli_on_mismatch
        self.store = store or TaskStore()
        self.refresh = refresh or RefreshCoalescer()
        self.tags = TagContext(self.taskmaster_path)
        self._last_check: Optional[VersionCheck] = None
        self._warned: Set[str] = set()

    # =========================================================================
    # Channel selection
    # =========================================================================

    def check_version_compatibility(self) -> VersionCheck:
        """Compare CLI and MCP versions (cached by the gate).

        Each distinct warning is logged once per client; later repeats go to
        debug.
        """
        check = self.version_gate.check()
        self._last_check = check
        logger.debug(
            "Version info: CLI=%s, MCP=%s, compatible=%s",
            check.cli_version or "unavailable",
            check.mcp_version or "unavailable",
            check.compatible,
        )
        if check.warning:
            if check.warning not in self._warned:
                self._warned.add(check.warning)
                logger.warning("Version compatibility: %s", check.warning)
            else:
                logger.debug("Version compatibility: %s", check.warning)
        return check

    def _channel_version(self, channel: ChannelName) -> Optional[str]:
        if self._last_check is None:
            return None
        if channel is ChannelName.PROTOCOL:
            return self._last_check.mcp_version
        if channel is ChannelName.CLI:
            return self._last_check.cli_version
        return None

    def _log_skip(self, operation: str, channel: ChannelName, reason: str) -> None:
        logger.debug(
            "%s: skipping %s (%s)",
            operation,
            channel.value,
            reason,
            extra={
                "operation": operation,
                "channel": channel.value,
                "channel_version": self._channel_version(channel),
                "outcome": "skipped",
                "duration_ms": 0.0,
            },
        )

    def _use_protocol(self, op: ChannelOperation) -> bool:
        channel = self.protocol
        if channel is None:
            return False
        if not channel.supports(op):
            self._log_skip(op.value, ChannelName.PROTOCOL, "unsupported")
            return False
        if not channel.is_available():
            self._log_skip(op.value, ChannelName.PROTOCOL, "unavailable")
            return False
        check = self.check_version_compatibility()
        if not check.compatible and self.prefer_cli_on_mismatch and check.cli_version:
            self._log_skip(op.value, ChannelName.PROTOCOL, "version mismatch, preferring CLI")
            return False
        return True

    def _use_cli(self, op: ChannelOperation) -> bool:
        channel = self.cli
        if channel is None:
            return False
        if not channel.supports(op):
            self._log_skip(op.value, ChannelName.CLI, "unsupported")
            return False
        if not channel.is_available():
            self._log_skip(op.value, ChannelName.CLI, "unavailable")
            return False
        return True

    def _execute(self, operation: str, attempts: Sequence[_Attempt]) -> Any:
        """Run ``attempts`` in order and return the first success.

        Raises:
            ChannelUnavailableError: If there is nothing to attempt.
            BridgeError: The direct-file error when the file link ran last,
                otherwise a ``ChannelError`` chained to the last failure.
        """
        if not attempts:
            raise ChannelUnavailableError(
                f"No channel is available for {operation}", operation=operation
            )

        last_error: Optional[Exception] = None
        last_channel: Optional[ChannelName] = None
        for attempt in attempts:
            channel = attempt.channel
            extra: Dict[str, Any] = {
                "operation": operation,
                "channel": channel.value,
                "channel_version": self._channel_version(channel),
            }
            start = time.perf_counter()
            try:
                result = attempt.call()
            except CommandTimeoutError:
                raise
            except (BridgeError, OSError) as exc:
                extra["outcome"] = "failure"
                extra["duration_ms"] = round((time.perf_counter() - start) * 1000, 2)
                logger.info("%s via %s failed: %s", operation, channel.value, exc, extra=extra)
                last_error, last_channel = exc, channel
                continue
            extra["outcome"] = "success"
            extra["duration_ms"] = round((time.perf_counter() - start) * 1000, 2)
            logger.info("%s via %s succeeded", operation, channel.value, extra=extra)
            return result

        if last_channel is ChannelName.FILE:
            raise last_error
        raise ChannelError(
            f"{operation} failed on every channel: {last_error}",
            channel=last_channel.value if last_channel else None,
            operation=operation,
        ) from last_error

    def _tag(self, tag: Optional[str]) -> str:
        return tag or self.tags.current_tag()

    # =========================================================================
    # Direct file access
    # =========================================================================

    def _document_path(self) -> Path:
        path = find_document(self.tasks_dir)
        if path is None:
            raise NotFoundError(
                f"No tasks.json found in {self.tasks_dir}",
                resource="document",
            )
        return path

    def _load_shape(self, tag: str) -> Optional[DocumentShape]:
        path = find_document(self.tasks_dir)
        if path is None:
            return None
        return detect_shape(load_document(path), tag)

    def _read_file_tasks(self, tag: str) -> List[Task]:
        path = find_document(self.tasks_dir)
        if path is None:
            raw = load_task_files(self.tasks_dir)
            if not raw:
                logger.info("No tasks.json or task files found in %s", self.tasks_dir)
        else:
            raw = extract(load_document(path), tag).tasks
        tasks, _ = sanitize_tasks(raw, source="file")
        return build_hierarchy(tasks)

    def _write_file(self, tag: str, mutate: Callable[[DocumentShape], T]) -> T:
        path = self._document_path()
        shape = detect_shape(load_document(path), tag)
        result = mutate(shape)
        save_document(path, shape.container)
        return result

    def _apply(self, op: Operation, tag: str) -> str:
        return self._write_file(tag, lambda shape: self.store.apply(op, shape))

    def _read_protocol_tasks(self, tag: str) -> List[Task]:
        raw = self.protocol.get_tasks(tag)
        tasks, issues = sanitize_tasks(raw, source="protocol")
        if issues:
            logger.debug("Dropped %d invalid task entries from MCP response", len(issues))
        return build_hierarchy(tasks)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_tasks(self, tag: Optional[str] = None) -> List[Task]:
        """Return the root tasks of ``tag`` (default: the current tag).

        Returns an empty list when every channel fails.
        """
        with operation_context("get_tasks"):
            try:
                tag = self._tag(tag)
                attempts = []
                try:
                    use_protocol = self._use_protocol(ChannelOperation.GET_TASKS)
                except CommandTimeoutError:
                    raise
                except (BridgeError, OSError) as exc:
                    logger.warning("Skipping MCP for get_tasks: %s", exc)
                    use_protocol = False
                if use_protocol:
                    attempts.append(
                        _Attempt(ChannelName.PROTOCOL, lambda: self._read_protocol_tasks(tag))
                    )
                attempts.append(_Attempt(ChannelName.FILE, lambda: self._read_file_tasks(tag)))
                return self._execute("get_tasks", attempts)
            except CommandTimeoutError:
                raise
            except (BridgeError, OSError) as exc:
                logger.error("Could not load tasks for tag '%s': %s", tag, exc)
                return []

    def get_task_details(
        self,
        main_id: str,
        subtask_id: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Optional[Task]:
        """Find a task, or a subtask of ``main_id`` when ``subtask_id`` is given."""
        tasks = self.get_tasks(tag)
        return find_task_details(tasks, str(main_id), None if subtask_id is None else str(subtask_id))

    def get_subtasks(self, parent_id: str, tag: Optional[str] = None) -> List[Task]:
        parent = self.get_task_details(parent_id, tag=tag)
        return list(parent.subtasks) if parent else []

    def get_next_task(self, tag: Optional[str] = None) -> Optional[Task]:
        return find_next_task(self.get_tasks(tag))

    def get_tasks_by_status(self, status: StatusLike, tag: Optional[str] = None) -> List[Task]:
        return filter_by_status(self.get_tasks(tag), normalize(status))

    def get_tasks_by_priority(
        self, priority: Union[TaskPriority, str], tag: Optional[str] = None
    ) -> List[Task]:
        return filter_by_priority(self.get_tasks(tag), TaskPriority.parse(priority))

    def get_tasks_by_category(self, category: str, tag: Optional[str] = None) -> List[Task]:
        return filter_by_category(self.get_tasks(tag), category)

    def get_task_progress(self, tag: Optional[str] = None) -> TaskProgress:
        return compute_progress(self.get_tasks(tag))

    # =========================================================================
    # Writes
    # =========================================================================

    def _write(self, operation: str, attempts: Sequence[_Attempt]) -> Any:
        result = self._execute(operation, attempts)
        self.refresh.request()
        return result

    def set_task_status(
        self, task_id: str, status: StatusLike, tag: Optional[str] = None
    ) -> None:
        """Set the status of a task (or, with a dotted id, a nested subtask)."""
        with operation_context("set_task_status"):
            tag = self._tag(tag)
            task_id = str(task_id)
            canonical = normalize(status)
            token = denormalize(canonical)
            attempts = []
            if self._use_protocol(ChannelOperation.SET_STATUS):
                attempts.append(
                    _Attempt(ChannelName.PROTOCOL, lambda: self.protocol.set_status(task_id, token, tag))
                )
            if self._use_cli(ChannelOperation.SET_STATUS):
                attempts.append(
                    _Attempt(ChannelName.CLI, lambda: self.cli.set_status(task_id, token, tag))
                )
            attempts.append(
                _Attempt(ChannelName.FILE, lambda: self._apply(SetStatus(task_id, canonical), tag))
            )
            self._write("set_task_status", attempts)

    def set_subtask_status(
        self,
        parent_id: str,
        subtask_id: str,
        status: StatusLike,
        tag: Optional[str] = None,
    ) -> None:
        with operation_context("set_subtask_status"):
            tag = self._tag(tag)
            parent_id = str(parent_id)
            full_id = _subtask_path(parent_id, subtask_id)
            canonical = normalize(status)
            token = denormalize(canonical)
            op = SetSubtaskStatus(parent_id, str(subtask_id), canonical)
            attempts = []
            if self._use_protocol(ChannelOperation.SET_STATUS):
                attempts.append(
                    _Attempt(ChannelName.PROTOCOL, lambda: self.protocol.set_status(full_id, token, tag))
                )
            if self._use_cli(ChannelOperation.SET_STATUS):
                attempts.append(
                    _Attempt(ChannelName.CLI, lambda: self.cli.set_status(full_id, token, tag))
                )
            attempts.append(_Attempt(ChannelName.FILE, lambda: self._apply(op, tag)))
            self._write("set_subtask_status", attempts)

    def update_task(
        self, task_id: str, updates: Mapping[str, Any], tag: Optional[str] = None
    ) -> None:
        """Overwrite fields of a task. Only tasks.json supports this."""
        with operation_context("update_task"):
            tag = self._tag(tag)
            op = UpdateTask(str(task_id), dict(updates))
            self._write("update_task", [_Attempt(ChannelName.FILE, lambda: self._apply(op, tag))])

    def update_subtask(
        self,
        parent_id: str,
        subtask_id: str,
        updates: Mapping[str, Any],
        tag: Optional[str] = None,
    ) -> None:
        with operation_context("update_subtask"):
            tag = self._tag(tag)
            op = UpdateSubtask(str(parent_id), str(subtask_id), dict(updates))
            self._write("update_subtask", [_Attempt(ChannelName.FILE, lambda: self._apply(op, tag))])

    def add_task(
        self,
        title: str,
        description: str = "",
        *,
        details: str = "",
        test_strategy: str = "",
        priority: Union[TaskPriority, str] = TaskPriority.MEDIUM,
        category: Optional[str] = None,
        dependencies: Sequence[str] = (),
        status: StatusLike = TaskStatus.TODO,
        tag: Optional[str] = None,
    ) -> Optional[str]:
        """Create a root task.

        Returns:
            The new id when tasks.json was written directly. MCP and CLI do
            not report the id they assign, so None is returned for them.
        """
        if not title or not title.strip():
            raise InvalidRequestError("Task title must be a non-empty string")
        with operation_context("add_task"):
            tag = self._tag(tag)
            op = AddTask(
                title=title.strip(),
                description=description,
                details=details,
                test_strategy=test_strategy,
                status=normalize(status),
                priority=TaskPriority.parse(priority),
                category=category,
                dependencies=tuple(str(dep) for dep in dependencies),
            )
            attempts = []
            if self._use_protocol(ChannelOperation.ADD_TASK):
                attempts.append(_Attempt(ChannelName.PROTOCOL, lambda: self.protocol.add_task(op, tag)))
            if self._use_cli(ChannelOperation.ADD_TASK):
                attempts.append(_Attempt(ChannelName.CLI, lambda: self.cli.add_task(op, tag)))
            attempts.append(_Attempt(ChannelName.FILE, lambda: self._apply(op, tag)))
            return self._write("add_task", attempts)

    def add_subtask(
        self,
        parent_id: str,
        title: str,
        description: str = "",
        *,
        details: str = "",
        status: StatusLike = TaskStatus.TODO,
        priority: Optional[Union[TaskPriority, str]] = None,
        dependencies: Sequence[str] = (),
        tag: Optional[str] = None,
    ) -> Optional[str]:
        """Append a subtask to ``parent_id``; returns the dotted id when known."""
        if not title or not title.strip():
            raise InvalidRequestError("Subtask title must be a non-empty string")
        with operation_context("add_subtask"):
            tag = self._tag(tag)
            op = AddSubtask(
                parent_id=str(parent_id),
                title=title.strip(),
                description=description,
                details=details,
                status=normalize(status),
                priority=TaskPriority.parse(priority) if priority is not None else None,
                dependencies=tuple(str(dep) for dep in dependencies),
            )
            attempts = []
            if self._use_protocol(ChannelOperation.ADD_SUBTASK):
                attempts.append(_Attempt(ChannelName.PROTOCOL, lambda: self.protocol.add_subtask(op, tag)))
            if self._use_cli(ChannelOperation.ADD_SUBTASK):
                attempts.append(_Attempt(ChannelName.CLI, lambda: self.cli.add_subtask(op, tag)))
            attempts.append(_Attempt(ChannelName.FILE, lambda: self._apply(op, tag)))
            return self._write("add_subtask", attempts)

    def remove_subtask(self, parent_id: str, subtask_id: str, tag: Optional[str] = None) -> None:
        with operation_context("remove_subtask"):
            tag = self._tag(tag)
            op = RemoveSubtask(str(parent_id), str(subtask_id))
            self._write("remove_subtask", [_Attempt(ChannelName.FILE, lambda: self._apply(op, tag))])

    def delete_task(self, task_id: str, tag: Optional[str] = None) -> None:
        """Delete a task and its subtree. Dependencies on it are left as-is."""
        with operation_context("delete_task"):
            tag = self._tag(tag)
            op = DeleteTask(str(task_id))
            self._write("delete_task", [_Attempt(ChannelName.FILE, lambda: self._apply(op, tag))])

    def expand_task(self, task_id: str, force: bool = False, tag: Optional[str] = None) -> None:
        """Ask Task Master to generate subtasks. Needs MCP or the CLI."""
        with operation_context("expand_task"):
            tag = self._tag(tag)
            task_id = str(task_id)
            attempts = []
            if self._use_protocol(ChannelOperation.EXPAND_TASK):
                attempts.append(
                    _Attempt(ChannelName.PROTOCOL, lambda: self.protocol.expand_task(task_id, force, tag))
                )
            if self._use_cli(ChannelOperation.EXPAND_TASK):
                attempts.append(_Attempt(ChannelName.CLI, lambda: self.cli.expand_task(task_id, force, tag)))
            self._write("expand_task", attempts)

    # =========================================================================
    # Tags
    # =========================================================================

    def get_tag_context(self) -> TagContextInfo:
        """Current tag and the tags available in tasks.json."""
        current = self.tags.current_tag()
        try:
            shape = self._load_shape(current)
        except CommandTimeoutError:
            raise
        except (BridgeError, OSError) as exc:
            logger.warning("Could not read tag context, using defaults: %s", exc)
            return FALLBACK_TAG_CONTEXT
        info = self.tags.describe(shape)
        problem = validate_tag_context(info)
        if problem:
            logger.warning("Tag context: %s", problem)
        return info

    def _require_tag(self, name: str) -> Optional[DocumentShape]:
        shape = self._load_shape(name)
        if shape is not None and name not in shape.tag_names():
            raise NotFoundError(f"Tag '{name}' does not exist", resource="tag")
        return shape

    def switch_tag(self, name: str) -> None:
        """Make ``name`` the current tag.

        MCP's ``use_tag`` is attempted when available but its failure is not
        fatal; the state file is always updated and listeners are notified
        without debounce.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidRequestError("Tag name must be a non-empty string")
        with operation_context("switch_tag"):
            self._require_tag(name)
            if self._use_protocol(ChannelOperation.USE_TAG):
                try:
                    self._execute(
                        "switch_tag",
                        [_Attempt(ChannelName.PROTOCOL, lambda: self.protocol.use_tag(name))],
                    )
                except CommandTimeoutError:
                    raise
                except ChannelError as exc:
                    logger.debug("MCP use_tag failed, updating state file only: %s", exc)
            self._execute(
                "switch_tag",
                [_Attempt(ChannelName.FILE, lambda: self.tags.set_current_tag(name))],
            )
            self.refresh.request_immediate()

    def create_tag(self, name: str, description: str = "") -> None:
        name = (name or "").strip()
        if not name:
            raise InvalidRequestError("Tag name must be a non-empty string")
        with operation_context("create_tag"):
            shape = self._load_shape(DEFAULT_TAG)
            if shape is not None and name in shape.tag_names():
                raise InvalidRequestError(f"Tag '{name}' already exists")
            attempts = []
            if self._use_cli(ChannelOperation.CREATE_TAG):
                attempts.append(_Attempt(ChannelName.CLI, lambda: self.cli.create_tag(name)))
            attempts.append(
                _Attempt(
                    ChannelName.FILE,
                    lambda: self._write_file(
                        DEFAULT_TAG,
                        lambda doc: doc.add_tag(name, timestamp=utc_now(), description=description),
                    ),
                )
            )
            self._write("create_tag", attempts)

    def delete_tag(self, name: str) -> None:
        """Delete a tag and its tasks. ``master`` cannot be deleted.

        Deleting the current tag switches back to ``master``.
        """
        name = (name or "").strip()
        if name == DEFAULT_TAG:
            raise InvalidRequestError(f"Cannot delete the '{DEFAULT_TAG}' tag")
        if not name:
            raise InvalidRequestError("Tag name must be a non-empty string")
        with operation_context("delete_tag"):
            self._require_tag(name)
            attempts = []
            if self._use_cli(ChannelOperation.DELETE_TAG):
                attempts.append(_Attempt(ChannelName.CLI, lambda: self.cli.delete_tag(name)))
            attempts.append(
                _Attempt(
                    ChannelName.FILE,
                    lambda: self._write_file(DEFAULT_TAG, lambda doc: doc.remove_tag(name)),
                )
            )
            self._execute("delete_tag", attempts)
            if self.tags.current_tag() == name:
                self.tags.set_current_tag(DEFAULT_TAG)
                self.refresh.request_immediate()
            else:
                self.refresh.request()


def create_client(config: Optional[BridgeConfig] = None) -> TaskMasterClient:
    """Build a client with MCP and CLI channels from configuration."""
    config = config or get_config()
    root = config.resolve_project_root()
    settings = config.channels

    protocol = ProtocolChannel(
        root,
        command=settings.mcp_command,
        args=settings.mcp_args,
        enabled=not settings.disable_mcp,
        timeout=settings.command_timeout,
        version_timeout=settings.version_timeout,
    )
    cli = CLIChannel(
        root,
        binary=settings.cli_binary,
        npx_package=settings.npx_package,
        command_timeout=settings.command_timeout,
        version_timeout=settings.version_timeout,
    )
    gate = VersionGate(
        cli_probe=cli.get_version,
        mcp_probe=protocol.get_version,
        check_interval=config.versions.check_interval,
        minor_tolerance=config.versions.minor_tolerance,
    )
    return TaskMasterClient(
        root,
        taskmaster_dir=config.taskmaster_dir,
        protocol=protocol,
        cli=cli,
        version_gate=gate,
        prefer_cli_on_mismatch=config.versions.prefer_cli_on_mismatch,
        refresh=RefreshCoalescer(config.refresh.debounce_ms),
    )
