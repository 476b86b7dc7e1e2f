"""Task Master CLI channel.

Runs ``task-master <subcommand> ...`` as a subprocess in the project root,
falling back to ``npx -y task-master-ai`` when the binary is not on PATH.
Arguments are passed as a list; no shell is involved.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence

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
from taskmaster_bridge.core.formats import DEFAULT_TAG
from taskmaster_bridge.core.mutations import AddSubtask, AddTask
from taskmaster_bridge.core.status import denormalize

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "task-master"
DEFAULT_NPX_PACKAGE = "task-master-ai"


class RunnerProtocol(Protocol):
    """Callable signature used for executing CLI commands."""

    def __call__(
        self,
        command: Sequence[str],
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess[str]:
        raise NotImplementedError


def _default_runner(
    command: Sequence[str],
    *,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess[str]:
    """Invoke the Task Master CLI via subprocess."""
    return subprocess.run(  # noqa: S603 - intentional CLI invocation
        list(command),
        capture_output=True,
        text=True,
        cwd=cwd,
        timeout=timeout,
        check=False,
    )


def _tag_args(tag: Optional[str]) -> List[str]:
    # The CLI defaults to master; only pass --tag for other tags
    if tag and tag != DEFAULT_TAG:
        return ["--tag", tag]
    return []


class CLIChannel(TaskChannel):
    """Subprocess channel for mutating commands.

    The CLI prints human-oriented text, so it is never used to read tasks;
    reads fall through to tasks.json instead.
    """

    name = ChannelName.CLI
    operations = frozenset(
        {
            ChannelOperation.SET_STATUS,
            ChannelOperation.ADD_TASK,
            ChannelOperation.ADD_SUBTASK,
            ChannelOperation.EXPAND_TASK,
            ChannelOperation.CREATE_TAG,
            ChannelOperation.DELETE_TAG,
        }
    )

    def __init__(
        self,
        project_root: Path,
        *,
        binary: str = DEFAULT_BINARY,
        npx_package: Optional[str] = DEFAULT_NPX_PACKAGE,
        command_timeout: float = COMMAND_TIMEOUT,
        version_timeout: float = VERSION_TIMEOUT,
        runner: Optional[RunnerProtocol] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.project_root = Path(project_root)
        self.binary = binary
        self.npx_package = npx_package
        self.command_timeout = command_timeout
        self.version_timeout = version_timeout
        self._runner = runner or _default_runner
        self._which = which

    def _launcher(self) -> Optional[List[str]]:
        if self._which(self.binary):
            return [self.binary]
        if self.npx_package and self._which("npx"):
            return ["npx", "-y", self.npx_package]
        return None

    def is_available(self) -> bool:
        return self._launcher() is not None

    def _run(self, args: Sequence[str], *, operation: str, timeout: float) -> str:
        launcher = self._launcher()
        if launcher is None:
            raise ChannelUnavailableError(
                f"Task Master CLI '{self.binary}' is not available on PATH.",
                channel=self.name.value,
                operation=operation,
            )
        command = launcher + list(args)
        if launcher[0] != self.binary:
            logger.debug("task-master not installed, using npx fallback: %s", " ".join(command))
        else:
            logger.debug("Executing CLI command: %s", " ".join(command))

        try:
            completed = self._runner(command, cwd=str(self.project_root), timeout=timeout)
        except OSError as exc:
            raise ChannelUnavailableError(
                f"Task Master CLI '{launcher[0]}' could not be started: {exc}",
                channel=self.name.value,
                operation=operation,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ChannelTimeoutError(
                f"Command timed out after {exc.timeout} seconds",
                timeout_seconds=timeout,
                channel=self.name.value,
                operation=operation,
            ) from exc

        stderr = (completed.stderr or "").strip()
        if stderr and "npm WARN" not in stderr:
            logger.debug("CLI command stderr: %s", stderr)
        if completed.returncode != 0:
            raise ChannelError(
                f"Task Master CLI command failed with exit code {completed.returncode}"
                + (f": {stderr}" if stderr else ""),
                channel=self.name.value,
                operation=operation,
            )
        return completed.stdout or ""

    def get_version(self) -> Optional[str]:
        try:
            output = self._run(["--version"], operation="version", timeout=self.version_timeout)
        except CommandTimeoutError:
            raise
        except ChannelError as exc:
            logger.debug("Could not determine CLI version: %s", exc)
            return None
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        return lines[0] if lines else None

    def set_status(self, task_id: str, status: str, tag: str) -> None:
        args = ["set-status", "--id", str(task_id), "--status", status]
        self._run(args + _tag_args(tag), operation="set_status", timeout=self.command_timeout)

    def add_task(self, task: AddTask, tag: str) -> None:
        args = [
            "add-task",
            "--prompt",
            f"{task.title}: {task.description}",
            "--priority",
            task.priority.value,
        ]
        if task.dependencies:
            args += ["--dependencies", ",".join(task.dependencies)]
        self._run(args + _tag_args(tag), operation="add_task", timeout=self.command_timeout)

    def add_subtask(self, subtask: AddSubtask, tag: str) -> None:
        args = [
            "add-subtask",
            "--parent",
            str(subtask.parent_id),
            "--title",
            subtask.title,
            "--status",
            denormalize(subtask.status),
        ]
        if subtask.description:
            args += ["--description", subtask.description]
        if subtask.details:
            args += ["--details", subtask.details]
        if subtask.dependencies:
            args += ["--dependencies", ",".join(subtask.dependencies)]
        self._run(args + _tag_args(tag), operation="add_subtask", timeout=self.command_timeout)

    def expand_task(self, task_id: str, force: bool, tag: str) -> None:
        args = ["expand", "--id", str(task_id)]
        if force:
            args.append("--force")
        self._run(args + _tag_args(tag), operation="expand_task", timeout=self.command_timeout)

    def create_tag(self, name: str) -> None:
        self._run(["add-tag", name], operation="create_tag", timeout=self.command_timeout)

    def delete_tag(self, name: str) -> None:
        self._run(["delete-tag", name, "--yes"], operation="delete_tag", timeout=self.command_timeout)

