"""Exception hierarchy for taskmaster-bridge.

Channel errors are expected and routine: the client catches them and moves
on to the next channel, only surfacing one when every channel has failed.
The exception is ``CommandTimeoutError``, which always propagates.
"""

from dataclasses import dataclass
from typing import Optional


class BridgeError(Exception):
    """Base class for all taskmaster-bridge errors."""


class FormatError(BridgeError):
    """The task document has a shape we do not recognise."""

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class NotFoundError(BridgeError):
    """A referenced task, subtask or tag does not exist."""

    def __init__(
        self,
        message: str,
        *,
        task_id: Optional[str] = None,
        resource: str = "task",
    ):
        super().__init__(message)
        self.task_id = task_id
        self.resource = resource


class InvalidRequestError(BridgeError):
    """The caller asked for something that is never allowed."""


class ChannelError(BridgeError):
    """A protocol or CLI call failed."""

    def __init__(
        self,
        message: str,
        *,
        channel: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.channel = channel
        self.operation = operation


class ChannelUnavailableError(ChannelError):
    """The channel cannot be reached (binary missing, server disabled)."""


class ChannelTimeoutError(ChannelError):
    """The channel did not answer within its hard timeout."""

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: Optional[float] = None,
        channel: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, channel=channel, operation=operation)
        self.timeout_seconds = timeout_seconds


class CommandTimeoutError(ChannelTimeoutError):
    """A whole CLI command ran past its time budget."""


class UnsupportedOperationError(ChannelError):
    """The channel has no way to perform the requested operation."""


@dataclass(frozen=True)
class ValidationIssue:
    """Diagnostic for a malformed task entry that was dropped.

    Issues are collected, never raised, so one bad entry cannot hide the
    rest of the batch.
    """

    path: str
    reason: str
    source: str
    task_id: Optional[str] = None

    def __str__(self) -> str:
        ident = f" (id={self.task_id})" if self.task_id is not None else ""
        return f"[{self.source}] {self.path}{ident}: {self.reason}"
