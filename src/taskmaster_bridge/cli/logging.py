"""Structured logging hooks for CLI commands.

Each command runs inside an operation context whose correlation id doubles
as the response ``request_id``, so the envelope printed to the user and the
channel-attempt log lines can be matched up.
"""

import logging
import time
from contextlib import ExitStack
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from taskmaster_bridge.core.context import (
    generate_correlation_id,
    get_correlation_id,
    operation_context,
)

__all__ = [
    "generate_request_id",
    "get_request_id",
    "cli_command",
    "CLILogContext",
]

T = TypeVar("T")

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    """Generate a request ID for CLI command tracking (``cli_<12 hex>``)."""
    return generate_correlation_id("cli")


def get_request_id() -> str:
    """Get the current request ID, or empty string outside a command."""
    return get_correlation_id()


class CLILogContext:
    """Context manager for CLI command logging context.

    Example:
        >>> with CLILogContext("tasks-list") as ctx:
        ...     logger.info("Listing", extra={"request_id": ctx.request_id})
    """

    def __init__(self, command: str = "cli", request_id: Optional[str] = None):
        self.command = command
        self.request_id = request_id or generate_request_id()
        self._stack: Optional[ExitStack] = None

    def __enter__(self) -> "CLILogContext":
        self._stack = ExitStack()
        self._stack.enter_context(
            operation_context(self.command, correlation_id=self.request_id)
        )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._stack is not None:
            self._stack.close()
            self._stack = None


def cli_command(
    command_name: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for CLI commands.

    Generates a request ID, logs command start and completion, and turns
    any ``BridgeError`` that escapes the command into an error envelope.

    Example:
        >>> @cli_command("tasks-list")
        ... def list_tasks():
        ...     ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = command_name or func.__name__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            # Imported here: output imports this module for request ids
            from taskmaster_bridge.cli.output import emit_exception
            from taskmaster_bridge.core.errors import BridgeError

            with CLILogContext(name):
                start = time.perf_counter()
                success = True
                error_msg = None
                logger.debug("CLI command started: %s", name, extra={"command": name})
                try:
                    return func(*args, **kwargs)
                except BridgeError as exc:
                    success = False
                    error_msg = str(exc)
                    emit_exception(exc)
                finally:
                    duration_ms = (time.perf_counter() - start) * 1000
                    logger.debug(
                        "CLI command completed: %s",
                        name,
                        extra={
                            "command": name,
                            "success": success,
                            "duration_ms": round(duration_ms, 2),
                            "error": error_msg,
                        },
                    )

        return wrapper

    return decorator
