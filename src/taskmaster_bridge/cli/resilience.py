"""Command-level time budgets and Ctrl+C handling for the CLI.

Each channel call carries its own hard timeout. The budgets here bound a
whole command, which may probe both channel versions and then walk MCP,
the CLI and tasks.json, so they are derived from the configured channel
timeouts rather than chosen separately. Budgets are resolved when the
command runs, after the config file and environment have been read.
"""

import logging
import signal
import sys
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, Optional, TypeVar, Union

import click

from taskmaster_bridge.config import ChannelSettings
from taskmaster_bridge.core.channels.base import COMMAND_TIMEOUT, VERSION_TIMEOUT
from taskmaster_bridge.core.errors import CommandTimeoutError

__all__ = [
    "FAST_TIMEOUT",
    "MEDIUM_TIMEOUT",
    "SLOW_TIMEOUT",
    "chain_budget",
    "probe_budget",
    "command_budget",
    "version_budget",
    "slow_budget",
    "with_sync_timeout",
    "handle_keyboard_interrupt",
]

T = TypeVar("T")

Budget = Union[float, Callable[[], float]]

logger = logging.getLogger(__name__)

# Slack for process start-up and tasks.json I/O on top of channel timeouts
GRACE_SECONDS = 5.0

EXIT_INTERRUPTED = 130  # 128 + SIGINT


def probe_budget(version_timeout: float) -> float:
    """Outer bound for probing the CLI and MCP versions back to back."""
    return 2 * version_timeout + GRACE_SECONDS


def chain_budget(command_timeout: float, version_timeout: float, remote_links: int = 2) -> float:
    """Outer bound for a command that probes both versions and then tries
    ``remote_links`` channels in turn before falling back to the file."""
    return 2 * version_timeout + remote_links * command_timeout + GRACE_SECONDS


FAST_TIMEOUT = probe_budget(VERSION_TIMEOUT)
MEDIUM_TIMEOUT = chain_budget(COMMAND_TIMEOUT, VERSION_TIMEOUT)
SLOW_TIMEOUT = 300.0  # AI-backed expansion


def _channel_settings() -> ChannelSettings:
    click_ctx = click.get_current_context(silent=True)
    obj = click_ctx.obj if click_ctx is not None else None
    if isinstance(obj, dict) and "cli_context" in obj:
        return obj["cli_context"].config.channels
    return ChannelSettings()


def command_budget() -> float:
    settings = _channel_settings()
    return chain_budget(settings.command_timeout, settings.version_timeout)


def version_budget() -> float:
    return probe_budget(_channel_settings().version_timeout)


def slow_budget() -> float:
    return max(SLOW_TIMEOUT, command_budget())


@contextmanager
def _alarm(seconds: float, message: str, operation: str) -> Iterator[None]:
    def _expired(signum: int, frame: Any) -> None:
        raise CommandTimeoutError(message, timeout_seconds=float(seconds), operation=operation)

    previous = signal.signal(signal.SIGALRM, _expired)
    signal.setitimer(signal.ITIMER_REAL, seconds)
    try:
        yield
    finally:
        signal.setitimer(signal.ITIMER_REAL, 0)
        signal.signal(signal.SIGALRM, previous)


def with_sync_timeout(
    seconds: Budget = MEDIUM_TIMEOUT,
    error_message: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Abort the wrapped command with ``CommandTimeoutError`` after ``seconds``.

    ``seconds`` may be a callable, evaluated on each call. Relies on SIGALRM,
    so the budget is not enforced on Windows.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            if sys.platform == "win32":
                return func(*args, **kwargs)
            limit = seconds() if callable(seconds) else seconds
            msg = error_message or f"{func.__name__} timed out after {limit}s"
            logger.debug("Time budget for %s: %.1fs", func.__name__, limit)
            with _alarm(limit, msg, func.__name__):
                return func(*args, **kwargs)

        return wrapper

    return decorator


def handle_keyboard_interrupt(
    cleanup: Optional[Callable[[], None]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Exit with status 130 on Ctrl+C, running ``cleanup`` first if given."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                logger.debug("Interrupted: %s", func.__name__)
                if cleanup:
                    cleanup()
                sys.exit(EXIT_INTERRUPTED)

        return wrapper

    return decorator
