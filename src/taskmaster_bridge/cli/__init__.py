"""taskmaster-bridge CLI - JSON command-line access to Task Master projects.

All commands emit structured JSON (response-v2 envelopes) for reliable
parsing.
"""

from taskmaster_bridge.cli.config import CLIContext, create_context
from taskmaster_bridge.cli.logging import CLILogContext, cli_command, get_request_id
from taskmaster_bridge.cli.main import cli
from taskmaster_bridge.cli.output import emit, emit_error, emit_exception, emit_success
from taskmaster_bridge.cli.registry import get_context, set_context
from taskmaster_bridge.cli.resilience import (
    FAST_TIMEOUT,
    MEDIUM_TIMEOUT,
    SLOW_TIMEOUT,
    command_budget,
    handle_keyboard_interrupt,
    with_sync_timeout,
)

__all__ = [
    # Entry point
    "cli",
    # Context
    "CLIContext",
    "create_context",
    "get_context",
    "set_context",
    # Output
    "emit",
    "emit_error",
    "emit_exception",
    "emit_success",
    # Logging
    "CLILogContext",
    "cli_command",
    "get_request_id",
    # Resilience
    "FAST_TIMEOUT",
    "MEDIUM_TIMEOUT",
    "SLOW_TIMEOUT",
    "command_budget",
    "with_sync_timeout",
    "handle_keyboard_interrupt",
]
