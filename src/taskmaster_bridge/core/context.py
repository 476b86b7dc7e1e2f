"""Operation context for log correlation.

Every client operation runs inside ``operation_context``. The context sets
a correlation id, the operation name and its start time in ``contextvars``
so every log record emitted while it is active (including the per-channel
attempt records) can be tied back to one logical operation.

Usage:
    from taskmaster_bridge.core.context import operation_context

    with operation_context("set_task_status") as ctx:
        logger.info("Setting status")  # carries ctx.correlation_id

Nested contexts keep the outer correlation id, so a CLI command and the
client operation it triggers share one id.
"""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

__all__ = [
    "correlation_id_var",
    "operation_var",
    "start_time_var",
    "OperationContext",
    "generate_correlation_id",
    "operation_context",
    "get_correlation_id",
    "get_operation",
    "get_start_time",
    "get_current_context",
]

# -----------------------------------------------------------------------------
# Context Variables
# -----------------------------------------------------------------------------

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
"""Correlation ID shared by every log record of one operation."""

operation_var: ContextVar[str] = ContextVar("operation", default="")
"""Name of the logical operation in progress."""

start_time_var: ContextVar[float] = ContextVar("start_time", default=0.0)
"""Operation start time as Unix timestamp."""


def generate_correlation_id(prefix: str = "op") -> str:
    """Generate a unique correlation ID.

    Format: {prefix}_{12_hex_chars}, e.g. "op_a1b2c3d4e5f6".
    """
    return f"{prefix}_{secrets.token_hex(6)}"


@dataclass
class OperationContext:
    """Snapshot of the active operation context."""

    correlation_id: str = ""
    operation: str = ""
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_ms(self) -> float:
        if self.start_time <= 0:
            return 0.0
        return (time.time() - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "operation": self.operation,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


@contextmanager
def operation_context(
    operation: str,
    *,
    correlation_id: Optional[str] = None,
) -> Generator[OperationContext, None, None]:
    """Set the operation context for the duration of the with block.

    Args:
        operation: Logical operation name (e.g. "get_tasks")
        correlation_id: Explicit ID; defaults to the enclosing context's ID
            or a freshly generated one
    """
    corr_id = correlation_id or get_correlation_id() or generate_correlation_id()
    start = time.time()

    token_corr = correlation_id_var.set(corr_id)
    token_op = operation_var.set(operation)
    token_start = start_time_var.set(start)
    try:
        yield OperationContext(correlation_id=corr_id, operation=operation, start_time=start)
    finally:
        correlation_id_var.reset(token_corr)
        operation_var.reset(token_op)
        start_time_var.reset(token_start)


# -----------------------------------------------------------------------------
# Context Accessors
# -----------------------------------------------------------------------------


def get_correlation_id() -> str:
    """Current correlation ID, or empty string outside an operation."""
    return correlation_id_var.get()


def get_operation() -> str:
    return operation_var.get()


def get_start_time() -> float:
    return start_time_var.get()


def get_current_context() -> OperationContext:
    return OperationContext(
        correlation_id=get_correlation_id(),
        operation=get_operation(),
        start_time=get_start_time(),
    )
