"""JSON output helpers for the taskmaster-bridge CLI.

This module is the sole output mechanism for the CLI. Success envelopes go
to stdout, error envelopes to stderr with exit code 1. Both follow the
response-v2 schema from ``taskmaster_bridge.core.responses``.
"""

import json
import sys
from typing import Any, Mapping, NoReturn, Sequence

from taskmaster_bridge.cli.logging import generate_request_id, get_request_id
from taskmaster_bridge.core.responses import (
    ToolResponse,
    error_from_exception,
    error_response,
    success_response,
)


def _request_id() -> str:
    return get_request_id() or generate_request_id()


def emit(data: Any) -> None:
    """Emit minified JSON to stdout.

    Args:
        data: Any JSON-serializable data structure.
    """
    print(json.dumps(data, separators=(",", ":"), default=str))


def _emit_failure(response: ToolResponse) -> NoReturn:
    print(json.dumps(response.to_dict(), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> NoReturn:
    """Emit error JSON to stderr and exit with code 1.

    Args:
        message: Human-readable error description.
        code: Error code in SCREAMING_SNAKE_CASE (e.g., VALIDATION_ERROR).
        error_type: Error category (validation, not_found, unavailable, internal).
        remediation: Actionable guidance for resolving the error.
        details: Optional additional error context.

    Raises:
        SystemExit: Always exits with code 1.
    """
    response = error_response(
        message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
        request_id=_request_id(),
    )
    _emit_failure(response)


def emit_exception(exc: BaseException) -> NoReturn:
    """Emit the error envelope for a bridge exception and exit with code 1."""
    response = error_from_exception(exc)
    response.meta.setdefault("request_id", _request_id())
    _emit_failure(response)


def emit_success(
    data: Any,
    *,
    warnings: Sequence[str] | None = None,
    telemetry: Mapping[str, Any] | None = None,
    meta: Mapping[str, Any] | None = None,
) -> None:
    """Emit success response envelope to stdout.

    Non-dict payloads are wrapped under a ``result`` key.
    """
    payload = data if isinstance(data, dict) else {"result": data}
    response = success_response(
        data=payload,
        warnings=warnings,
        telemetry=telemetry,
        meta=meta,
        request_id=_request_id(),
    )
    emit(response.to_dict())
