"""
Standard response envelopes for the JSON CLI.

Every command prints one object of this shape:

    {
        "success": bool,       # Required: operation success/failure
        "data": {...},         # Required: primary payload (error details on failure)
        "error": str | null,   # Required: error message or null on success
        "meta": {              # Required: response metadata
            "version": "response-v2",
            "request_id": "cli_abc123"?,
            "warnings": ["..."]?,
            "telemetry": { ... }?
        }
    }

Errors carry ``data.error_code`` (an ``ErrorCode``) and ``data.error_type``
(an ``ErrorType``) so callers can branch without parsing the message.
``error_from_exception`` maps the bridge's exception hierarchy onto them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from taskmaster_bridge.core.context import get_correlation_id
from taskmaster_bridge.core.errors import (
    BridgeError,
    ChannelError,
    ChannelTimeoutError,
    ChannelUnavailableError,
    FormatError,
    InvalidRequestError,
    NotFoundError,
    UnsupportedOperationError,
)

logger = logging.getLogger(__name__)

RESPONSE_VERSION = "response-v2"


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    TAG_NOT_FOUND = "TAG_NOT_FOUND"

    # Channel errors
    CHANNEL_FAILED = "CHANNEL_FAILED"
    UNAVAILABLE = "UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    UNSUPPORTED = "UNSUPPORTED"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorType(str, Enum):
    """Error categories, each with an HTTP status analog."""

    VALIDATION = "validation"  # 400 - No retry, fix input
    NOT_FOUND = "not_found"  # 404 - No retry
    UNAVAILABLE = "unavailable"  # 503 - Retry once the channel is back
    INTERNAL = "internal"  # 500


@dataclass
class ToolResponse:
    """
    Standard response structure for CLI commands.

    Attributes:
        success: Whether the operation completed successfully
        data: The primary payload (operation-specific structured data)
        error: Error message if success is False, None otherwise
        meta: Response metadata including version identifier
    """

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=lambda: {"version": RESPONSE_VERSION})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "meta": self.meta,
        }


def _build_meta(
    *,
    request_id: Optional[str] = None,
    warnings: Optional[Sequence[str]] = None,
    telemetry: Optional[Mapping[str, Any]] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Construct a metadata payload that always includes the response version.

    ``request_id`` defaults to the active correlation id.
    """
    meta: Dict[str, Any] = {"version": RESPONSE_VERSION}

    effective_request_id = request_id or get_correlation_id() or None
    if effective_request_id:
        meta["request_id"] = effective_request_id
    if warnings:
        meta["warnings"] = list(warnings)
    if telemetry:
        meta["telemetry"] = dict(telemetry)
    if extra:
        meta.update(dict(extra))
    return meta


def success_response(
    data: Optional[Mapping[str, Any]] = None,
    *,
    warnings: Optional[Sequence[str]] = None,
    telemetry: Optional[Mapping[str, Any]] = None,
    request_id: Optional[str] = None,
    meta: Optional[Mapping[str, Any]] = None,
    **fields: Any,
) -> ToolResponse:
    """Create a standardized success response.

    Args:
        data: Optional mapping used as the base payload.
        warnings: Non-fatal issues to surface in ``meta.warnings``.
        telemetry: Timing/performance metadata.
        request_id: Correlation identifier propagated through logs.
        meta: Arbitrary extra metadata to merge into ``meta``.
        **fields: Additional payload fields (shorthand for ``data.update``).
    """
    payload: Dict[str, Any] = {}
    if data:
        payload.update(dict(data))
    if fields:
        payload.update(fields)

    meta_payload = _build_meta(
        request_id=request_id,
        warnings=warnings,
        telemetry=telemetry,
        extra=meta,
    )
    return ToolResponse(success=True, data=payload, error=None, meta=meta_payload)


def error_response(
    message: str,
    *,
    data: Optional[Mapping[str, Any]] = None,
    error_code: Optional[Union[ErrorCode, str]] = None,
    error_type: Optional[Union[ErrorType, str]] = None,
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
    request_id: Optional[str] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> ToolResponse:
    """Create a standardized error response.

    Example:
        >>> error_response(
        ...     "Task with ID 7 not found.",
        ...     error_code=ErrorCode.TASK_NOT_FOUND,
        ...     error_type=ErrorType.NOT_FOUND,
        ...     remediation="Run 'tasks list' to see valid ids",
        ... )
    """
    payload: Dict[str, Any] = {}
    if data:
        payload.update(dict(data))

    code = error_code if error_code is not None else ErrorCode.INTERNAL_ERROR
    kind = error_type if error_type is not None else ErrorType.INTERNAL

    payload.setdefault("error_code", code.value if isinstance(code, Enum) else code)
    payload.setdefault("error_type", kind.value if isinstance(kind, Enum) else kind)
    if remediation is not None:
        payload.setdefault("remediation", remediation)
    if details:
        payload.setdefault("details", dict(details))

    meta_payload = _build_meta(request_id=request_id, extra=meta)
    return ToolResponse(success=False, data=payload, error=message, meta=meta_payload)


# ---------------------------------------------------------------------------
# Exception mapping
# ---------------------------------------------------------------------------


def error_from_exception(exc: BaseException) -> ToolResponse:
    """Map a bridge exception onto an error envelope."""
    message = str(exc) or type(exc).__name__

    if isinstance(exc, NotFoundError):
        code = {
            "task": ErrorCode.TASK_NOT_FOUND,
            "subtask": ErrorCode.TASK_NOT_FOUND,
            "tag": ErrorCode.TAG_NOT_FOUND,
        }.get(exc.resource, ErrorCode.NOT_FOUND)
        details = {"resource": exc.resource}
        if exc.task_id:
            details["task_id"] = exc.task_id
        return error_response(
            message,
            error_code=code,
            error_type=ErrorType.NOT_FOUND,
            details=details,
        )

    if isinstance(exc, InvalidRequestError):
        return error_response(
            message, error_code=ErrorCode.VALIDATION_ERROR, error_type=ErrorType.VALIDATION
        )

    if isinstance(exc, FormatError):
        return error_response(
            message,
            error_code=ErrorCode.INVALID_FORMAT,
            error_type=ErrorType.VALIDATION,
            details={"path": exc.path} if exc.path else None,
            remediation="Check that tasks.json is valid JSON in a supported layout.",
        )

    if isinstance(exc, ChannelError):
        details: Dict[str, Any] = {}
        if exc.channel:
            details["channel"] = exc.channel
        if exc.operation:
            details["operation"] = exc.operation
        if isinstance(exc, ChannelTimeoutError):
            code = ErrorCode.TIMEOUT
            if exc.timeout_seconds is not None:
                details["timeout_seconds"] = exc.timeout_seconds
        elif isinstance(exc, ChannelUnavailableError):
            code = ErrorCode.UNAVAILABLE
        elif isinstance(exc, UnsupportedOperationError):
            code = ErrorCode.UNSUPPORTED
        else:
            code = ErrorCode.CHANNEL_FAILED
        return error_response(
            message,
            error_code=code,
            error_type=ErrorType.UNAVAILABLE,
            details=details or None,
            remediation="Make sure task-master is installed (or npx is on PATH).",
        )

    logger.debug("Unmapped exception %s", type(exc).__name__)
    return error_response(message)
