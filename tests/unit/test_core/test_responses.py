"""
Tests for the JSON response envelope.

Tests cover:
- success_response / error_response shape and metadata
- request_id defaulting to the active correlation id
- error_from_exception mapping of every bridge error
"""

import pytest

from taskmaster_bridge.core.context import operation_context
from taskmaster_bridge.core.errors import (
    ChannelError,
    ChannelTimeoutError,
    ChannelUnavailableError,
    FormatError,
    InvalidRequestError,
    NotFoundError,
    UnsupportedOperationError,
)
from taskmaster_bridge.core.responses import (
    RESPONSE_VERSION,
    ErrorCode,
    ErrorType,
    error_from_exception,
    error_response,
    success_response,
)


class TestSuccessResponse:
    """Tests for success_response()."""

    def test_basic_envelope(self):
        response = success_response({"count": 2}, tag="master").to_dict()
        assert response == {
            "success": True,
            "data": {"count": 2, "tag": "master"},
            "error": None,
            "meta": {"version": RESPONSE_VERSION},
        }

    def test_warnings_and_telemetry(self):
        response = success_response(warnings=["version drift"], telemetry={"duration_ms": 3.5})
        assert response.meta["warnings"] == ["version drift"]
        assert response.meta["telemetry"] == {"duration_ms": 3.5}

    def test_request_id_from_context(self):
        with operation_context("list", correlation_id="cli_abc123"):
            response = success_response()
        assert response.meta["request_id"] == "cli_abc123"

    def test_explicit_request_id_wins(self):
        with operation_context("list", correlation_id="cli_abc123"):
            response = success_response(request_id="req_1")
        assert response.meta["request_id"] == "req_1"

    def test_no_request_id_outside_operation(self):
        assert "request_id" not in success_response().meta

    def test_extra_meta(self):
        assert success_response(meta={"channel": "file"}).meta["channel"] == "file"


class TestErrorResponse:
    """Tests for error_response()."""

    def test_defaults_to_internal(self):
        response = error_response("boom")
        assert not response.success
        assert response.error == "boom"
        assert response.data == {"error_code": "INTERNAL_ERROR", "error_type": "internal"}

    def test_codes_remediation_and_details(self):
        response = error_response(
            "Task 7 not found",
            error_code=ErrorCode.TASK_NOT_FOUND,
            error_type=ErrorType.NOT_FOUND,
            remediation="Run 'tasks list'",
            details={"task_id": "7"},
        )
        assert response.data["error_code"] == "TASK_NOT_FOUND"
        assert response.data["error_type"] == "not_found"
        assert response.data["remediation"] == "Run 'tasks list'"
        assert response.data["details"] == {"task_id": "7"}
        assert response.meta["version"] == RESPONSE_VERSION

    def test_string_codes_accepted(self):
        assert error_response("x", error_code="CUSTOM").data["error_code"] == "CUSTOM"


class TestErrorFromException:
    """Tests for error_from_exception()."""

    @pytest.mark.parametrize(
        "exc,code,error_type",
        [
            (NotFoundError("no task", task_id="9"), "TASK_NOT_FOUND", "not_found"),
            (NotFoundError("no subtask", resource="subtask"), "TASK_NOT_FOUND", "not_found"),
            (NotFoundError("no tag", resource="tag"), "TAG_NOT_FOUND", "not_found"),
            (NotFoundError("no file", resource="document"), "NOT_FOUND", "not_found"),
            (InvalidRequestError("bad"), "VALIDATION_ERROR", "validation"),
            (FormatError("bad json", path="/x/tasks.json"), "INVALID_FORMAT", "validation"),
            (ChannelTimeoutError("slow", timeout_seconds=30), "TIMEOUT", "unavailable"),
            (ChannelUnavailableError("missing"), "UNAVAILABLE", "unavailable"),
            (UnsupportedOperationError("nope"), "UNSUPPORTED", "unavailable"),
            (ChannelError("failed", channel="cli"), "CHANNEL_FAILED", "unavailable"),
            (RuntimeError("surprise"), "INTERNAL_ERROR", "internal"),
        ],
    )
    def test_mapping(self, exc, code, error_type):
        response = error_from_exception(exc)
        assert not response.success
        assert response.data["error_code"] == code
        assert response.data["error_type"] == error_type

    def test_not_found_details(self):
        response = error_from_exception(NotFoundError("Task 9 not found", task_id="9"))
        assert response.error == "Task 9 not found"
        assert response.data["details"] == {"resource": "task", "task_id": "9"}

    def test_channel_details(self):
        exc = ChannelTimeoutError("slow", timeout_seconds=30, channel="mcp", operation="set_status")
        details = error_from_exception(exc).data["details"]
        assert details == {"channel": "mcp", "operation": "set_status", "timeout_seconds": 30}

    def test_format_error_path(self):
        response = error_from_exception(FormatError("bad", path="/x/tasks.json"))
        assert response.data["details"] == {"path": "/x/tasks.json"}
        assert "remediation" in response.data

    def test_empty_message_uses_type_name(self):
        assert error_from_exception(RuntimeError()).error == "RuntimeError"
