"""Tests for ToolCallRecord transitions and model-facing content."""

from __future__ import annotations

import pytest

from scout.tools.records import ToolCallError, ToolCallRecord, ToolCallStatus


def test_new_record_is_pending():
    record = ToolCallRecord(tool_id="utility.current_time", call_id="call_1")
    assert record.status is ToolCallStatus.pending
    assert not record.is_terminal
    assert record.end_time is None
    assert record.id


def test_succeed_returns_new_terminal_record():
    record = ToolCallRecord(tool_id="utility.current_time")
    done = record.succeed({"time": "now"}, duration_ms=1.5)
    assert done is not record
    assert done.status is ToolCallStatus.success
    assert done.payload == {"time": "now"}
    assert done.end_time is not None and done.end_time >= done.start_time
    assert done.id == record.id
    assert record.status is ToolCallStatus.pending


def test_terminal_record_rejects_transitions():
    done = ToolCallRecord(tool_id="x.y").fail(
        ToolCallError(code="EXECUTION_ERROR", message="boom"), duration_ms=0.0
    )
    with pytest.raises(ValueError, match="already terminal"):
        done.succeed({}, duration_ms=0.0)
    with pytest.raises(ValueError, match="already terminal"):
        done.fail(ToolCallError(code="X", message="again"), duration_ms=0.0)


def test_model_content_success():
    done = ToolCallRecord(tool_id="x.y").succeed({"n": 1}, duration_ms=0.0)
    assert done.to_model_content() == {"ok": True, "tool_id": "x.y", "data": {"n": 1}}


def test_model_content_error_includes_details():
    error = ToolCallError(code="INVALID_INPUT", message="bad", details=[{"loc": ["arv"]}])
    done = ToolCallRecord(tool_id="x.y").fail(error, duration_ms=0.0)
    assert done.to_model_content() == {
        "ok": False,
        "tool_id": "x.y",
        "error_code": "INVALID_INPUT",
        "message": "bad",
        "details": [{"loc": ["arv"]}],
    }
