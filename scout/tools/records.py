from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class ToolCallStatus(StrEnum):
    pending = "pending"
    success = "success"
    error = "error"


@dataclass(frozen=True)
class ToolCallError:
    """Structured tool failure surfaced to the model as data."""

    code: str
    message: str
    details: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error_code": self.code, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


@dataclass(frozen=True)
class ToolCallRecord:
    """One dispatched tool call.

    Pending records transition exactly once, to success or error, through
    succeed()/fail(), which return a new record. Terminal records reject
    further transitions.
    """

    tool_id: str
    call_id: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ToolCallStatus = ToolCallStatus.pending
    start_time: int = field(default_factory=now_ms)
    end_time: int | None = None
    duration_ms: float | None = None
    payload: dict | None = None
    error: ToolCallError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not ToolCallStatus.pending

    def succeed(self, payload: dict, *, duration_ms: float) -> ToolCallRecord:
        self._ensure_pending()
        return replace(
            self,
            status=ToolCallStatus.success,
            end_time=now_ms(),
            duration_ms=duration_ms,
            payload=payload,
        )

    def fail(self, error: ToolCallError, *, duration_ms: float) -> ToolCallRecord:
        self._ensure_pending()
        return replace(
            self,
            status=ToolCallStatus.error,
            end_time=now_ms(),
            duration_ms=duration_ms,
            error=error,
        )

    def to_model_content(self) -> dict[str, Any]:
        """Outcome as fed back into the conversation as a tool message."""
        if self.status is ToolCallStatus.success:
            return {"ok": True, "tool_id": self.tool_id, "data": self.payload}
        if self.error is None:
            return {"ok": False, "tool_id": self.tool_id, "error_code": "PENDING"}
        return {"ok": False, "tool_id": self.tool_id, **self.error.to_dict()}

    def _ensure_pending(self) -> None:
        if self.is_terminal:
            raise ValueError(
                f"ToolCallRecord {self.id} already terminal ({self.status.value})"
            )
