from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Body of POST /api/ai/chat. Accepts camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    messages: list[ChatMessage] = Field(..., min_length=1)
    model: str | None = None
    system_prompt: str | None = None
    auto_route: bool = True
    max_tokens: int | None = Field(None, gt=0)  # None → ORCHESTRATOR_DEFAULT_MAX_TOKENS
    temperature: float | None = Field(None, ge=0.0, le=1.0)
    enable_tools: bool = True
    tool_categories: list[str] | None = None
    user_id: str | None = None
    session_id: str | None = None
    request_id: str | None = None

    @field_validator("model", "system_prompt", "user_id", "session_id", "request_id", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None  # empty string → use default
        return v

    def last_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""


class TextFrame(BaseModel):
    type: Literal["text"] = "text"
    content: str


class ToolCallFrame(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    tool_key: str
    arguments: dict
    call_id: str


class ToolResultFrame(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    record_id: str
    call_id: str
    tool_id: str
    status: str
    duration_ms: float | None = None
    payload: dict | None = None
    error: dict | None = None


class DoneFrame(BaseModel):
    type: Literal["done"] = "done"
    request_id: str
    session_id: str
    model: str
    state: str
    stop_reason: str
    steps: int


class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    error: str
    message: str


class StartFrame(BaseModel):
    """First frame of every chat stream: identifiers the client needs to cancel or sync."""

    type: Literal["start"] = "start"
    request_id: str
    session_id: str
    model: str
    routing: dict | None = None


class ErrorPayload(BaseModel):
    """Non-streamed error body."""

    error: str
    message: str


class ResultChangeFrame(BaseModel):
    """WebSocket frame for the result store subscription."""

    type: Literal["snapshot", "added", "acknowledged", "cleared"]
    session_id: str
    results: list[dict[str, Any]] = Field(default_factory=list)


def to_ndjson(frame: BaseModel) -> str:
    return frame.model_dump_json() + "\n"


class ResultAck(BaseModel):
    """Client → server on the results WebSocket."""

    type: Literal["ack"] = "ack"
    result_id: str
