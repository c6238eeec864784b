from __future__ import annotations

from dataclasses import dataclass

from scout.tools.records import ToolCallRecord


@dataclass
class TextChunk:
    """A chunk of text content from the LLM response."""

    content: str


@dataclass
class ToolCallInfo:
    """Notification that a tool is being called."""

    tool_key: str
    arguments: dict
    call_id: str


@dataclass
class ToolCallFinished:
    """A dispatched tool call reached a terminal state."""

    record: ToolCallRecord


@dataclass
class StreamDone:
    """Terminal event for a run that ended without a transport failure."""

    state: str
    stop_reason: str
    steps: int


@dataclass
class StreamError:
    """Terminal event for a run that failed in the model transport."""

    error: str
    message: str


OrchestratorEvent = TextChunk | ToolCallInfo | ToolCallFinished | StreamDone | StreamError
