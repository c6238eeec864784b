"""Shared pytest fixtures for Scout tests.

FakeModelClient replays scripted stream sequences, one per model call, so
the orchestrator can be driven without network access.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import pytest

from scout.agent.model_client import ContentDelta, ModelClient, StreamEvent, ToolCallsComplete
from scout.tools.adapter import ToolAdapter
from scout.tools.context import ExecutionContext, create_execution_context
from scout.tools.registry import ToolRegistry


class FakeModelClient(ModelClient):
    """Scripted model client.

    Each call to chat_stream_with_tools consumes the next sequence; once the
    script runs out the last sequence repeats. An Exception in a sequence is
    raised at that point of the stream.
    """

    def __init__(self, *sequences: list[StreamEvent | Exception], chat_reply: str = "") -> None:
        self._responses: list[list[StreamEvent | Exception]] = list(sequences)
        self._call_idx = 0
        self.calls: list[dict[str, Any]] = []
        self.chat_reply = chat_reply
        self.chat_calls: list[list[dict[str, Any]]] = []

    def set_responses(self, *sequences: list[StreamEvent | Exception]) -> None:
        self._responses = list(sequences)
        self._call_idx = 0

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.chat_calls.append(messages)
        return self.chat_reply

    async def chat_stream_with_tools(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        tools: list[dict] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(
            {
                "messages": [dict(m) for m in messages],
                "model": model,
                "tools": tools,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if not self._responses:
            sequence: list[StreamEvent | Exception] = [ContentDelta(text="")]
        else:
            sequence = self._responses[min(self._call_idx, len(self._responses) - 1)]
        self._call_idx += 1
        for event in sequence:
            if isinstance(event, Exception):
                raise event
            yield event


def tool_call(name: str, arguments: dict | str | None = None, call_id: str = "call_1") -> dict:
    """One accumulated tool call as produced by the model transport."""
    if arguments is None:
        raw = "{}"
    elif isinstance(arguments, str):
        raw = arguments
    else:
        raw = json.dumps(arguments)
    return {"id": call_id, "name": name, "arguments": raw}


def tool_calls(*calls: dict) -> ToolCallsComplete:
    return ToolCallsComplete(tool_calls=list(calls))


@pytest.fixture()
def registry() -> ToolRegistry:
    reg = ToolRegistry()
    reg.register_all()
    return reg


@pytest.fixture()
def adapter(registry: ToolRegistry) -> ToolAdapter:
    return ToolAdapter(registry)


@pytest.fixture()
def context() -> ExecutionContext:
    return create_execution_context(caller_id="user_1", session_id="sess_1")
