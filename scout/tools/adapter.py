"""Turns registered tools into the per-turn, invocable tool set handed to the model.

Every invocation returns a terminal ToolCallRecord. Tool-level failures
(unknown tool, invalid input, missing permission, business-logic exception)
become error records; they never propagate past this module.
"""

from __future__ import annotations

import json
import threading
import time
from collections import deque
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from scout.infra.errors import (
    ToolError,
    ToolInputInvalidError,
    ToolNotFoundError,
    ToolPermissionDeniedError,
    ToolRuntimeError,
)
from scout.tools.base import BaseTool, ToolCategory, ToolDefinition
from scout.tools.context import ExecutionContext
from scout.tools.records import ToolCallError, ToolCallRecord
from scout.tools.registry import ToolRegistry

logger = structlog.get_logger()


def parse_arguments(raw: str | dict | None) -> dict:
    """Parse model-supplied arguments into a dict.

    Raises ToolInputInvalidError on malformed JSON or non-object payloads.
    Empty input is treated as an empty object.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ToolInputInvalidError(f"Invalid JSON arguments: {e}") from e
    if not isinstance(parsed, dict):
        raise ToolInputInvalidError(f"Expected dict arguments, got {type(parsed).__name__}")
    return parsed


@dataclass
class ToolUsage:
    calls: int = 0
    failures: int = 0
    total_duration_ms: float = 0.0

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.calls if self.calls else 0.0


class ToolUsageTracker:
    """Process-wide timing and call-rate bookkeeping for tools.

    Advisory only: over-estimate durations and over-limit call rates are
    logged, never blocked.
    """

    def __init__(self, *, window_seconds: float = 60.0) -> None:
        self._window = window_seconds
        self._usage: dict[str, ToolUsage] = {}
        self._calls: dict[tuple[str, str], deque[float]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def note_call(self, definition: ToolDefinition, caller_id: str) -> int:
        """Record a call start. Returns calls by this caller in the current window."""
        now = time.monotonic()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep_locked(now)
            window = self._calls.setdefault((caller_id, definition.id), deque())
            while window and now - window[0] >= self._window:
                window.popleft()
            window.append(now)
            count = len(window)
        limit = definition.rate_limit_per_minute
        if limit is not None and count > limit:
            logger.warning(
                "tool_rate_limit_exceeded",
                tool_id=definition.id,
                caller_id=caller_id,
                calls_in_window=count,
                limit=limit,
            )
        return count

    def _sweep_locked(self, now: float) -> None:
        # Drop (caller, tool) windows whose newest call has aged out
        stale = [key for key, window in self._calls.items() if now - window[-1] >= self._window]
        for key in stale:
            del self._calls[key]
        self._next_sweep = now + self._window

    def note_result(self, definition: ToolDefinition, record: ToolCallRecord) -> None:
        duration = record.duration_ms or 0.0
        with self._lock:
            usage = self._usage.setdefault(definition.id, ToolUsage())
            usage.calls += 1
            usage.total_duration_ms += duration
            if record.error is not None:
                usage.failures += 1
        estimate = definition.estimated_duration_ms
        if estimate is not None and duration > estimate:
            logger.warning(
                "tool_slower_than_estimate",
                tool_id=definition.id,
                duration_ms=round(duration, 1),
                estimated_ms=estimate,
            )

    def usage(self, tool_id: str) -> ToolUsage:
        with self._lock:
            usage = self._usage.get(tool_id, ToolUsage())
            return ToolUsage(usage.calls, usage.failures, usage.total_duration_ms)


class InvocableTool:
    """A registered tool bound to one request's ExecutionContext."""

    def __init__(
        self,
        tool: BaseTool,
        context: ExecutionContext,
        tracker: ToolUsageTracker,
    ) -> None:
        self._tool = tool
        self._context = context
        self._tracker = tracker

    @property
    def definition(self) -> ToolDefinition:
        return self._tool.definition

    @property
    def key(self) -> str:
        return self._tool.definition.key

    def schema(self) -> dict:
        """OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.key,
                "description": self.definition.description,
                "parameters": self._tool.parameters,
            },
        }

    async def __call__(
        self, arguments: str | dict | None, *, call_id: str = ""
    ) -> ToolCallRecord:
        definition = self.definition
        record = ToolCallRecord(tool_id=definition.id, call_id=call_id)
        self._tracker.note_call(definition, self._context.caller_id)
        started = time.perf_counter()
        try:
            payload = await self._run(arguments)
        except ToolError as e:
            record = record.fail(
                ToolCallError(code=e.code, message=str(e), details=e.details),
                duration_ms=_elapsed_ms(started),
            )
            logger.warning(
                "tool_call_rejected",
                tool_id=definition.id,
                call_id=call_id,
                error_code=e.code,
                error=str(e),
            )
        else:
            record = record.succeed(payload, duration_ms=_elapsed_ms(started))
            logger.info(
                "tool_executed",
                tool_id=definition.id,
                call_id=call_id,
                duration_ms=round(record.duration_ms, 1),
            )
        self._tracker.note_result(definition, record)
        return record

    async def _run(self, arguments: str | dict | None) -> dict:
        definition = self.definition
        parsed = parse_arguments(arguments)
        try:
            validated = self._tool.input_model.model_validate(parsed)
        except ValidationError as e:
            raise ToolInputInvalidError(
                f"Input validation failed for {definition.id}",
                details=e.errors(include_url=False, include_context=False),
            ) from e

        if not self._context.allows(definition.required_permission):
            raise ToolPermissionDeniedError(
                f"Permission denied: {definition.id} requires "
                f"{definition.required_permission.value}"
            )

        try:
            result = await self._tool.execute(validated, self._context)
        except ToolError:
            raise
        except Exception as e:
            logger.exception("tool_execution_failed", tool_id=definition.id)
            raise ToolRuntimeError(f"Tool {definition.id} failed: {e}") from e
        if not isinstance(result, dict):
            raise ToolRuntimeError(
                f"Tool {definition.id} returned {type(result).__name__}, expected dict"
            )
        return result


class ToolSet(Mapping[str, InvocableTool]):
    """Read-only mapping of model-facing key to invocable tool for one turn."""

    def __init__(self, tools: Iterable[InvocableTool]) -> None:
        self._tools = {t.key: t for t in tools}

    def __getitem__(self, key: str) -> InvocableTool:
        return self._tools[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self) -> list[dict]:
        return [t.schema() for t in self._tools.values()]

    def categories(self) -> set[str]:
        return {t.definition.category.value for t in self._tools.values()}

    async def invoke(
        self, key: str, arguments: str | dict | None, *, call_id: str = ""
    ) -> ToolCallRecord:
        """Invoke a tool by key. Unknown keys yield a TOOL_NOT_FOUND error record."""
        tool = self._tools.get(key)
        if tool is None:
            error = ToolNotFoundError(key)
            logger.warning("unknown_tool", tool_key=key, call_id=call_id)
            record = ToolCallRecord(tool_id=key, call_id=call_id)
            return record.fail(
                ToolCallError(code=error.code, message=str(error)), duration_ms=0.0
            )
        return await tool(arguments, call_id=call_id)


class ToolAdapter:
    """Builds per-turn ToolSets from the registry."""

    def __init__(
        self,
        registry: ToolRegistry,
        usage_tracker: ToolUsageTracker | None = None,
    ) -> None:
        self._registry = registry
        self._tracker = usage_tracker or ToolUsageTracker()

    @property
    def usage_tracker(self) -> ToolUsageTracker:
        return self._tracker

    def build_toolset(
        self,
        context: ExecutionContext,
        categories: Iterable[ToolCategory | str] | None = None,
    ) -> ToolSet:
        """Expose tools the context may run, optionally limited to categories.

        Unknown category names are ignored (logged).
        """
        tools = self._registry.list_tools()
        if categories is not None:
            categories = list(categories)
            allowed: set[ToolCategory] = set()
            for c in categories:
                try:
                    allowed.add(ToolCategory(c))
                except ValueError:
                    logger.warning("unknown_tool_category", category=str(c))
            tools = [t for t in tools if t.definition.category in allowed]

        exposed = [
            InvocableTool(t, context, self._tracker)
            for t in tools
            if context.allows(t.definition.required_permission)
        ]
        logger.debug(
            "toolset_built",
            session_id=context.session_id,
            exposed=len(exposed),
            categories=sorted(str(c) for c in categories) if categories is not None else None,
        )
        return ToolSet(exposed)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def describe_record(record: ToolCallRecord) -> dict[str, Any]:
    """Log-friendly summary of a record."""
    return {
        "record_id": record.id,
        "tool_id": record.tool_id,
        "status": record.status.value,
        "duration_ms": record.duration_ms,
        "error_code": record.error.code if record.error else None,
    }
