"""Multi-step model/tool-call loop for one chat request.

Per-request state machine:

    idle -> generating -> (tool_calls_pending <-> generating) -> done | cancelled | failed

Text deltas stream out as soon as the model produces them. Tool calls of one
step fan out concurrently and are joined before the next step. Tool failures
come back as error records and are fed to the model; only a failure of the
model transport ends the run in ``failed``.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import AsyncIterator
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from scout.agent.events import (
    OrchestratorEvent,
    StreamDone,
    StreamError,
    TextChunk,
    ToolCallFinished,
    ToolCallInfo,
)
from scout.agent.model_client import ContentDelta, ModelClient, StreamEvent, ToolCallsComplete
from scout.agent.prompt_builder import PromptBuilder
from scout.infra.errors import ScoutError
from scout.tools.adapter import ToolSet, describe_record, parse_arguments
from scout.tools.records import ToolCallRecord, ToolCallStatus

if TYPE_CHECKING:
    from scout.results.store import ResultStore

logger = structlog.get_logger()

MAX_STEPS = 10
TRUNCATION_NOTICE = "I've reached the maximum number of tool calls. Please try again."


class OrchestratorState(StrEnum):
    idle = "idle"
    generating = "generating"
    tool_calls_pending = "tool_calls_pending"
    done = "done"
    cancelled = "cancelled"
    failed = "failed"


TERMINAL_STATES = frozenset(
    {OrchestratorState.done, OrchestratorState.cancelled, OrchestratorState.failed}
)


class StopReason(StrEnum):
    completed = "completed"
    step_bound_exceeded = "step_bound_exceeded"
    cancelled = "cancelled"
    transport_failure = "transport_failure"


class OrchestrationRun:
    """One request's pass through the loop. Streamable once."""

    def __init__(
        self,
        model_client: ModelClient,
        messages: list[dict[str, Any]],
        *,
        model: str,
        toolset: ToolSet,
        result_store: ResultStore | None,
        max_steps: int,
        temperature: float | None,
        max_tokens: int | None,
        run_id: str | None = None,
    ) -> None:
        self.id = run_id or uuid.uuid4().hex
        self.model = model
        self._model_client = model_client
        self._messages = messages
        self._toolset = toolset
        self._result_store = result_store
        self._max_steps = max_steps
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._cancel_event = asyncio.Event()
        self._state = OrchestratorState.idle
        self._stop_reason: StopReason | None = None
        self._steps = 0
        self._records: list[ToolCallRecord] = []
        self._streamed = False

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def stop_reason(self) -> StopReason | None:
        return self._stop_reason

    @property
    def steps(self) -> int:
        return self._steps

    @property
    def records(self) -> list[ToolCallRecord]:
        return list(self._records)

    @property
    def messages(self) -> list[dict[str, Any]]:
        return list(self._messages)

    @property
    def is_finished(self) -> bool:
        return self._state in TERMINAL_STATES

    def cancel(self) -> None:
        """Request cancellation.

        An in-flight model call is abandoned; tool calls already dispatched
        run to completion and their results are still published.
        """
        if not self._cancel_event.is_set():
            logger.info("orchestration_cancel_requested", run_id=self.id, state=self._state.value)
        self._cancel_event.set()

    async def stream(self) -> AsyncIterator[OrchestratorEvent]:
        """Drive the loop, yielding events. Ends with exactly one StreamDone or StreamError."""
        if self._streamed:
            raise RuntimeError(f"Run {self.id} has already been streamed")
        self._streamed = True
        tools_schema = self._toolset.schemas() or None

        while True:
            if self._cancel_event.is_set():
                yield self._finish(OrchestratorState.cancelled, StopReason.cancelled)
                return

            if self._steps >= self._max_steps:
                logger.warning("max_steps_reached", run_id=self.id, max=self._max_steps)
                yield TextChunk(content=TRUNCATION_NOTICE)
                yield self._finish(OrchestratorState.done, StopReason.step_bound_exceeded)
                return

            self._steps += 1
            self._transition(OrchestratorState.generating)

            collected_text = ""
            tool_calls: list[dict[str, str]] | None = None
            try:
                async for event in self._model_events(tools_schema):
                    if isinstance(event, ContentDelta):
                        collected_text += event.text
                        yield TextChunk(content=event.text)
                    elif isinstance(event, ToolCallsComplete):
                        tool_calls = event.tool_calls
            except Exception as e:
                yield self._fail(e)
                return

            if self._cancel_event.is_set():
                yield self._finish(OrchestratorState.cancelled, StopReason.cancelled)
                return

            # Branch: no tool calls, this is the final text response
            if not tool_calls:
                logger.info(
                    "response_complete", run_id=self.id, steps=self._steps, chars=len(collected_text)
                )
                yield self._finish(OrchestratorState.done, StopReason.completed)
                return

            self._transition(OrchestratorState.tool_calls_pending)
            for tc in tool_calls:
                if not tc.get("id"):
                    tc["id"] = f"call_{uuid.uuid4().hex[:24]}"
            self._messages.append(
                {
                    "role": "assistant",
                    # may be empty when model only returns tool_calls
                    "content": collected_text,
                    "tool_calls": [
                        {
                            "id": tc["id"],
                            "type": "function",
                            "function": {"name": tc["name"], "arguments": tc["arguments"]},
                        }
                        for tc in tool_calls
                    ],
                }
            )
            for tc in tool_calls:
                yield ToolCallInfo(
                    tool_key=tc["name"],
                    arguments=_preview_arguments(tc["arguments"]),
                    call_id=tc["id"],
                )

            records = await self._dispatch(tool_calls)

            for tc, record in zip(tool_calls, records, strict=True):
                self._records.append(record)
                yield ToolCallFinished(record=record)
                self._messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": tc["id"],
                        "content": json.dumps(record.to_model_content(), default=str),
                    }
                )

            logger.info(
                "tool_call_step",
                run_id=self.id,
                step=self._steps,
                tools_called=len(records),
                failed=sum(1 for r in records if r.status is ToolCallStatus.error),
            )

    async def _model_events(self, tools_schema: list[dict] | None) -> AsyncIterator[StreamEvent]:
        """Model stream raced against cancellation.

        Stops early, without raising, once cancel() is called.
        """
        stream = self._model_client.chat_stream_with_tools(
            self._messages,
            self.model,
            tools=tools_schema,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            while True:
                next_event = asyncio.ensure_future(anext(stream))
                done, _ = await asyncio.wait(
                    {next_event, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_event not in done:
                    next_event.cancel()
                    await asyncio.wait({next_event})
                    if not next_event.cancelled() and next_event.exception() is not None:
                        logger.debug(
                            "model_stream_error_after_cancel",
                            run_id=self.id,
                            error=str(next_event.exception()),
                        )
                    logger.info("model_stream_aborted", run_id=self.id, step=self._steps)
                    return
                try:
                    event = next_event.result()
                except StopAsyncIteration:
                    return
                yield event
        finally:
            cancel_wait.cancel()
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _dispatch(self, tool_calls: list[dict[str, str]]) -> list[ToolCallRecord]:
        """Run every call of the step concurrently and wait for all of them.

        The join is shielded: if the consuming task is cancelled, the calls
        keep running and still publish their results.
        """
        gathered = asyncio.gather(*(self._invoke(tc) for tc in tool_calls))
        return await asyncio.shield(gathered)

    async def _invoke(self, tc: dict[str, str]) -> ToolCallRecord:
        record = await self._toolset.invoke(tc["name"], tc["arguments"], call_id=tc["id"])
        logger.info("tool_call_finished", run_id=self.id, **describe_record(record))
        self._publish(record)
        return record

    def _publish(self, record: ToolCallRecord) -> None:
        if self._result_store is None or record.status is not ToolCallStatus.success:
            return
        self._result_store.add_result(
            record.id, record.tool_id, record.payload, timestamp=record.end_time
        )

    def _transition(self, state: OrchestratorState) -> None:
        logger.debug(
            "orchestrator_state", run_id=self.id, from_state=self._state.value, to_state=state.value
        )
        self._state = state

    def _finish(self, state: OrchestratorState, reason: StopReason) -> StreamDone:
        self._transition(state)
        self._stop_reason = reason
        logger.info(
            "orchestration_finished",
            run_id=self.id,
            state=state.value,
            stop_reason=reason.value,
            steps=self._steps,
            tool_calls=len(self._records),
        )
        return StreamDone(state=state.value, stop_reason=reason.value, steps=self._steps)

    def _fail(self, error: Exception) -> StreamError:
        self._transition(OrchestratorState.failed)
        self._stop_reason = StopReason.transport_failure
        code = error.code if isinstance(error, ScoutError) else "LLM_ERROR"
        logger.exception("orchestration_failed", run_id=self.id, step=self._steps, error_code=code)
        return StreamError(error=code, message=str(error))


def _preview_arguments(raw: str) -> dict:
    """Arguments for display; malformed input shows as empty (the tool call reports it)."""
    try:
        return parse_arguments(raw)
    except ScoutError:
        return {}


class ChatOrchestrator:
    """Creates OrchestrationRuns bound to a model client and prompt layers."""

    def __init__(
        self,
        model_client: ModelClient,
        *,
        max_steps: int = MAX_STEPS,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._model_client = model_client
        self._max_steps = max_steps
        self._prompt_builder = prompt_builder or PromptBuilder()

    @property
    def max_steps(self) -> int:
        return self._max_steps

    def start(
        self,
        conversation: list[dict[str, Any]],
        *,
        model: str,
        toolset: ToolSet | None = None,
        result_store: ResultStore | None = None,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        run_id: str | None = None,
    ) -> OrchestrationRun:
        """Prepare a run. Nothing is sent to the model until the run is streamed."""
        toolset = toolset if toolset is not None else ToolSet([])
        prompt = self._prompt_builder.build(toolset, system_prompt=system_prompt)
        messages: list[dict[str, Any]] = [{"role": "system", "content": prompt}]
        messages.extend(dict(m) for m in conversation)
        run = OrchestrationRun(
            self._model_client,
            messages,
            model=model,
            toolset=toolset,
            result_store=result_store,
            max_steps=self._max_steps,
            temperature=temperature,
            max_tokens=max_tokens,
            run_id=run_id,
        )
        logger.info(
            "orchestration_started",
            run_id=run.id,
            model=model,
            tool_count=len(toolset),
            message_count=len(conversation),
        )
        return run
