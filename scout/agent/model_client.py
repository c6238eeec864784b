from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from openai import (
    NOT_GIVEN,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from scout.infra.errors import LLMError

logger = structlog.get_logger()

T = TypeVar("T")

_RETRYABLE = (APIConnectionError, APITimeoutError, RateLimitError)


@dataclass
class ContentDelta:
    """A chunk of streamed text content."""

    text: str


@dataclass
class ToolCallsComplete:
    """Accumulated tool calls from a completed stream."""

    tool_calls: list[dict[str, str]] = field(default_factory=list)


StreamEvent = ContentDelta | ToolCallsComplete


class ModelClient(ABC):
    """Transport to a chat-completions provider, as seen by the router and orchestrator."""

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """One non-streaming completion; returns the assistant text."""
        ...

    @abstractmethod
    def chat_stream_with_tools(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        tools: list[dict] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn.

        Text arrives as ContentDelta while it streams. Requested tool calls
        arrive once, as a ToolCallsComplete after the provider stream closes.
        """
        ...


def _first_choice(response, *, context: str = ""):
    if not response.choices:
        raise LLMError(f"Empty choices from provider ({context})")
    return response.choices[0]


def _optional_params(temperature: float | None, max_tokens: int | None) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if temperature is not None:
        params["temperature"] = temperature
    if max_tokens is not None:
        params["max_tokens"] = max_tokens
    return params


def _tool_call_slot(
    tc_delta, pending: dict[int, dict[str, str]], last_slot: int | None
) -> int:
    """Pick the accumulator slot for a streamed tool-call fragment.

    Providers that omit index send one whole call per fragment, so a
    fragment carrying a fresh id opens a new slot; one without an id
    continues the previous slot.
    """
    if tc_delta.index is not None:
        return tc_delta.index
    if tc_delta.id or last_slot is None:
        slot = len(pending)
        while slot in pending:
            slot += 1
        return slot
    return last_slot


class OpenAICompatModelClient(ModelClient):
    """ModelClient over AsyncOpenAI, pointed at xAI or any compatible base_url.

    Connection errors, timeouts and 429s back off and retry up to
    max_retries times; other provider errors surface as LLMError at once.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        # The SDK's own retries stay off so backoff is logged here
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self._max_retries = max_retries
        self._base_delay = base_delay

    def _backoff(self, attempt: int) -> float:
        return self._base_delay * (2**attempt) + random.uniform(0, 0.5)

    async def _retry_call(
        self,
        coro_factory: Callable[[], Coroutine[Any, Any, T]],
        *,
        context: str = "",
    ) -> T:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                return await coro_factory()
            except _RETRYABLE as e:
                if attempt + 1 == attempts:
                    raise LLMError(f"LLM call failed after {attempts} attempts: {e}") from e
                delay = self._backoff(attempt)
                logger.warning(
                    "llm_retry",
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    delay=round(delay, 2),
                    error=str(e),
                    context=context,
                )
                await asyncio.sleep(delay)
            except APIStatusError as e:
                raise LLMError(f"LLM API error: {e.status_code} {e.message}") from e
        raise LLMError("Retry loop exhausted")  # pragma: no cover

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        logger.debug("chat_request", model=model, message_count=len(messages))
        response = await self._retry_call(
            lambda: self._client.chat.completions.create(
                model=model,
                messages=messages,
                **_optional_params(temperature, max_tokens),
            ),
            context="chat",
        )
        content = _first_choice(response, context="chat").message.content or ""
        logger.debug("chat_response", chars=len(content))
        return content

    async def chat_stream_with_tools(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        tools: list[dict] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a turn, concatenating each tool call's argument fragments.

        Only opening the stream is retried. A connection drop mid-stream
        raises LLMError since text may already have been yielded.
        """
        logger.debug(
            "chat_stream_with_tools_request",
            model=model,
            message_count=len(messages),
            tool_count=len(tools) if tools else 0,
        )
        stream = await self._retry_call(
            lambda: self._client.chat.completions.create(
                model=model,
                messages=messages,
                tools=tools if tools else NOT_GIVEN,
                stream=True,
                **_optional_params(temperature, max_tokens),
            ),
            context="chat_stream_with_tools",
        )

        calls: dict[int, dict[str, str]] = {}
        last_slot: int | None = None
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield ContentDelta(text=delta.content)
                for tc_delta in delta.tool_calls or ():
                    last_slot = _tool_call_slot(tc_delta, calls, last_slot)
                    entry = calls.setdefault(last_slot, {"id": "", "name": "", "arguments": ""})
                    if tc_delta.id:
                        entry["id"] = tc_delta.id
                    function = tc_delta.function
                    if function is not None:
                        if function.name:
                            entry["name"] = function.name
                        if function.arguments:
                            entry["arguments"] += function.arguments
        except (APIConnectionError, APITimeoutError) as e:
            raise LLMError(f"LLM stream interrupted: {e}") from e

        if calls:
            yield ToolCallsComplete(tool_calls=[calls[i] for i in sorted(calls)])
