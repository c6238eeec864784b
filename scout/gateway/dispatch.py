"""Core dispatch: model selection → context → tool set → result store → orchestration run.

Kept free of HTTP concerns so any transport can drive a chat turn. The caller
maps OrchestratorEvents to its own wire format.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass

import structlog

from scout.agent.events import OrchestratorEvent
from scout.agent.orchestrator import ChatOrchestrator, OrchestrationRun
from scout.agent.router import ModelTier, RoutingDecision, TaskRouter
from scout.gateway.protocol import ChatRequest
from scout.infra.errors import GatewayError
from scout.results.store import ResultStoreRegistry
from scout.tools.adapter import ToolAdapter
from scout.tools.context import create_execution_context

logger = structlog.get_logger()


class ActiveRuns:
    """Request id → in-flight OrchestrationRun, for cancellation."""

    def __init__(self) -> None:
        self._runs: dict[str, OrchestrationRun] = {}
        self._lock = threading.Lock()

    def add(self, run: OrchestrationRun) -> None:
        with self._lock:
            if run.id in self._runs:
                raise GatewayError(
                    f"Request '{run.id}' is already running", code="REQUEST_ID_IN_USE"
                )
            self._runs[run.id] = run

    def remove(self, request_id: str) -> None:
        with self._lock:
            self._runs.pop(request_id, None)

    def get(self, request_id: str) -> OrchestrationRun | None:
        return self._runs.get(request_id)

    def cancel(self, request_id: str) -> bool:
        run = self.get(request_id)
        if run is None:
            return False
        run.cancel()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            runs = list(self._runs.values())
        for run in runs:
            run.cancel()
        return len(runs)

    def __len__(self) -> int:
        return len(self._runs)


@dataclass
class ChatDispatch:
    run: OrchestrationRun
    session_id: str
    routing: RoutingDecision | None


async def select_model(
    request: ChatRequest, router: TaskRouter
) -> tuple[str, RoutingDecision | None]:
    """Requested model wins; otherwise auto-route on the latest user message; else fast tier."""
    if request.model:
        return request.model, None
    query = request.last_user_message()
    if request.auto_route and query:
        decision = await router.route(query)
        return decision.model, decision
    return router.model_for(ModelTier.fast), None


async def start_chat(
    request: ChatRequest,
    *,
    adapter: ToolAdapter,
    router: TaskRouter,
    orchestrator: ChatOrchestrator,
    result_stores: ResultStoreRegistry,
    active_runs: ActiveRuns,
    default_permissions: Iterable[str] | None = None,
    default_max_tokens: int = 4096,
    default_temperature: float = 0.7,
) -> ChatDispatch:
    """Prepare one chat turn and register it as active.

    Raises GatewayError(REQUEST_ID_IN_USE) when the request id is taken.
    """
    request_id = request.request_id or uuid.uuid4().hex
    if active_runs.get(request_id) is not None:
        raise GatewayError(f"Request '{request_id}' is already running", code="REQUEST_ID_IN_USE")

    model, routing = await select_model(request, router)

    context = create_execution_context(
        caller_id=request.user_id,
        session_id=request.session_id,
        permissions=default_permissions,
    )
    toolset = None
    if request.enable_tools:
        toolset = adapter.build_toolset(context, request.tool_categories)

    store = result_stores.get_or_create(context.session_id)
    run = orchestrator.start(
        [m.model_dump() for m in request.messages],
        model=model,
        toolset=toolset,
        result_store=store,
        system_prompt=request.system_prompt,
        temperature=(
            request.temperature if request.temperature is not None else default_temperature
        ),
        max_tokens=request.max_tokens or default_max_tokens,
        run_id=request_id,
    )
    active_runs.add(run)

    logger.info(
        "chat_dispatched",
        request_id=run.id,
        session_id=context.session_id,
        caller_id=context.caller_id,
        model=model,
        source="request" if request.model else ("router" if routing else "default"),
        tools=len(toolset) if toolset is not None else 0,
    )
    return ChatDispatch(run=run, session_id=context.session_id, routing=routing)


async def dispatch_chat(
    dispatch: ChatDispatch, *, active_runs: ActiveRuns
) -> AsyncIterator[OrchestratorEvent]:
    """Stream the run's events, releasing its active-run slot when it ends."""
    try:
        async for event in dispatch.run.stream():
            yield event
    finally:
        active_runs.remove(dispatch.run.id)
        if not dispatch.run.is_finished:
            # Consumer went away mid-stream; dispatched tools still finish and publish.
            logger.info("chat_stream_abandoned", request_id=dispatch.run.id)
