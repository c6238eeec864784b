from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from scout.agent.events import (
    OrchestratorEvent,
    StreamDone,
    StreamError,
    TextChunk,
    ToolCallFinished,
    ToolCallInfo,
)
from scout.agent.model_client import OpenAICompatModelClient
from scout.agent.orchestrator import ChatOrchestrator
from scout.agent.prompt_builder import PromptBuilder
from scout.agent.router import TaskRouter
from scout.config.settings import GatewaySettings, get_settings
from scout.gateway.dispatch import ActiveRuns, ChatDispatch, dispatch_chat, start_chat
from scout.gateway.protocol import (
    ChatRequest,
    DoneFrame,
    ErrorFrame,
    ErrorPayload,
    ResultAck,
    ResultChangeFrame,
    StartFrame,
    TextFrame,
    ToolCallFrame,
    ToolResultFrame,
    to_ndjson,
)
from scout.infra.errors import GatewayError
from scout.infra.logging import setup_logging
from scout.results.store import ChangeKind, ResultChange, ResultStore, ResultStoreRegistry
from scout.tools.adapter import ToolAdapter, ToolUsageTracker
from scout.tools.registry import ToolRegistry

logger = structlog.get_logger()

NDJSON_MEDIA_TYPE = "application/x-ndjson"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize shared state on startup."""
    settings = get_settings()
    setup_logging(json_output=settings.logging.json_output, log_level=settings.logging.level)

    tool_registry = ToolRegistry()
    tool_count = tool_registry.register_all()

    tool_adapter = ToolAdapter(
        tool_registry,
        ToolUsageTracker(window_seconds=settings.tools.rate_window_seconds),
    )

    model_client = OpenAICompatModelClient(
        api_key=settings.xai.api_key,
        base_url=settings.xai.base_url,
        max_retries=settings.xai.max_retries,
    )
    router = TaskRouter.from_settings(settings.router, settings.xai, model_client)
    orchestrator = ChatOrchestrator(
        model_client,
        max_steps=settings.orchestrator.max_steps,
        prompt_builder=PromptBuilder(settings.orchestrator.base_prompt),
    )

    app.state.settings = settings
    app.state.tool_registry = tool_registry
    app.state.tool_adapter = tool_adapter
    app.state.router = router
    app.state.orchestrator = orchestrator
    app.state.result_stores = ResultStoreRegistry(idle_seconds=settings.results.idle_seconds)
    app.state.active_runs = ActiveRuns()
    logger.info(
        "gateway_started",
        host=settings.gateway.host,
        port=settings.gateway.port,
        tool_count=tool_count,
        fast_model=settings.xai.fast_model,
        reasoning_model=settings.xai.reasoning_model,
        classifier=settings.router.classifier,
    )

    yield

    cancelled = app.state.active_runs.cancel_all()
    logger.info(
        "gateway_stopped", cancelled_runs=cancelled, result_sessions=len(app.state.result_stores)
    )


app = FastAPI(title="Scout Gateway", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=GatewaySettings().origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorPayload(error=error, message=message).model_dump(),
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/ai/chat")
async def chat(request: Request):
    """Run one chat turn and stream NDJSON frames."""
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        return _error_response(400, "Invalid request", f"Invalid JSON: {e}")
    try:
        parsed = ChatRequest.model_validate(body)
    except ValidationError as e:
        return _error_response(400, "Invalid request", str(e))

    state = request.app.state
    settings = state.settings
    try:
        dispatch = await start_chat(
            parsed,
            adapter=state.tool_adapter,
            router=state.router,
            orchestrator=state.orchestrator,
            result_stores=state.result_stores,
            active_runs=state.active_runs,
            default_permissions=settings.tools.permission_list,
            default_max_tokens=settings.orchestrator.default_max_tokens,
            default_temperature=settings.orchestrator.default_temperature,
        )
    except GatewayError as e:
        logger.warning("chat_rejected", code=e.code, error=str(e))
        return _error_response(409, "Conflict", str(e))
    except Exception as e:
        logger.exception("chat_start_failed")
        return _error_response(500, "Internal server error", str(e))

    return StreamingResponse(
        _stream_frames(dispatch, state.active_runs),
        media_type=NDJSON_MEDIA_TYPE,
    )


async def _stream_frames(dispatch: ChatDispatch, active_runs: ActiveRuns) -> AsyncIterator[str]:
    run = dispatch.run
    try:
        yield to_ndjson(
            StartFrame(
                request_id=run.id,
                session_id=dispatch.session_id,
                model=run.model,
                routing=(
                    {
                        "tier": dispatch.routing.tier.value,
                        "category": dispatch.routing.category.value,
                        "confidence": dispatch.routing.confidence,
                        "rationale": dispatch.routing.rationale,
                    }
                    if dispatch.routing
                    else None
                ),
            )
        )
        try:
            async for event in dispatch_chat(dispatch, active_runs=active_runs):
                yield to_ndjson(_event_frame(event, dispatch))
        except Exception as e:
            logger.exception("chat_stream_failed", request_id=run.id)
            yield to_ndjson(ErrorFrame(error="INTERNAL_ERROR", message=str(e)))
    finally:
        # Client may leave before the run is ever streamed
        active_runs.remove(run.id)


def _event_frame(event: OrchestratorEvent, dispatch: ChatDispatch) -> BaseModel:
    if isinstance(event, TextChunk):
        return TextFrame(content=event.content)
    if isinstance(event, ToolCallInfo):
        return ToolCallFrame(
            tool_key=event.tool_key, arguments=event.arguments, call_id=event.call_id
        )
    if isinstance(event, ToolCallFinished):
        record = event.record
        return ToolResultFrame(
            record_id=record.id,
            call_id=record.call_id,
            tool_id=record.tool_id,
            status=record.status.value,
            duration_ms=record.duration_ms,
            payload=record.payload,
            error=record.error.to_dict() if record.error else None,
        )
    if isinstance(event, StreamDone):
        return DoneFrame(
            request_id=dispatch.run.id,
            session_id=dispatch.session_id,
            model=dispatch.run.model,
            state=event.state,
            stop_reason=event.stop_reason,
            steps=event.steps,
        )
    if isinstance(event, StreamError):
        return ErrorFrame(error=event.error, message=event.message)
    raise TypeError(f"Unhandled orchestrator event: {type(event).__name__}")


@app.post("/api/ai/chat/{request_id}/cancel")
async def cancel_chat(request_id: str, request: Request):
    if not request.app.state.active_runs.cancel(request_id):
        return _error_response(404, "Not found", f"No active request '{request_id}'")
    return {"request_id": request_id, "cancelled": True}


@app.get("/api/ai/tools")
async def list_tools(request: Request) -> dict:
    registry: ToolRegistry = request.app.state.tool_registry
    return {
        "count": registry.get_tool_count(),
        "categories": registry.get_category_counts(),
        "tools": [
            {
                "id": t.definition.id,
                "name": t.definition.name,
                "category": t.definition.category.value,
                "required_permission": t.definition.required_permission.value,
                "requires_confirmation": t.definition.requires_confirmation,
            }
            for t in registry.list_tools()
        ],
    }


@app.get("/api/ai/sessions/{session_id}/results")
async def list_results(
    session_id: str,
    request: Request,
    tool_id: str | None = None,
    unacknowledged: bool = False,
) -> dict:
    store = request.app.state.result_stores.get(session_id)
    if store is None:
        results = []
    elif tool_id is not None:
        results = store.get_results_for_tool(tool_id)
    elif unacknowledged:
        results = store.get_unacknowledged_results()
    else:
        results = store.all_results()
    if tool_id is not None and unacknowledged:
        results = [r for r in results if not r.acknowledged]
    return {"session_id": session_id, "results": [r.to_dict() for r in results]}


@app.get("/api/ai/sessions/{session_id}/results/latest/{tool_id}")
async def latest_result(session_id: str, tool_id: str, request: Request):
    store = request.app.state.result_stores.get(session_id)
    result = store.get_latest_result(tool_id) if store is not None else None
    if result is None:
        return _error_response(404, "Not found", f"No result for tool '{tool_id}'")
    return result.to_dict()


@app.post("/api/ai/sessions/{session_id}/results/{result_id}/ack")
async def acknowledge_result(session_id: str, result_id: str, request: Request):
    store = request.app.state.result_stores.get(session_id)
    result = store.get_result(result_id) if store is not None else None
    if result is None:
        return _error_response(404, "Not found", f"No result '{result_id}'")
    store.acknowledge_result(result_id)
    return store.get_result(result_id).to_dict()


@app.delete("/api/ai/sessions/{session_id}/results")
async def clear_results(session_id: str, request: Request) -> dict:
    stores: ResultStoreRegistry = request.app.state.result_stores
    stores.clear(session_id)
    # Live WebSocket consumers keep the (now empty) store; otherwise the session ends here
    released = stores.release(session_id)
    return {"session_id": session_id, "cleared": True, "released": released}


@app.websocket("/ws/sessions/{session_id}/results")
async def results_websocket(websocket: WebSocket, session_id: str) -> None:
    """Replay the latest-per-tool snapshot, then push every change.

    Clients may send {"type": "ack", "result_id": ...} to acknowledge.
    """
    await websocket.accept()
    store = websocket.app.state.result_stores.get_or_create(session_id)
    loop = asyncio.get_running_loop()
    changes: asyncio.Queue[ResultChange] = asyncio.Queue()

    # Subscribe before the snapshot so nothing falls in between; clients dedupe by id.
    unsubscribe = store.subscribe(
        lambda change: loop.call_soon_threadsafe(changes.put_nowait, change)
    )
    receiver = asyncio.create_task(_receive_acks(websocket, store))
    logger.info("results_ws_connected", session_id=session_id)
    try:
        snapshot = ResultChangeFrame(
            type="snapshot",
            session_id=session_id,
            results=[r.to_dict() for r in store.latest_results().values()],
        )
        await websocket.send_text(snapshot.model_dump_json())
        while True:
            getter = asyncio.ensure_future(changes.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter not in done:
                getter.cancel()
                error = None if receiver.cancelled() else receiver.exception()
                if error is not None:
                    logger.error(
                        "results_ws_receiver_failed", session_id=session_id, exc_info=error
                    )
                    await websocket.close(code=1011)
                break
            change = getter.result()
            frame = ResultChangeFrame(
                type=change.kind.value,
                session_id=session_id,
                results=[change.result.to_dict()]
                if change.result is not None and change.kind is not ChangeKind.cleared
                else [],
            )
            await websocket.send_text(frame.model_dump_json())
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        receiver.cancel()
        released = websocket.app.state.result_stores.release(session_id, only_if_empty=True)
        logger.info("results_ws_disconnected", session_id=session_id, released=released)


async def _receive_acks(websocket: WebSocket, store: ResultStore) -> None:
    """Read client messages until disconnect, applying acknowledgments."""
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                ack = ResultAck.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("results_ws_bad_message", error=str(e)[:200])
                continue
            store.acknowledge_result(ack.result_id)
    except WebSocketDisconnect:
        return
