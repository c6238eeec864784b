"""Replayable, per-session store of tool results for UI consumers.

Unlike fire-and-forget notifications, the store keeps full history plus a
latest-per-tool index, so a consumer that subscribes after a result arrived
still observes it: read current state first, then listen for changes.

Writes are serialized by a lock; reads return snapshots. Unknown ids never
raise.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

import structlog

from scout.tools.records import now_ms

logger = structlog.get_logger()


@dataclass(frozen=True)
class StoredResult:
    """A tool result as seen by UI consumers.

    acknowledged only ever moves from False to True. sequence is the store's
    insertion counter and breaks timestamp ties (later insertion wins).
    """

    id: str
    tool_id: str
    payload: Any
    timestamp: int
    acknowledged: bool = False
    sequence: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tool_id": self.tool_id,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "acknowledged": self.acknowledged,
        }


class ChangeKind(StrEnum):
    added = "added"
    acknowledged = "acknowledged"
    cleared = "cleared"


@dataclass(frozen=True)
class ResultChange:
    kind: ChangeKind
    result: StoredResult | None = None


ResultListener = Callable[[ResultChange], None]


def _newer(candidate: StoredResult, existing: StoredResult | None) -> bool:
    if existing is None:
        return True
    return (candidate.timestamp, candidate.sequence) > (existing.timestamp, existing.sequence)


class ResultStore:
    """Primary map of results by id plus a latest-by-tool index."""

    def __init__(self, session_id: str = "main") -> None:
        self.session_id = session_id
        self._results: dict[str, StoredResult] = {}
        self._latest_by_tool: dict[str, StoredResult] = {}
        self._listeners: list[ResultListener] = []
        self._sequence = 0
        self._lock = threading.Lock()
        self._last_activity = time.monotonic()

    def add_result(
        self,
        id: str,
        tool_id: str,
        payload: Any,
        *,
        timestamp: int | None = None,
    ) -> StoredResult | None:
        """Insert a result, unacknowledged.

        The latest index moves only when the new result is newer by
        (timestamp, sequence), so out-of-order inserts cannot regress it.
        Re-adding an existing id is ignored and returns None.
        """
        with self._lock:
            if id in self._results:
                logger.warning(
                    "result_store_duplicate_id",
                    session_id=self.session_id,
                    result_id=id,
                    tool_id=tool_id,
                )
                return None
            self._sequence += 1
            result = StoredResult(
                id=id,
                tool_id=tool_id,
                payload=payload,
                timestamp=now_ms() if timestamp is None else timestamp,
                sequence=self._sequence,
            )
            self._results[id] = result
            self._last_activity = time.monotonic()
            is_latest = _newer(result, self._latest_by_tool.get(tool_id))
            if is_latest:
                self._latest_by_tool[tool_id] = result

        logger.debug(
            "result_store_added",
            session_id=self.session_id,
            result_id=id,
            tool_id=tool_id,
            timestamp=result.timestamp,
            is_latest=is_latest,
        )
        self._notify(ResultChange(ChangeKind.added, result))
        return result

    def acknowledge_result(self, id: str) -> None:
        """Mark a result processed. No-op for unknown or already-acknowledged ids."""
        with self._lock:
            result = self._results.get(id)
            if result is None or result.acknowledged:
                return
            acked = replace(result, acknowledged=True)
            self._results[id] = acked
            self._last_activity = time.monotonic()
            latest = self._latest_by_tool.get(acked.tool_id)
            if latest is not None and latest.id == id:
                self._latest_by_tool[acked.tool_id] = acked

        logger.debug(
            "result_store_acknowledged",
            session_id=self.session_id,
            result_id=id,
            tool_id=acked.tool_id,
        )
        self._notify(ResultChange(ChangeKind.acknowledged, acked))

    def get_result(self, id: str) -> StoredResult | None:
        return self._results.get(id)

    def get_latest_result(self, tool_id: str) -> StoredResult | None:
        return self._latest_by_tool.get(tool_id)

    def latest_results(self) -> dict[str, StoredResult]:
        with self._lock:
            return dict(self._latest_by_tool)

    def get_unacknowledged_results(self) -> list[StoredResult]:
        """Unacknowledged results, newest first."""
        with self._lock:
            pending = [r for r in self._results.values() if not r.acknowledged]
        return sorted(pending, key=lambda r: (r.timestamp, r.sequence), reverse=True)

    def get_results_for_tool(self, tool_id: str) -> list[StoredResult]:
        """All results for a tool, newest first."""
        with self._lock:
            matching = [r for r in self._results.values() if r.tool_id == tool_id]
        return sorted(matching, key=lambda r: (r.timestamp, r.sequence), reverse=True)

    def all_results(self) -> list[StoredResult]:
        """All results, newest first."""
        with self._lock:
            results = list(self._results.values())
        return sorted(results, key=lambda r: (r.timestamp, r.sequence), reverse=True)

    def clear_results(self) -> None:
        with self._lock:
            self._results.clear()
            self._latest_by_tool.clear()
            self._last_activity = time.monotonic()
        logger.debug("result_store_cleared", session_id=self.session_id)
        self._notify(ResultChange(ChangeKind.cleared))

    def __len__(self) -> int:
        return len(self._results)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def idle_for(self, now: float | None = None) -> float:
        """Seconds since the last write or subscription change."""
        return (time.monotonic() if now is None else now) - self._last_activity

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable.

        Listeners run synchronously on the writer's thread after the write
        is visible. Subscribe before reading a snapshot to avoid gaps;
        consumers dedupe by result id.
        """
        with self._lock:
            self._listeners.append(listener)
            self._last_activity = time.monotonic()

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
                    self._last_activity = time.monotonic()

        return unsubscribe

    def _notify(self, change: ResultChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "result_listener_failed",
                    session_id=self.session_id,
                    kind=change.kind.value,
                )


class ResultStoreRegistry:
    """Session id -> ResultStore.

    A store is released once its session is cleared or its last WebSocket
    consumer leaves with nothing stored. Stores with no subscribers that see
    no activity for idle_seconds are evicted whenever a new session store is
    created.
    """

    def __init__(self, *, idle_seconds: float | None = None) -> None:
        self._stores: dict[str, ResultStore] = {}
        self._idle_seconds = idle_seconds
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str) -> ResultStore:
        with self._lock:
            store = self._stores.get(session_id)
            if store is None:
                self._evict_idle_locked()
                store = ResultStore(session_id)
                self._stores[session_id] = store
                logger.info("result_store_created", session_id=session_id)
            return store

    def get(self, session_id: str) -> ResultStore | None:
        return self._stores.get(session_id)

    def clear(self, session_id: str) -> None:
        """Reset a session's results, keeping its subscribers."""
        store = self._stores.get(session_id)
        if store is not None:
            store.clear_results()

    def release(self, session_id: str, *, only_if_empty: bool = False) -> bool:
        """Drop a session's store unless someone is still subscribed to it.

        Returns True when the store was dropped.
        """
        with self._lock:
            store = self._stores.get(session_id)
            if store is None or store.subscriber_count:
                return False
            if only_if_empty and len(store):
                return False
            del self._stores[session_id]
        logger.info("result_store_released", session_id=session_id)
        return True

    def evict_idle(self) -> list[str]:
        with self._lock:
            return self._evict_idle_locked()

    def _evict_idle_locked(self) -> list[str]:
        if self._idle_seconds is None:
            return []
        now = time.monotonic()
        evicted = [
            sid for sid, store in self._stores.items()
            if not store.subscriber_count and store.idle_for(now) >= self._idle_seconds
        ]
        for sid in evicted:
            del self._stores[sid]
        if evicted:
            logger.info("result_stores_evicted", count=len(evicted), remaining=len(self._stores))
        return evicted

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._stores

    def __len__(self) -> int:
        return len(self._stores)
