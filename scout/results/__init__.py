"""Result store: replayable tool results for UI consumers."""

from scout.results.store import (
    ChangeKind,
    ResultChange,
    ResultStore,
    ResultStoreRegistry,
    StoredResult,
)
