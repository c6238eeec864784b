from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass

from scout.tools.base import Permission, has_permission

DEFAULT_PERMISSIONS = frozenset({Permission.read, Permission.write, Permission.execute})


@dataclass(frozen=True)
class ExecutionContext:
    """Per-request context passed to every tool invocation.

    Created fresh for each chat request and never shared across requests.
    Tools read it during their own call only.
    """

    caller_id: str = "anonymous"
    session_id: str = "main"
    granted_permissions: frozenset[Permission] = DEFAULT_PERMISSIONS

    def allows(self, required: Permission) -> bool:
        return has_permission(self.granted_permissions, required)


def create_execution_context(
    *,
    caller_id: str | None = None,
    session_id: str | None = None,
    permissions: Iterable[str | Permission] | None = None,
) -> ExecutionContext:
    """Build a context with defaults for anything the caller did not supply.

    Unknown permission names raise ValueError.
    """
    granted = (
        frozenset(Permission(p) for p in permissions)
        if permissions is not None
        else DEFAULT_PERMISSIONS
    )
    return ExecutionContext(
        caller_id=caller_id or "anonymous",
        session_id=session_id or f"session_{time.time_ns() // 1_000_000}",
        granted_permissions=granted,
    )
