from __future__ import annotations

import threading
from collections.abc import Container, Iterable, Mapping

import structlog

from scout.infra.errors import ToolNotFoundError
from scout.tools.base import (
    TOOL_ID_PATTERN,
    BaseTool,
    Permission,
    ToolCategory,
    ToolDefinition,
)

logger = structlog.get_logger()


class ToolRegistry:
    """Catalog of Scout tools. Provides lookup and category/tag/permission filtering.

    Constructed once at startup and passed to the adapter and gateway.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._keys: dict[str, str] = {}
        self._category_index: dict[ToolCategory, set[str]] = {}
        self._tag_index: dict[str, set[str]] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def register(self, tool: BaseTool) -> None:
        """Register a tool. Raises ValueError on invalid or duplicate definitions."""
        with self._lock:
            self._register_locked(tool)

    def register_all(self, tools: Iterable[BaseTool] | None = None) -> int:
        """Register the full catalog once. Later calls are no-ops.

        tools defaults to the built-in catalog. Safe to call from concurrent
        cold starts: exactly one caller populates the registry. Returns the
        tool count.
        """
        with self._lock:
            if self._initialized:
                logger.debug("tool_registry_already_initialized", count=len(self._tools))
                return len(self._tools)
            if tools is None:
                from scout.tools.builtins import builtin_tools

                tools = builtin_tools()
            tools = list(tools)
            # Validate the whole batch before committing any of it
            ids = set(self._tools)
            keys = dict(self._keys)
            for tool in tools:
                definition = tool.definition
                self._check_definition(definition, ids, keys)
                ids.add(definition.id)
                keys[definition.key] = definition.id
            for tool in tools:
                self._commit_locked(tool)
            self._initialized = True
            count = len(self._tools)
        logger.info("tool_registry_initialized", count=count)
        return count

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _register_locked(self, tool: BaseTool) -> None:
        self._check_definition(tool.definition, self._tools, self._keys)
        self._commit_locked(tool)

    @staticmethod
    def _check_definition(
        definition: ToolDefinition, ids: Container[str], keys: Mapping[str, str]
    ) -> None:
        _validate_definition(definition)
        if definition.id in ids:
            raise ValueError(f"Tool already registered: {definition.id}")
        existing = keys.get(definition.key)
        if existing is not None:
            raise ValueError(
                f"Tool key '{definition.key}' for {definition.id} "
                f"collides with {existing}"
            )

    def _commit_locked(self, tool: BaseTool) -> None:
        definition = tool.definition
        self._tools[definition.id] = tool
        self._keys[definition.key] = definition.id
        self._category_index.setdefault(definition.category, set()).add(definition.id)
        for tag in definition.tags:
            self._tag_index.setdefault(tag, set()).add(definition.id)
        logger.debug("tool_registered", tool_id=definition.id)

    def get(self, tool_id: str) -> BaseTool | None:
        """Get a tool by id. Returns None if not found."""
        return self._tools.get(tool_id)

    def get_by_key(self, key: str) -> BaseTool | None:
        """Get a tool by its model-facing key. Returns None if not found."""
        tool_id = self._keys.get(key)
        return self._tools.get(tool_id) if tool_id is not None else None

    def get_definition(self, tool_id: str) -> ToolDefinition:
        """Get a tool's definition. Raises ToolNotFoundError if not registered."""
        tool = self._tools.get(tool_id)
        if tool is None:
            raise ToolNotFoundError(tool_id)
        return tool.definition

    def get_tool_count(self) -> int:
        return len(self._tools)

    def list_tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get_by_category(self, category: ToolCategory | str) -> list[BaseTool]:
        return self.find(category=category)

    def find(
        self,
        *,
        category: ToolCategory | str | None = None,
        tags: Iterable[str] | None = None,
        permission: Permission | str | None = None,
        search: str | None = None,
    ) -> list[BaseTool]:
        """Find tools matching all given criteria.

        tags intersect; permission keeps tools whose required level is at or
        below it; search matches name, description and tags case-insensitively.
        """
        tool_ids: set[str] | None = None
        if category is not None:
            try:
                tool_ids = set(self._category_index.get(ToolCategory(category), ()))
            except ValueError:
                return []
        for tag in tags or ():
            tagged = self._tag_index.get(tag, set())
            tool_ids = set(tagged) if tool_ids is None else tool_ids & tagged

        if tool_ids is None:
            tools = list(self._tools.values())
        else:
            tools = [t for tid, t in self._tools.items() if tid in tool_ids]

        if permission is not None:
            level = Permission(permission)
            tools = [t for t in tools if t.definition.required_permission.rank <= level.rank]

        if search:
            needle = search.lower()
            tools = [
                t for t in tools
                if needle in t.definition.name.lower()
                or needle in t.definition.description.lower()
                or any(needle in tag.lower() for tag in t.definition.tags)
            ]
        return tools

    def get_category_counts(self) -> dict[str, int]:
        return {
            category.value: len(ids)
            for category, ids in self._category_index.items()
            if ids
        }


def _validate_definition(definition: ToolDefinition) -> None:
    if not TOOL_ID_PATTERN.match(definition.id):
        raise ValueError(
            f"Invalid tool id '{definition.id}': expected dotted namespace, "
            "e.g. 'property_search.search'"
        )
    if not isinstance(definition.category, ToolCategory):
        raise ValueError(f"Unknown category for {definition.id}: {definition.category!r}")
    if not isinstance(definition.required_permission, Permission):
        raise ValueError(
            f"Unknown permission for {definition.id}: {definition.required_permission!r}"
        )
