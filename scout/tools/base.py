from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from scout.tools.context import ExecutionContext

TOOL_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$")


class Permission(StrEnum):
    """Ordered permission levels: read < write < execute < admin."""

    read = "read"
    write = "write"
    execute = "execute"
    admin = "admin"

    @property
    def rank(self) -> int:
        return _PERMISSION_ORDER.index(self)


_PERMISSION_ORDER = [Permission.read, Permission.write, Permission.execute, Permission.admin]


def has_permission(granted: frozenset[Permission], required: Permission) -> bool:
    """True when any granted level is at or above the required level."""
    return any(p.rank >= required.rank for p in granted)


class ToolCategory(StrEnum):
    """Domain classification of tools. Used for per-turn allow-lists."""

    advanced_search = "advanced_search"
    automation = "automation"
    batch_operations = "batch_operations"
    buyer_management = "buyer_management"
    communication = "communication"
    contractors = "contractors"
    crm = "crm"
    data_enrichment = "data_enrichment"
    deal_analysis = "deal_analysis"
    deal_pipeline = "deal_pipeline"
    document_generation = "document_generation"
    integrations = "integrations"
    intelligence = "intelligence"
    map = "map"
    market_analysis = "market_analysis"
    permits = "permits"
    portfolio = "portfolio"
    predictive = "predictive"
    property_search = "property_search"
    reporting = "reporting"
    utility = "utility"
    verticals = "verticals"


def tool_key(tool_id: str) -> str:
    """Model-facing function name for a tool id.

    e.g. 'map.draw_search_area' -> 'map_draw_search_area'
    """
    return tool_id.replace(".", "_").replace("-", "_")


@dataclass(frozen=True)
class ToolDefinition:
    """Immutable catalog metadata for a tool.

    estimated_duration_ms and rate_limit_per_minute are advisory hints used
    for bookkeeping only; neither is enforced as a kill-switch.
    """

    id: str
    name: str
    description: str
    category: ToolCategory
    required_permission: Permission = Permission.read
    requires_confirmation: bool = False
    estimated_duration_ms: int | None = None
    rate_limit_per_minute: int | None = None
    tags: frozenset[str] = field(default_factory=frozenset)

    @property
    def key(self) -> str:
        return tool_key(self.id)


class BaseTool(ABC):
    """Abstract base class for Scout tools.

    Subclasses declare catalog metadata, a pydantic input contract, and the
    business logic. Validation, permission checks and error conversion are
    applied by the ToolAdapter, never by the tool itself.
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Catalog metadata. Must be stable for the life of the tool."""
        ...

    @property
    @abstractmethod
    def input_model(self) -> type[BaseModel]:
        """Pydantic model describing the tool's input contract."""
        ...

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def parameters(self) -> dict:
        """JSON Schema of the input contract, for function calling."""
        return self.input_model.model_json_schema()

    @abstractmethod
    async def execute(self, arguments: BaseModel, context: ExecutionContext) -> dict:
        """Run the tool with validated arguments.

        context is the per-request ExecutionContext. Tools must not keep a
        reference to it beyond this call.
        """
        ...
