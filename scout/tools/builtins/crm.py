from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from scout.tools.base import BaseTool, Permission, ToolCategory, ToolDefinition
from scout.tools.builtins.listings import SAMPLE_LISTINGS

if TYPE_CHECKING:
    from scout.tools.context import ExecutionContext


@dataclass
class LeadList:
    id: str
    owner_id: str
    name: str
    description: str
    list_type: str
    property_ids: list[str] = field(default_factory=list)


class LeadListStore:
    """In-memory lead lists keyed by id."""

    def __init__(self) -> None:
        self._lists: dict[str, LeadList] = {}
        self._lock = threading.Lock()

    def create(self, owner_id: str, name: str, description: str, list_type: str) -> LeadList:
        lead_list = LeadList(
            id=f"list_{uuid.uuid4().hex[:12]}",
            owner_id=owner_id,
            name=name,
            description=description,
            list_type=list_type,
        )
        with self._lock:
            self._lists[lead_list.id] = lead_list
        return lead_list

    def get(self, list_id: str) -> LeadList | None:
        return self._lists.get(list_id)

    def delete(self, list_id: str, owner_id: str) -> bool:
        with self._lock:
            lead_list = self._lists.get(list_id)
            if lead_list is None or lead_list.owner_id != owner_id:
                return False
            del self._lists[list_id]
            return True


def motivation_level(score: int) -> str:
    if score >= 80:
        return "hot"
    if score >= 60:
        return "warm"
    if score >= 40:
        return "lukewarm"
    return "cold"


class CreateLeadListInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str = ""
    list_type: Literal["static", "dynamic"] = "static"


class CreateLeadListTool(BaseTool):
    def __init__(self, store: LeadListStore) -> None:
        self._store = store

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="crm.create_lead_list",
            name="Create Lead List",
            description="Create a new lead list for organizing leads.",
            category=ToolCategory.crm,
            required_permission=Permission.write,
            requires_confirmation=True,
            tags=frozenset({"crm", "leads", "list"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return CreateLeadListInput

    async def execute(self, arguments: CreateLeadListInput, context: ExecutionContext) -> dict:
        lead_list = self._store.create(
            context.caller_id, arguments.name, arguments.description, arguments.list_type
        )
        return {
            "list_id": lead_list.id,
            "name": lead_list.name,
            "message": f'Lead list "{lead_list.name}" created successfully',
        }


class DeleteLeadListInput(BaseModel):
    list_id: str = Field(..., min_length=1)


class DeleteLeadListTool(BaseTool):
    def __init__(self, store: LeadListStore) -> None:
        self._store = store

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="crm.delete_lead_list",
            name="Delete Lead List",
            description="Permanently delete a lead list owned by the caller.",
            category=ToolCategory.crm,
            required_permission=Permission.admin,
            requires_confirmation=True,
            tags=frozenset({"crm", "leads", "list", "delete"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return DeleteLeadListInput

    async def execute(self, arguments: DeleteLeadListInput, context: ExecutionContext) -> dict:
        deleted = self._store.delete(arguments.list_id, context.caller_id)
        return {"list_id": arguments.list_id, "deleted": deleted}


class RankByMotivationInput(BaseModel):
    limit: int = Field(20, ge=1, le=100)
    min_score: int = Field(0, ge=0, le=100)


class RankByMotivationTool(BaseTool):
    """Leads ordered by seller motivation score, highest first."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="crm.rank_by_motivation",
            name="Rank Leads by Motivation",
            description="Rank leads by seller motivation score, highest first.",
            category=ToolCategory.crm,
            required_permission=Permission.read,
            estimated_duration_ms=1500,
            tags=frozenset({"crm", "leads", "motivation"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return RankByMotivationInput

    async def execute(self, arguments: RankByMotivationInput, context: ExecutionContext) -> dict:
        scored = [
            listing for listing in SAMPLE_LISTINGS
            if listing.motivation_score is not None
            and listing.motivation_score >= arguments.min_score
        ]
        scored.sort(key=lambda item: item.motivation_score, reverse=True)
        leads = [
            {
                "lead_id": listing.id,
                "property_address": f"{listing.address}, {listing.city}, {listing.state}",
                "motivation_score": listing.motivation_score,
                "motivation_level": motivation_level(listing.motivation_score),
            }
            for listing in scored[:arguments.limit]
        ]
        return {"leads": leads, "total_leads": len(scored)}
