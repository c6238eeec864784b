from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from scout.tools.base import BaseTool, Permission, ToolCategory, ToolDefinition
from scout.tools.builtins.listings import SAMPLE_LISTINGS, Listing, find_listing

if TYPE_CHECKING:
    from scout.tools.context import ExecutionContext


class Range(BaseModel):
    min: float | None = None
    max: float | None = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        return self.max is None or value <= self.max


class SearchPropertiesInput(BaseModel):
    location: str | None = Field(
        None, description="City, state, or 5-digit ZIP, e.g. 'Miami, FL' or '33125'."
    )
    property_type: list[str] | None = Field(
        None, description="Property types, e.g. ['single_family', 'condo']."
    )
    price_range: Range | None = Field(None, description="Estimated value bounds in USD.")
    bedrooms: Range | None = None
    motivation_score: Range | None = Field(None, description="Seller motivation 0-100.")
    limit: int = Field(25, ge=1, le=100)
    offset: int = Field(0, ge=0)


def _matches_location(listing: Listing, location: str | None) -> bool:
    if not location:
        return True
    parts = [p.strip().lower() for p in location.split(",") if p.strip()]
    fields = {listing.city.lower(), listing.state.lower(), listing.zip}
    return all(part in fields for part in parts)


class SearchPropertiesTool(BaseTool):
    """Filter listings by location, price and seller motivation."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="property_search.search",
            name="Search Properties",
            description=(
                "Search for properties matching location, price range, property type, "
                "bedrooms and motivation indicators."
            ),
            category=ToolCategory.property_search,
            required_permission=Permission.read,
            estimated_duration_ms=2000,
            rate_limit_per_minute=30,
            tags=frozenset({"search", "properties", "filter"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return SearchPropertiesInput

    async def execute(self, arguments: SearchPropertiesInput, context: ExecutionContext) -> dict:
        matches = [
            listing for listing in SAMPLE_LISTINGS
            if _matches_location(listing, arguments.location)
            and (not arguments.property_type or listing.property_type in arguments.property_type)
            and (arguments.price_range is None
                 or arguments.price_range.contains(listing.estimated_value))
            and (arguments.bedrooms is None or arguments.bedrooms.contains(listing.bedrooms))
            and (arguments.motivation_score is None
                 or (listing.motivation_score is not None
                     and arguments.motivation_score.contains(listing.motivation_score)))
        ]
        page = matches[arguments.offset:arguments.offset + arguments.limit]
        return {
            "properties": [listing.to_dict() for listing in page],
            "total": len(matches),
            "has_more": arguments.offset + len(page) < len(matches),
        }


class PropertyDetailsInput(BaseModel):
    property_id: str = Field(..., min_length=1)


class PropertyDetailsTool(BaseTool):
    """Look up a single listing by id."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="property_search.get_details",
            name="Get Property Details",
            description="Get full details for a property by its id.",
            category=ToolCategory.property_search,
            required_permission=Permission.read,
            estimated_duration_ms=1000,
            rate_limit_per_minute=60,
            tags=frozenset({"properties", "details"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return PropertyDetailsInput

    async def execute(self, arguments: PropertyDetailsInput, context: ExecutionContext) -> dict:
        listing = find_listing(arguments.property_id)
        if listing is None:
            return {"found": False, "property_id": arguments.property_id}
        return {"found": True, "property": listing.to_dict()}
