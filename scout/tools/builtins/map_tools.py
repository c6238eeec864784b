from __future__ import annotations

import math
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, model_validator

from scout.tools.base import BaseTool, Permission, ToolCategory, ToolDefinition
from scout.tools.builtins.listings import SAMPLE_LISTINGS

if TYPE_CHECKING:
    from scout.tools.context import ExecutionContext

MILES_PER_DEGREE_LAT = 69.0


class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DrawSearchAreaInput(BaseModel):
    shape: Literal["circle", "polygon"] = "circle"
    center: GeoPoint | None = None
    radius_miles: float = Field(5.0, gt=0, le=100)
    polygon_points: list[GeoPoint] | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> DrawSearchAreaInput:
        if self.shape == "polygon" and (not self.polygon_points or len(self.polygon_points) < 3):
            raise ValueError("polygon requires at least 3 polygon_points")
        if self.shape == "circle" and self.center is None:
            raise ValueError("circle requires center")
        return self


class DrawSearchAreaTool(BaseTool):
    """Bounding box for a circle or polygon plus the listings inside it."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="map.draw_search_area",
            name="Draw Search Area",
            description=(
                "Create a search area on the map from a center point and radius, or a "
                "polygon. Returns the bounds and property count within the area."
            ),
            category=ToolCategory.map,
            required_permission=Permission.read,
            estimated_duration_ms=2000,
            rate_limit_per_minute=30,
            tags=frozenset({"map", "search", "area", "polygon"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return DrawSearchAreaInput

    async def execute(self, arguments: DrawSearchAreaInput, context: ExecutionContext) -> dict:
        if arguments.shape == "polygon":
            points = arguments.polygon_points or []
            lats = [p.lat for p in points]
            lngs = [p.lng for p in points]
            bounds = {
                "north": max(lats), "south": min(lats),
                "east": max(lngs), "west": min(lngs),
            }
            center = {"lat": sum(lats) / len(lats), "lng": sum(lngs) / len(lngs)}
        else:
            c = arguments.center
            lat_delta = arguments.radius_miles / MILES_PER_DEGREE_LAT
            lng_delta = arguments.radius_miles / (
                MILES_PER_DEGREE_LAT * math.cos(math.radians(c.lat))
            )
            bounds = {
                "north": c.lat + lat_delta, "south": c.lat - lat_delta,
                "east": c.lng + lng_delta, "west": c.lng - lng_delta,
            }
            center = {"lat": c.lat, "lng": c.lng}

        inside = [
            listing.id for listing in SAMPLE_LISTINGS
            if bounds["south"] <= listing.latitude <= bounds["north"]
            and bounds["west"] <= listing.longitude <= bounds["east"]
        ]
        return {
            "shape": arguments.shape,
            "bounds": bounds,
            "center": center,
            "radius_miles": arguments.radius_miles if arguments.shape == "circle" else None,
            "property_ids": inside,
            "property_count": len(inside),
        }
