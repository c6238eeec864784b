from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from scout.tools.base import BaseTool, Permission, ToolCategory, ToolDefinition

if TYPE_CHECKING:
    from scout.tools.context import ExecutionContext


class CurrentTimeInput(BaseModel):
    timezone: str = Field(
        "UTC", description="IANA timezone name, e.g. 'America/New_York'. Defaults to UTC."
    )

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, v: str) -> str:
        if v == "UTC":
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


class CurrentTimeTool(BaseTool):
    """Returns the current date and time."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="utility.current_time",
            name="Current Time",
            description="Get the current date and time, optionally in a specific timezone.",
            category=ToolCategory.utility,
            required_permission=Permission.read,
            tags=frozenset({"time", "date"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return CurrentTimeInput

    async def execute(self, arguments: CurrentTimeInput, context: ExecutionContext) -> dict:
        tz = UTC if arguments.timezone == "UTC" else ZoneInfo(arguments.timezone)
        now = datetime.now(tz)
        return {
            "time": now.strftime("%Y-%m-%d %H:%M:%S"),
            "timezone": arguments.timezone,
            "iso": now.isoformat(),
        }


class FormatCurrencyInput(BaseModel):
    amount: float
    compact: bool = Field(False, description="Abbreviate as $1.2M / $450K.")


def format_usd(amount: float, *, compact: bool = False) -> str:
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if compact:
        if value >= 1_000_000:
            return f"{sign}${value / 1_000_000:.1f}M"
        if value >= 1_000:
            return f"{sign}${value / 1_000:.0f}K"
    return f"{sign}${value:,.0f}"


class FormatCurrencyTool(BaseTool):
    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="utility.format_currency",
            name="Format Currency",
            description="Format a dollar amount for display.",
            category=ToolCategory.utility,
            required_permission=Permission.read,
            tags=frozenset({"format", "currency"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return FormatCurrencyInput

    async def execute(self, arguments: FormatCurrencyInput, context: ExecutionContext) -> dict:
        return {
            "amount": arguments.amount,
            "formatted": format_usd(arguments.amount, compact=arguments.compact),
        }
