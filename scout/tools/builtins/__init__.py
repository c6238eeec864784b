from __future__ import annotations

from scout.tools.base import BaseTool
from scout.tools.builtins.crm import (
    CreateLeadListTool,
    DeleteLeadListTool,
    LeadListStore,
    RankByMotivationTool,
)
from scout.tools.builtins.deal_analysis import AnalyzeDealTool, CalculateMaoTool
from scout.tools.builtins.map_tools import DrawSearchAreaTool
from scout.tools.builtins.property_search import PropertyDetailsTool, SearchPropertiesTool
from scout.tools.builtins.utility import CurrentTimeTool, FormatCurrencyTool


def builtin_tools(*, lead_lists: LeadListStore | None = None) -> list[BaseTool]:
    """Build the built-in tool catalog.

    Fresh instances on every call; ToolRegistry.register_all keeps only the
    first batch.
    """
    lead_lists = lead_lists or LeadListStore()
    return [
        SearchPropertiesTool(),
        PropertyDetailsTool(),
        CalculateMaoTool(),
        AnalyzeDealTool(),
        DrawSearchAreaTool(),
        CreateLeadListTool(lead_lists),
        DeleteLeadListTool(lead_lists),
        RankByMotivationTool(),
        CurrentTimeTool(),
        FormatCurrencyTool(),
    ]
