from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from scout.tools.base import BaseTool, Permission, ToolCategory, ToolDefinition

if TYPE_CHECKING:
    from scout.tools.context import ExecutionContext

# 70% rule: investors pay at most 70% of ARV minus repairs
DEFAULT_INVESTOR_MARGIN = 0.7


def max_allowable_offer(
    arv: float, repair_cost: float, assignment_fee: float, margin: float = DEFAULT_INVESTOR_MARGIN
) -> float:
    return max(0.0, arv * margin - repair_cost - assignment_fee)


class CalculateMaoInput(BaseModel):
    arv: float = Field(..., gt=0, description="After-repair value in USD.")
    repair_cost: float = Field(0, ge=0)
    assignment_fee: float = Field(10_000, ge=0)
    investor_margin: float = Field(DEFAULT_INVESTOR_MARGIN, gt=0, le=1)


class CalculateMaoTool(BaseTool):
    """Maximum allowable offer: ARV * margin - repairs - assignment fee."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="deal_analysis.calculate_mao",
            name="Calculate MAO",
            description=(
                "Calculate the maximum allowable offer for a wholesale deal using the "
                "ARV percentage rule."
            ),
            category=ToolCategory.deal_analysis,
            required_permission=Permission.read,
            estimated_duration_ms=100,
            tags=frozenset({"mao", "calculation", "offer"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return CalculateMaoInput

    async def execute(self, arguments: CalculateMaoInput, context: ExecutionContext) -> dict:
        mao = max_allowable_offer(
            arguments.arv,
            arguments.repair_cost,
            arguments.assignment_fee,
            arguments.investor_margin,
        )
        return {
            "mao": round(mao, 2),
            "arv_percentage": round(arguments.arv * arguments.investor_margin, 2),
            "repair_cost": arguments.repair_cost,
            "assignment_fee": arguments.assignment_fee,
        }


class AnalyzeDealInput(BaseModel):
    arv: float = Field(..., gt=0)
    asking_price: float = Field(0, ge=0)
    estimated_repairs: float = Field(0, ge=0)
    target_assignment_fee: float = Field(10_000, ge=0)
    comps_count: int = Field(0, ge=0)


class AnalyzeDealTool(BaseTool):
    """Score a wholesale deal 1-10 and recommend strong_buy/buy/hold/pass."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id="deal_analysis.analyze",
            name="Analyze Deal",
            description=(
                "Analyze a wholesale deal including MAO, potential profit, risks, "
                "opportunities and a buy recommendation."
            ),
            category=ToolCategory.deal_analysis,
            required_permission=Permission.read,
            estimated_duration_ms=3000,
            rate_limit_per_minute=20,
            tags=frozenset({"analysis", "deal", "arv", "mao"}),
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return AnalyzeDealInput

    async def execute(self, arguments: AnalyzeDealInput, context: ExecutionContext) -> dict:
        arv = arguments.arv
        repairs = arguments.estimated_repairs
        fee = arguments.target_assignment_fee
        asking = arguments.asking_price
        mao = max_allowable_offer(arv, repairs, fee)
        potential_profit = mao - asking + fee if asking > 0 else fee

        risks: list[str] = []
        opportunities: list[str] = []
        score = 5
        spread_percent = (mao - asking) / arv * 100
        if spread_percent > 20:
            score += 2
            opportunities.append("Excellent margin potential")
        elif spread_percent > 10:
            score += 1
            opportunities.append("Good margin potential")
        elif spread_percent < 0:
            score -= 2
            risks.append("Negative spread - deal not viable")
        elif spread_percent < 5:
            score -= 1
            risks.append("Thin margins")

        if repairs > arv * 0.3:
            score -= 1
            risks.append("High repair costs (>30% of ARV)")
        if repairs < arv * 0.1:
            score += 1
            opportunities.append("Low repair requirements")

        if arguments.comps_count >= 5:
            opportunities.append(f"Strong comp support ({arguments.comps_count} comps)")
        elif arguments.comps_count < 3:
            risks.append("Limited comparable sales data")

        score = max(1, min(10, score))
        if score >= 8:
            recommendation = "strong_buy"
        elif score >= 6:
            recommendation = "buy"
        elif score <= 3:
            recommendation = "pass"
        else:
            recommendation = "hold"

        return {
            "arv": arv,
            "repair_cost": repairs,
            "mao": round(mao, 2),
            "potential_profit": round(potential_profit, 2),
            "deal_score": score,
            "recommendation": recommendation,
            "risks": risks,
            "opportunities": opportunities,
        }
