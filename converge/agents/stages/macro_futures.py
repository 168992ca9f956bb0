"""
Macro Mobility Futures Stage

Surfaces exogenous geopolitical, economic and policy shifts relevant to
the migration corridor of a draft plan.
"""

from typing import Any, Dict, List

from converge.agents.base.base_stage import BaseStage
from converge.agents.models import DraftPlan, MacroTrend, PlanningContext


class MacroFuturesStage(BaseStage[List[MacroTrend]]):
    name = "Macro Futures"
    role = "macro_futures"

    def build_payload(self, context: PlanningContext, draft: DraftPlan, timeframe: int) -> Dict[str, Any]:
        return {
            "corridor": {
                "origin": context.current_state.location,
                "destination": context.goal_state.location,
            },
            "intent": context.intent,
            "timeframeYears": timeframe,
            "steps": [
                {"id": step.id, "year": step.year, "title": step.title, "category": step.category}
                for step in draft.steps
            ],
        }

    def validate(self, parsed: Any, context: PlanningContext, draft: DraftPlan, timeframe: int) -> List[MacroTrend]:
        # Both {"trends": [...]} and a bare array are accepted
        if isinstance(parsed, dict):
            items = parsed.get("trends")
        else:
            items = parsed
        if not isinstance(items, list):
            raise ValueError("expected a 'trends' array")

        trends = []
        for item in items:
            if isinstance(item, str):
                if item.strip():
                    trends.append(MacroTrend(title=item.strip()))
            elif isinstance(item, dict):
                trends.append(MacroTrend.model_validate(item))
            else:
                raise ValueError(f"trend entries must be objects or strings, got {type(item).__name__}")
        return trends
