"""Recommendation Scorer Stage: the single headline score and summary."""

from typing import Any, Dict

from converge.agents.base.base_stage import BaseStage
from converge.agents.models import MigrationPlan, PlanningContext, RecommendationResult


class RecommendationStage(BaseStage[RecommendationResult]):
    name = "Recommendation"
    role = "recommendation"

    def build_payload(self, context: PlanningContext, plan: MigrationPlan) -> Dict[str, Any]:
        return {
            "intent": context.intent,
            "priority": context.priority,
            "plan": plan.model_dump(
                by_alias=True,
                mode="json",
                include={
                    "timeframe",
                    "steps",
                    "total_estimated_cost",
                    "success_probability",
                    "critical_path",
                    "risks",
                    "policy_alerts",
                },
            ),
        }

    def validate(self, parsed: Any, context: PlanningContext, plan: MigrationPlan) -> RecommendationResult:
        if not isinstance(parsed, dict):
            raise TypeError(f"expected a JSON object, got {type(parsed).__name__}")
        if isinstance(parsed.get("score"), bool):
            raise ValueError("'score' must be a number")
        return RecommendationResult.model_validate(parsed)
