"""
Failure Simulator Stage (Red Team)

Stress-tests the drift-annotated plan. Its risks are appended to the
plan; its adjusted probability can only lower the plan's probability.
"""

from typing import Any, Dict

from converge.agents.base.base_stage import BaseStage
from converge.agents.models import DraftPlan, FailureAnalysis, PlanningContext, RiskSeverity
from converge.agents.stages.path_planner import parse_risks


class FailureSimulatorStage(BaseStage[FailureAnalysis]):
    name = "Failure Simulator"
    role = "failure_simulator"

    def build_payload(self, context: PlanningContext, draft: DraftPlan) -> Dict[str, Any]:
        return {
            "intent": context.intent,
            "priority": context.priority,
            "plan": draft.model_dump(by_alias=True, mode="json", exclude={"reasoning"}),
        }

    def validate(self, parsed: Any, context: PlanningContext, draft: DraftPlan) -> FailureAnalysis:
        if not isinstance(parsed, dict):
            raise TypeError(f"expected a JSON object, got {type(parsed).__name__}")

        risks = parsed.get("risks")
        if not isinstance(risks, list):
            raise ValueError("expected a 'risks' array")

        adjusted = parsed.get("adjustedProbability")
        if isinstance(adjusted, bool):
            raise ValueError("'adjustedProbability' must be a number")

        # Red-team findings phrased as bare strings are treated as serious
        return FailureAnalysis(
            risks=parse_risks(risks, RiskSeverity.HIGH),
            adjusted_probability=adjusted,
        )
