"""
Feasibility Envelope Stage

Cheap gate in front of the expensive planning calls. A deterministic
pre-check runs first; only when it has nothing to say is the model asked.
"""

from typing import Any, Dict, Optional, Union

from converge.agents.base.base_stage import BaseStage
from converge.agents.failures import StageFailure, StageResult
from converge.agents.models import FeasibilityVerdict, PlanningContext
from converge.core.logger import get_logger

logger = get_logger("stages.feasibility")

# Goal metadata keys that may name the intended visa route
_ROUTE_KEYS = ("visaRoute", "visa_route", "visaType", "visa_type", "route")


def _visa_route(context: PlanningContext) -> str:
    metadata = context.goal_state.metadata or {}
    for key in _ROUTE_KEYS:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return ""


def precheck(context: PlanningContext, timeframe: int) -> Optional[FeasibilityVerdict]:
    """
    Hard blockers that need no model call.

    Returns an infeasible verdict, or None when the model should decide.
    """
    if timeframe < 1:
        return FeasibilityVerdict(is_possible=False, reason="Timeframe must be at least one year.")

    if "investor" in _visa_route(context) and context.current_state.net_worth <= 0:
        return FeasibilityVerdict(
            is_possible=False,
            reason="An investor visa route requires positive net worth; current liabilities exceed assets.",
        )

    return None


class FeasibilityStage(BaseStage[FeasibilityVerdict]):
    name = "Feasibility Envelope"
    role = "feasibility"

    async def run(
        self,
        context: PlanningContext,
        timeframe: int,
        strict: bool = False,
    ) -> Union[StageResult[FeasibilityVerdict], StageFailure]:
        verdict = precheck(context, timeframe)
        if verdict is not None:
            logger.info(f"[{self.name}] blocked by pre-check: {verdict.reason}")
            return StageResult(stage=self.name, parsed=verdict, trace=f"Pre-check: {verdict.reason}")
        return await super().run(context, timeframe, strict=strict)

    def build_payload(self, context: PlanningContext, timeframe: int) -> Dict[str, Any]:
        return {
            "intent": context.intent,
            "constraints": context.constraints,
            "priority": context.priority,
            "timeframeYears": timeframe,
            "origin": context.current_state.location,
            "destination": context.goal_state.location,
            "currentIncome": context.current_state.income,
            "netWorth": context.current_state.net_worth,
            "dependents": context.current_state.dependents,
        }

    def validate(self, parsed: Any, context: PlanningContext, timeframe: int) -> FeasibilityVerdict:
        if not isinstance(parsed, dict):
            raise TypeError(f"expected a JSON object, got {type(parsed).__name__}")

        is_possible = parsed.get("isPossible", parsed.get("is_possible"))
        if not isinstance(is_possible, bool):
            raise ValueError(f"'isPossible' must be a boolean, got {is_possible!r}")

        reason = parsed.get("reason", "")
        if not isinstance(reason, str):
            raise ValueError("'reason' must be a string")

        return FeasibilityVerdict(is_possible=is_possible, reason=reason.strip())
