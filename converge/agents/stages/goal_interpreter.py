"""
Goal Interpreter Stage

Normalizes the raw current/goal snapshots into a PlanningContext:
a one-sentence intent, checkable constraints and a priority axis.
"""

from typing import Any, Dict, Optional

from converge.agents.base.base_stage import BaseStage
from converge.agents.models import MigrationSnapshot, PlanConstraints, PlanningContext


def _snapshot_payload(snapshot: MigrationSnapshot) -> Dict[str, Any]:
    return snapshot.model_dump(by_alias=True, mode="json", exclude_none=True)


class GoalInterpreterStage(BaseStage[PlanningContext]):
    name = "Goal Interpreter"
    role = "goal_interpreter"

    def build_payload(
        self,
        current: MigrationSnapshot,
        goal: MigrationSnapshot,
        request_constraints: Optional[PlanConstraints] = None,
    ) -> Dict[str, Any]:
        payload = {
            "currentState": _snapshot_payload(current),
            "goalState": _snapshot_payload(goal),
        }
        if request_constraints is not None:
            payload["requestConstraints"] = request_constraints.model_dump(
                by_alias=True, mode="json", exclude_none=True
            )
        return payload

    def validate(
        self,
        parsed: Any,
        current: MigrationSnapshot,
        goal: MigrationSnapshot,
        request_constraints: Optional[PlanConstraints] = None,
    ) -> PlanningContext:
        if not isinstance(parsed, dict):
            raise TypeError(f"expected a JSON object, got {type(parsed).__name__}")

        constraints = parsed.get("constraints", [])
        if not isinstance(constraints, list) or not all(isinstance(c, str) for c in constraints):
            raise ValueError("'constraints' must be a list of strings")

        fields: Dict[str, Any] = {
            "current_state": current,
            "goal_state": goal,
            "intent": parsed.get("intent"),
            "constraints": [c.strip() for c in constraints if c.strip()],
            "request_constraints": request_constraints,
        }
        # Missing priority falls back to the model default (safety)
        if parsed.get("priority") is not None:
            fields["priority"] = parsed["priority"]

        return PlanningContext(**fields)
