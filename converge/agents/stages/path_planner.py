"""
Path Planner Stage

The core creative call: turns a PlanningContext and a timeframe into a
DraftPlan (ordered steps, cost, probability, critical path, first risks).

`parse_draft_plan` is shared with path optimization, which re-plans an
existing plan against the same schema.

Validation rules:
- zero steps or duplicate step ids are schema violations
- `year` outside [0, timeframe] is a schema violation
- dependency ids that name no step are dropped (logged)
- dependency edges that would close a cycle are dropped (logged)
- critical path ids that name no step are dropped (logged)
- missing totalEstimatedCost defaults to the sum of step costs
- missing successProbability defaults to the mean step probability
"""

from typing import Any, Dict, List, Optional, Set

from converge.agents.base.base_stage import BaseStage
from converge.agents.models import (
    AlternativeStrategy,
    DraftPlan,
    MigrationStep,
    PlanningContext,
    RiskItem,
    RiskSeverity,
)
from converge.core.logger import get_logger

logger = get_logger("stages.path_planner")


def _require_list(parsed: Dict[str, Any], key: str) -> List[Any]:
    value = parsed.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list, got {type(value).__name__}")
    return value


def parse_risks(items: List[Any], default_severity: RiskSeverity) -> List[RiskItem]:
    """Risk objects, or bare strings which become descriptions."""
    risks = []
    for item in items:
        if isinstance(item, str):
            if item.strip():
                risks.append(RiskItem(description=item.strip(), severity=default_severity))
        elif isinstance(item, dict):
            risks.append(RiskItem.model_validate(item))
        else:
            raise ValueError(f"risk entries must be objects or strings, got {type(item).__name__}")
    return risks


def _parse_alternatives(items: List[Any]) -> List[AlternativeStrategy]:
    strategies = []
    for item in items:
        if isinstance(item, str):
            if item.strip():
                strategies.append(AlternativeStrategy(name=item.strip()))
        elif isinstance(item, dict):
            strategies.append(AlternativeStrategy.model_validate(item))
        else:
            raise ValueError("alternative strategies must be objects or strings")
    return strategies


def _reaches(graph: Dict[str, List[str]], start: str, target: str) -> bool:
    """True when `target` is reachable from `start` over kept edges."""
    seen: Set[str] = set()
    stack = [start]
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(graph.get(node, []))
    return False


def _prune_dependencies(steps: List[MigrationStep]) -> List[MigrationStep]:
    """Drop dangling and cycle-closing dependency edges, in step order."""
    known = {step.id for step in steps}
    graph: Dict[str, List[str]] = {step.id: [] for step in steps}
    pruned = []

    for step in steps:
        kept: List[str] = []
        for dep in step.dependencies:
            if dep not in known:
                logger.warning(f"Dropping dangling dependency {step.id} -> {dep}")
                continue
            if dep in kept:
                continue
            if dep == step.id or _reaches(graph, dep, step.id):
                logger.warning(f"Dropping cyclic dependency {step.id} -> {dep}")
                continue
            kept.append(dep)
            graph[step.id].append(dep)

        if kept != step.dependencies:
            step = step.model_copy(update={"dependencies": kept})
        pruned.append(step)

    return pruned


def parse_draft_plan(parsed: Any, timeframe: int) -> DraftPlan:
    """
    Validate a plan-shaped JSON object into a DraftPlan.

    Raises:
        ValueError / TypeError: On any schema or invariant violation
    """
    if not isinstance(parsed, dict):
        raise TypeError(f"expected a JSON object, got {type(parsed).__name__}")

    raw_steps = _require_list(parsed, "steps")
    if not raw_steps:
        raise ValueError("plan has no steps")

    steps = []
    for raw in raw_steps:
        if not isinstance(raw, dict):
            raise ValueError(f"step entries must be objects, got {type(raw).__name__}")
        steps.append(MigrationStep.model_validate(raw))

    ids = [step.id for step in steps]
    duplicates = sorted({step_id for step_id in ids if ids.count(step_id) > 1})
    if duplicates:
        raise ValueError(f"duplicate step ids: {duplicates}")

    late = [step.id for step in steps if step.year > timeframe]
    if late:
        raise ValueError(f"steps {late} fall outside the {timeframe}-year timeframe")

    steps = _prune_dependencies(steps)

    known = set(ids)
    critical_path = []
    for step_id in _require_list(parsed, "criticalPath"):
        if not isinstance(step_id, str):
            raise ValueError("'criticalPath' must contain step ids")
        if step_id in known:
            critical_path.append(step_id)
        else:
            logger.warning(f"Dropping unknown critical path id {step_id!r}")

    total_cost = parsed.get("totalEstimatedCost")
    if total_cost is None:
        total_cost = sum(step.expected_cost for step in steps)

    success_probability: Optional[Any] = parsed.get("successProbability")
    if success_probability is None:
        success_probability = sum(step.probability for step in steps) / len(steps)

    reasoning = parsed.get("reasoning") or ""
    if not isinstance(reasoning, str):
        raise ValueError("'reasoning' must be a string")

    return DraftPlan(
        steps=steps,
        total_estimated_cost=total_cost,
        success_probability=success_probability,
        critical_path=critical_path,
        risks=parse_risks(_require_list(parsed, "risks"), RiskSeverity.MEDIUM),
        alternative_strategies=_parse_alternatives(_require_list(parsed, "alternativeStrategies")),
        reasoning=reasoning,
    )


class PathPlannerStage(BaseStage[DraftPlan]):
    name = "Path Planner"
    role = "path_planner"

    def build_payload(self, context: PlanningContext, timeframe: int) -> Dict[str, Any]:
        payload = {
            "intent": context.intent,
            "constraints": context.constraints,
            "priority": context.priority,
            "timeframeYears": timeframe,
            "currentState": context.current_state.model_dump(by_alias=True, mode="json", exclude_none=True),
            "goalState": context.goal_state.model_dump(by_alias=True, mode="json", exclude_none=True),
        }
        if context.request_constraints is not None:
            payload["requestConstraints"] = context.request_constraints.model_dump(
                by_alias=True, mode="json", exclude_none=True
            )
        return payload

    def validate(self, parsed: Any, context: PlanningContext, timeframe: int) -> DraftPlan:
        draft = parse_draft_plan(parsed, timeframe)
        logger.info(f"[{self.name}] {len(draft.steps)} steps, p={draft.success_probability:.2f}")
        return draft
