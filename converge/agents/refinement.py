"""
Plan Refinement

Operations on a plan that already exists:
1. optimize - re-plan under new constraints (same schema as the Path Planner)
2. simulate - year-by-year execution snapshots with variance figures

Both go through the same stage loop as the planning chain and both have a
deterministic fallback, so neither ever raises to the caller. Input plans
are never modified; optimize returns a new plan.
"""

import random
from typing import Any, Dict, List, Optional

from converge.agents.base.base_stage import BaseStage, run_with_retry
from converge.agents.failures import StageFailure
from converge.agents.models import (
    DraftPlan,
    MigrationPlan,
    PlanConstraints,
    TimelineVariance,
    YearlySnapshot,
    utcnow,
)
from converge.agents.stages.path_planner import parse_draft_plan
from converge.core.invoker import ModelInvoker
from converge.core.logger import get_logger

logger = get_logger("refinement")

FALLBACK_COST_FACTOR = 0.9
UPCOMING_STEP_LIMIT = 3


# ============================================================================
# STAGES
# ============================================================================

class PathOptimizerStage(BaseStage[DraftPlan]):
    name = "Path Optimizer"
    role = "optimizer"

    def build_payload(self, plan: MigrationPlan, constraints: PlanConstraints) -> Dict[str, Any]:
        return {
            "timeframeYears": plan.timeframe,
            "plan": plan.model_dump(
                by_alias=True,
                mode="json",
                include={
                    "steps",
                    "total_estimated_cost",
                    "success_probability",
                    "critical_path",
                    "risks",
                    "alternative_strategies",
                },
            ),
            "newConstraints": constraints.model_dump(by_alias=True, mode="json", exclude_none=True),
        }

    def validate(self, parsed: Any, plan: MigrationPlan, constraints: PlanConstraints) -> DraftPlan:
        return parse_draft_plan(parsed, plan.timeframe)


class TimelineSimulatorStage(BaseStage[List[YearlySnapshot]]):
    name = "Timeline Simulator"
    role = "simulator"

    def build_payload(self, plan: MigrationPlan, years: int) -> Dict[str, Any]:
        return {
            "years": years,
            "steps": [
                {"id": s.id, "year": s.year, "title": s.title, "probability": s.probability}
                for s in plan.steps
            ],
            "successProbability": plan.success_probability,
        }

    def validate(self, parsed: Any, plan: MigrationPlan, years: int) -> List[YearlySnapshot]:
        items = parsed.get("timeline") if isinstance(parsed, dict) else parsed
        if not isinstance(items, list):
            raise ValueError("expected a 'timeline' array")

        known = set(s.id for s in plan.steps)
        snapshots = []
        for item in items:
            if not isinstance(item, dict):
                raise ValueError("timeline entries must be objects")
            snapshot = YearlySnapshot.model_validate(item)
            snapshot = snapshot.model_copy(update={
                "completed_steps": [s for s in snapshot.completed_steps if s in known],
                "upcoming_steps": [s for s in snapshot.upcoming_steps if s in known],
            })
            snapshots.append(snapshot)

        snapshots.sort(key=lambda s: s.year)
        covered = [s.year for s in snapshots]
        if covered != list(range(years + 1)):
            raise ValueError(f"timeline must cover years 0..{years} exactly once, got {covered}")
        return snapshots


# ============================================================================
# DETERMINISTIC FALLBACKS
# ============================================================================

def fallback_optimize(plan: MigrationPlan) -> MigrationPlan:
    """Cut every step's cost by 10%."""
    steps = [
        step.model_copy(update={"expected_cost": round(step.expected_cost * FALLBACK_COST_FACTOR, 2)})
        for step in plan.steps
    ]
    return plan.model_copy(update={
        "steps": steps,
        "total_estimated_cost": round(plan.total_estimated_cost * FALLBACK_COST_FACTOR, 2),
        "updated_at": utcnow(),
    })


def simulation_years(plan: MigrationPlan, years: Any = None) -> int:
    """Resolve a requested simulation length to 0..plan.timeframe."""
    if years is None:
        return plan.timeframe
    try:
        requested = int(years)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Simulation length {years!r} is not a whole number, using {plan.timeframe}")
        return plan.timeframe
    if requested < 0 or requested > plan.timeframe:
        clamped = min(max(0, requested), plan.timeframe)
        logger.warning(f"Simulation length {requested} is outside 0..{plan.timeframe}, using {clamped}")
        return clamped
    return requested


def fallback_simulate(plan: MigrationPlan, years: int) -> List[YearlySnapshot]:
    """Snapshots with variance drawn from a generator seeded on the plan id."""
    rng = random.Random(f"{plan.id}:{years}")
    timeline = []
    for year in range(years + 1):
        timeline.append(YearlySnapshot(
            year=year,
            completed_steps=[s.id for s in plan.steps if s.year < year],
            upcoming_steps=[s.id for s in plan.steps if s.year >= year][:UPCOMING_STEP_LIMIT],
            variance=TimelineVariance(
                financial=round(rng.random() * 0.1 - 0.05, 4),
                timeline=rng.randint(-1, 1),
                probability=round(0.75 + rng.random() * 0.2, 4),
            ),
        ))
    return timeline


# ============================================================================
# REFINER
# ============================================================================

class PlanRefiner:
    """
    Optimize and simulate existing plans.

    Args:
        invoker: Model Invoker, or None to always use the fallbacks
        retries: Strict-prompt retries for replies with no JSON
    """

    def __init__(self, invoker: Optional[ModelInvoker] = None, retries: int = 1):
        self.retries = retries
        self.optimizer = PathOptimizerStage(invoker) if invoker else None
        self.simulator = TimelineSimulatorStage(invoker) if invoker else None

    async def optimize(self, plan: MigrationPlan, constraints: Optional[PlanConstraints] = None) -> MigrationPlan:
        constraints = constraints or PlanConstraints()
        if self.optimizer is None:
            return fallback_optimize(plan)

        outcome = await run_with_retry(self.optimizer, plan, constraints, retries=self.retries)
        if isinstance(outcome, StageFailure):
            logger.warning(f"Optimization failed ({outcome.describe()}), using cost-reduction fallback")
            return fallback_optimize(plan)

        draft: DraftPlan = outcome.parsed
        known = set(draft.step_ids)
        alerts = [
            alert.model_copy(update={"affected_step_ids": [s for s in alert.affected_step_ids if s in known]})
            for alert in plan.policy_alerts
        ]
        trace = outcome.trace or draft.reasoning or "Re-planned under new constraints."

        # The score and summary described the old steps; they are not carried over
        fields = plan.model_dump()
        fields.update(
            steps=draft.steps,
            total_estimated_cost=draft.total_estimated_cost,
            success_probability=draft.success_probability,
            critical_path=draft.critical_path,
            risks=draft.risks,
            alternative_strategies=draft.alternative_strategies or plan.alternative_strategies,
            policy_alerts=alerts,
            reasoning_trace=f"[{self.optimizer.name}]: {trace}",
            recommendation_score=None,
            recommendation_summary=None,
            is_fallback=False,
            fallback_reason=None,
            updated_at=utcnow(),
        )
        try:
            return MigrationPlan(**fields)
        except ValueError as e:
            logger.warning(f"Optimized plan violates invariants ({e}), using cost-reduction fallback")
            return fallback_optimize(plan)

    async def simulate(self, plan: MigrationPlan, years: Optional[int] = None) -> List[YearlySnapshot]:
        """Snapshots for years 0..years; `years` is clamped to the plan's own horizon."""
        years = simulation_years(plan, years)
        if self.simulator is None:
            return fallback_simulate(plan, years)

        outcome = await run_with_retry(self.simulator, plan, years, retries=self.retries)
        if isinstance(outcome, StageFailure):
            logger.warning(f"Simulation failed ({outcome.describe()}), using seeded fallback")
            return fallback_simulate(plan, years)
        return outcome.parsed
