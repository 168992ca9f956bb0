"""
CONVERGE Migration Orchestrator

Public entry point of the planning engine.

    orchestrator = MigrationOrchestrator(Settings.from_env())
    plan = await orchestrator.plan(current_state, goal_state, timeframe=10)

Contract:
- `plan` always returns a valid MigrationPlan. Two things escape: the
  caller's own cancellation, and pydantic.ValidationError for a snapshot
  or constraints mapping that cannot be parsed (raised before any stage
  runs, since no plan can describe an unreadable traveler)
- a timeframe that is not a finite number means the default horizon;
  others are clamped to 1..MAX_TIMEFRAME_YEARS
- the credential is resolved once, here; without it no model is ever
  built and every request is served by the Fallback Generator
- any stage failure, an infeasible goal, or an invariant violation in
  the assembled plan discards partial output and returns the fallback
  plan with `is_fallback=True` and a `fallback_reason`
"""

from dataclasses import dataclass
import math
from typing import Any, List, Mapping, Optional, Union

from converge.agents.failures import ConfigurationMissing, InfeasibleGoal
from converge.agents.fallback import generate_fallback_plan
from converge.agents.models import (
    MAX_TIMEFRAME_YEARS,
    MigrationPlan,
    MigrationSnapshot,
    PlanConstraints,
    YearlySnapshot,
    utcnow,
)
from converge.agents.orchestrator.graph import PlanningPipeline
from converge.agents.orchestrator.phases import PhaseLogger, PlanningPhase
from converge.agents.refinement import PlanRefiner
from converge.core.config import Settings
from converge.core.invoker import ModelInvoker
from converge.core.llm_factory import LLMFactory
from converge.core.logger import get_logger

logger = get_logger("orchestrator")

TRACE_DELIMITER = "\n\n---\n\n"

SnapshotInput = Union[MigrationSnapshot, Mapping[str, Any]]
ConstraintsInput = Union[PlanConstraints, Mapping[str, Any], None]


@dataclass(frozen=True)
class PlanningOutcome:
    """A plan plus how the request got there."""
    plan: MigrationPlan
    phases: List[PlanningPhase]
    failure: Optional[Any] = None

    @property
    def degraded(self) -> bool:
        return self.plan.is_fallback


def _as_snapshot(value: SnapshotInput) -> MigrationSnapshot:
    if isinstance(value, MigrationSnapshot):
        return value
    return MigrationSnapshot.model_validate(value)


def _as_constraints(value: ConstraintsInput) -> Optional[PlanConstraints]:
    if value is None or isinstance(value, PlanConstraints):
        return value
    return PlanConstraints.model_validate(value)


class MigrationOrchestrator:
    """
    Runs the seven-stage planning chain and guarantees a plan comes back.

    Args:
        settings: Runtime settings (read from the environment when omitted)
        llm: Chat model to use instead of building one from settings.
             Ignored when settings carry no credential.
    """

    def __init__(self, settings: Optional[Settings] = None, llm: Any = None):
        self.settings = settings or Settings.from_env()
        self.enabled = self.settings.has_credential

        if self.enabled:
            model = llm if llm is not None else LLMFactory.get_model(self.settings)
            invoker = ModelInvoker(model, timeout_seconds=self.settings.stage_timeout_seconds)
            self.pipeline: Optional[PlanningPipeline] = PlanningPipeline(invoker, retries=self.settings.stage_retries)
            self.refiner = PlanRefiner(invoker, retries=self.settings.stage_retries)
            logger.info(f"Planning chain enabled (model={self.settings.model_name})")
        else:
            self.pipeline = None
            self.refiner = PlanRefiner(None)
            logger.info("No GEMINI_API_KEY configured; all plans will come from the fallback planner")

    def _resolve_timeframe(self, timeframe: Any) -> int:
        """Clamp the requested horizon to 1..MAX_TIMEFRAME_YEARS; unusable values mean the default."""
        default = min(self.settings.default_timeframe, MAX_TIMEFRAME_YEARS)
        if timeframe is None:
            return default
        try:
            value = float(timeframe) if not isinstance(timeframe, bool) else math.nan
        except (TypeError, ValueError):
            value = math.nan
        if not math.isfinite(value):
            logger.warning(f"Timeframe {timeframe!r} is not a usable number, using {default}")
            return default

        years = int(value)
        if years < 1:
            logger.warning(f"Timeframe {timeframe} is below one year, using 1")
            return 1
        if years > MAX_TIMEFRAME_YEARS:
            logger.warning(f"Timeframe {timeframe} exceeds {MAX_TIMEFRAME_YEARS} years, using {MAX_TIMEFRAME_YEARS}")
            return MAX_TIMEFRAME_YEARS
        return years

    def _fallback(
        self,
        current: MigrationSnapshot,
        goal: MigrationSnapshot,
        timeframe: int,
        reason: str,
        phase_logger: PhaseLogger,
        failure: Any = None,
    ) -> PlanningOutcome:
        if not phase_logger.is_terminal:
            phase_logger.log_transition(PlanningPhase.FALLBACK_REQUESTED, reason)
        logger.info(f"[{phase_logger.request_id}] serving fallback plan ({reason})")
        plan = generate_fallback_plan(current, goal, timeframe, reason=reason)
        return PlanningOutcome(plan=plan, phases=phase_logger.phases, failure=failure)

    async def plan_with_trace(
        self,
        current_state: SnapshotInput,
        goal_state: SnapshotInput,
        timeframe: Optional[int] = None,
        constraints: ConstraintsInput = None,
    ) -> PlanningOutcome:
        """
        Plan a migration and report the phases visited.

        Raises:
            pydantic.ValidationError: If a snapshot or constraints mapping is
                malformed (e.g. missing location); nothing has run at that point
        """
        current = _as_snapshot(current_state)
        goal = _as_snapshot(goal_state)
        request_constraints = _as_constraints(constraints)
        years = self._resolve_timeframe(timeframe)
        phase_logger = PhaseLogger()

        if self.pipeline is None:
            failure = ConfigurationMissing()
            return self._fallback(current, goal, years, failure.describe(), phase_logger, failure)

        logger.info(f"[{phase_logger.request_id}] planning {current.location} -> {goal.location} over {years} years")

        try:
            state = await self.pipeline.run(current, goal, years, request_constraints, phase_logger)
        except Exception as e:
            logger.exception(f"[{phase_logger.request_id}] planning chain crashed: {e}")
            return self._fallback(current, goal, years, f"internal_error: {type(e).__name__}", phase_logger)

        failure = state.get("failure")
        if failure is not None:
            if isinstance(failure, InfeasibleGoal):
                logger.info(f"[{phase_logger.request_id}] aborted: {failure.reason}")
            return self._fallback(current, goal, years, failure.describe(), phase_logger, failure)

        plan = state["plan"].model_copy(update={
            "reasoning_trace": TRACE_DELIMITER.join(state.get("traces") or []),
            "updated_at": utcnow(),
        })
        phase_logger.log_transition(PlanningPhase.DONE, "plan assembled")
        logger.info(
            f"[{phase_logger.request_id}] plan {plan.id}: {len(plan.steps)} steps, "
            f"p={plan.success_probability:.2f}, score={plan.recommendation_score}"
        )
        return PlanningOutcome(plan=plan, phases=phase_logger.phases)

    async def plan(
        self,
        current_state: SnapshotInput,
        goal_state: SnapshotInput,
        timeframe: Optional[int] = None,
        constraints: ConstraintsInput = None,
    ) -> MigrationPlan:
        """Plan a migration. Always returns a valid MigrationPlan."""
        outcome = await self.plan_with_trace(current_state, goal_state, timeframe, constraints)
        return outcome.plan

    async def optimize_path(self, plan: MigrationPlan, constraints: ConstraintsInput = None) -> MigrationPlan:
        """Re-plan an existing plan under new constraints. Returns a new plan."""
        return await self.refiner.optimize(plan, _as_constraints(constraints))

    async def simulate_timeline(self, plan: MigrationPlan, years: Optional[int] = None) -> List[YearlySnapshot]:
        """Year-by-year execution snapshots for a plan."""
        return await self.refiner.simulate(plan, years)
