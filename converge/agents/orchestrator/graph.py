"""
CONVERGE Planning Graph

ROLE DEFINITION:
This file defines the ROUTING of the planning chain. The stage logic
lives in converge/agents/stages/; this file only contains:
1. State Schema (PipelineState)
2. Node Definitions (calling the stages, merging their outputs)
3. Edge/Routing Logic (stop on infeasibility or any stage failure)

Flow:
START -> interpret_goal -> check_feasibility -> plan_path -> gather_trends
      -> apply_drift -> simulate_failure -> assemble -> score -> END

Every node routes to END as soon as `failure` is set. Retry policy for
stages lives here too: a stage that returned no JSON at all is re-run
with a strict JSON-only prompt, up to `retries` times.
"""

from operator import add
from typing import Annotated, Any, Dict, List, Literal, Optional, TypedDict

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from converge.agents.failures import (
    FallbackCause,
    InfeasibleGoal,
    SchemaViolation,
    StageFailure,
    StageOutcome,
    StageResult,
)
from converge.agents.models import (
    DraftPlan,
    FeasibilityVerdict,
    MacroTrend,
    MigrationPlan,
    MigrationSnapshot,
    PlanConstraints,
    PlanningContext,
    new_plan_id,
)
from converge.agents.base.base_stage import BaseStage, run_with_retry
from converge.agents.orchestrator.phases import PhaseLogger, PlanningPhase
from converge.agents.stages import (
    FailureSimulatorStage,
    FeasibilityStage,
    GoalInterpreterStage,
    MacroFuturesStage,
    PathPlannerStage,
    PolicyDriftStage,
    RecommendationStage,
)
from converge.core.invoker import ModelInvoker
from converge.core.logger import get_logger

logger = get_logger("orchestrator.graph")


# ============================================================================
# STATE DEFINITION
# ============================================================================

class PipelineState(TypedDict, total=False):
    """State threaded through the planning chain for one request."""

    # Request
    current_state: MigrationSnapshot
    goal_state: MigrationSnapshot
    timeframe: int
    request_constraints: Optional[PlanConstraints]

    # Stage outputs
    context: PlanningContext
    verdict: FeasibilityVerdict
    draft: DraftPlan
    trends: List[MacroTrend]
    plan: MigrationPlan

    # "[Stage]: fragment" entries in stage order
    traces: Annotated[List[str], add]

    # Set once; every router stops on it
    failure: Optional[FallbackCause]


def _trace_entry(result: StageResult, fallback_text: str = "") -> List[str]:
    fragment = result.trace or fallback_text
    if not fragment:
        return []
    return [f"[{result.stage}]: {fragment}"]


def _mark(config: Optional[RunnableConfig], phase: PlanningPhase, reason: str = "stage completed") -> None:
    phase_logger = ((config or {}).get("configurable") or {}).get("phase_logger")
    if isinstance(phase_logger, PhaseLogger):
        phase_logger.log_transition(phase, reason)


def route_next(state: PipelineState) -> Literal["continue", "stop"]:
    """Stop the chain as soon as anything failed."""
    if state.get("failure") is not None:
        return "stop"
    return "continue"


# ============================================================================
# PIPELINE
# ============================================================================

class PlanningPipeline:
    """
    The seven stages wired into a compiled LangGraph.

    Holds no per-request state: the compiled graph is immutable and the
    invoker's chat model is stateless, so one instance serves concurrent
    requests.
    """

    NODE_ORDER = [
        "interpret_goal",
        "check_feasibility",
        "plan_path",
        "gather_trends",
        "apply_drift",
        "simulate_failure",
        "assemble",
        "score",
    ]

    def __init__(self, invoker: ModelInvoker, retries: int = 1):
        self.retries = retries
        self.goal_interpreter = GoalInterpreterStage(invoker)
        self.feasibility = FeasibilityStage(invoker)
        self.path_planner = PathPlannerStage(invoker)
        self.macro_futures = MacroFuturesStage(invoker)
        self.policy_drift = PolicyDriftStage(invoker)
        self.failure_simulator = FailureSimulatorStage(invoker)
        self.recommendation = RecommendationStage(invoker)
        self.graph = self._build_graph()

    # ------------------------------------------------------------------
    # Retry policy
    # ------------------------------------------------------------------

    async def run_stage(self, stage: BaseStage, *args: Any) -> StageOutcome:
        """Run a stage with the pipeline's retry budget."""
        return await run_with_retry(stage, *args, retries=self.retries)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def interpret_goal(self, state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        outcome = await self.run_stage(
            self.goal_interpreter,
            state["current_state"],
            state["goal_state"],
            state.get("request_constraints"),
        )
        if isinstance(outcome, StageFailure):
            return {"failure": outcome}
        _mark(config, PlanningPhase.GOAL_INTERPRETED)
        return {"context": outcome.parsed, "traces": _trace_entry(outcome, outcome.parsed.intent)}

    async def check_feasibility(self, state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        outcome = await self.run_stage(self.feasibility, state["context"], state["timeframe"])
        if isinstance(outcome, StageFailure):
            return {"failure": outcome}

        verdict: FeasibilityVerdict = outcome.parsed
        if not verdict.is_possible:
            reason = verdict.reason or "goal judged infeasible"
            logger.info(f"Goal judged infeasible: {reason}")
            _mark(config, PlanningPhase.ABORTED, reason)
            return {"verdict": verdict, "failure": InfeasibleGoal(reason)}

        _mark(config, PlanningPhase.FEASIBILITY_CHECKED)
        return {"verdict": verdict, "traces": _trace_entry(outcome, verdict.reason)}

    async def plan_path(self, state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        outcome = await self.run_stage(self.path_planner, state["context"], state["timeframe"])
        if isinstance(outcome, StageFailure):
            return {"failure": outcome}
        _mark(config, PlanningPhase.PATH_PLANNED)
        return {"draft": outcome.parsed, "traces": _trace_entry(outcome, outcome.parsed.reasoning)}

    async def gather_trends(self, state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        outcome = await self.run_stage(self.macro_futures, state["context"], state["draft"], state["timeframe"])
        if isinstance(outcome, StageFailure):
            return {"failure": outcome}
        _mark(config, PlanningPhase.TRENDS_GATHERED)
        titles = ", ".join(t.title for t in outcome.parsed)
        return {"trends": outcome.parsed, "traces": _trace_entry(outcome, titles)}

    async def apply_drift(self, state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        draft = state["draft"]
        outcome = await self.run_stage(self.policy_drift, state["context"], draft, state.get("trends") or [])
        if isinstance(outcome, StageFailure):
            return {"failure": outcome}

        annotations = outcome.parsed
        draft = draft.model_copy(update={
            "policy_alerts": draft.policy_alerts + annotations.alerts,
            "risks": draft.risks + annotations.risks,
        })
        _mark(config, PlanningPhase.DRIFT_APPLIED)
        return {"draft": draft, "traces": _trace_entry(outcome)}

    async def simulate_failure(self, state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        draft = state["draft"]
        outcome = await self.run_stage(self.failure_simulator, state["context"], draft)
        if isinstance(outcome, StageFailure):
            return {"failure": outcome}

        analysis = outcome.parsed
        probability = draft.success_probability
        if analysis.adjusted_probability is not None:
            # Stress testing only ever lowers confidence
            probability = min(analysis.adjusted_probability, probability)

        draft = draft.model_copy(update={
            "risks": draft.risks + analysis.risks,
            "success_probability": probability,
        })
        _mark(config, PlanningPhase.FAILURE_SIMULATED)
        return {"draft": draft, "traces": _trace_entry(outcome)}

    async def assemble(self, state: PipelineState) -> Dict[str, Any]:
        """Merge the annotated draft into a MigrationPlan (checks every plan invariant)."""
        current = state["current_state"]
        draft = state["draft"]
        try:
            plan = MigrationPlan(
                id=new_plan_id(),
                user_id=current.user_id or "default",
                start_state=current,
                goal_state=state["goal_state"],
                timeframe=state["timeframe"],
                steps=draft.steps,
                total_estimated_cost=draft.total_estimated_cost,
                success_probability=draft.success_probability,
                critical_path=draft.critical_path,
                risks=draft.risks,
                alternative_strategies=draft.alternative_strategies,
                policy_alerts=draft.policy_alerts,
            )
        except ValueError as e:
            logger.warning(f"Assembled plan violates invariants: {e}")
            return {"failure": SchemaViolation(str(e))}
        return {"plan": plan}

    async def score(self, state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        plan = state["plan"]
        outcome = await self.run_stage(self.recommendation, state["context"], plan)
        if isinstance(outcome, StageFailure):
            return {"failure": outcome}

        result = outcome.parsed
        plan = plan.model_copy(update={
            "recommendation_score": result.score,
            "recommendation_summary": result.summary,
        })
        _mark(config, PlanningPhase.SCORED)
        return {"plan": plan, "traces": _trace_entry(outcome, result.summary)}

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def _build_graph(self):
        graph = StateGraph(PipelineState)

        nodes = {
            "interpret_goal": self.interpret_goal,
            "check_feasibility": self.check_feasibility,
            "plan_path": self.plan_path,
            "gather_trends": self.gather_trends,
            "apply_drift": self.apply_drift,
            "simulate_failure": self.simulate_failure,
            "assemble": self.assemble,
            "score": self.score,
        }
        for name in self.NODE_ORDER:
            graph.add_node(name, nodes[name])

        graph.add_edge(START, self.NODE_ORDER[0])
        for current, following in zip(self.NODE_ORDER, self.NODE_ORDER[1:]):
            graph.add_conditional_edges(current, route_next, {"continue": following, "stop": END})
        graph.add_edge(self.NODE_ORDER[-1], END)

        return graph.compile()

    async def run(
        self,
        current: MigrationSnapshot,
        goal: MigrationSnapshot,
        timeframe: int,
        request_constraints: Optional[PlanConstraints] = None,
        phase_logger: Optional[PhaseLogger] = None,
    ) -> PipelineState:
        """Run the whole chain and return the final graph state."""
        initial_state: PipelineState = {
            "current_state": current,
            "goal_state": goal,
            "timeframe": timeframe,
            "request_constraints": request_constraints,
            "traces": [],
            "failure": None,
        }
        config: RunnableConfig = {"configurable": {"phase_logger": phase_logger}}
        return await self.graph.ainvoke(initial_state, config=config)
