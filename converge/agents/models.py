"""
CONVERGE Planning Models

Pydantic models for everything that flows through the planning pipeline:
1. MigrationSnapshot / PlanConstraints - request inputs
2. PlanningContext - Goal Interpreter output, consumed by every later stage
3. FeasibilityVerdict - Feasibility Envelope gate
4. MigrationStep / DraftPlan - Path Planner output
5. MacroTrend / PolicyAlert - Macro Futures and Policy Drift annotations
6. FailureAnalysis / RecommendationResult - red-team and scoring output
7. MigrationPlan - the assembled, immutable result
8. YearlySnapshot - timeline simulation output

Wire format is camelCase (the shape the model is prompted with and the
shape the HTTP layer returns); Python attributes are snake_case.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional
import uuid

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# ============================================================================
# ENUMS
# ============================================================================

class StepCategory(str, Enum):
    """Category of a migration step."""
    SKILL = "skill"
    FINANCIAL = "financial"
    LEGAL = "legal"
    RELOCATION = "relocation"
    NETWORK = "network"
    OTHER = "other"


class Priority(str, Enum):
    """The axis the traveler optimizes for."""
    SPEED = "speed"
    COST = "cost"
    SAFETY = "safety"


class RiskSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Sentiment(str, Enum):
    """Policy sentiment attached to a step's evidence."""
    FAVORABLE = "favorable"
    BLOCKING = "blocking"
    NEUTRAL = "neutral"


class TrendImpact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class RiskTolerance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _lowercase(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


Lowercased = BeforeValidator(_lowercase)


# Longest planning horizon accepted anywhere in the engine
MAX_TIMEFRAME_YEARS = 50


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_plan_id() -> str:
    return f"plan_{uuid.uuid4().hex[:12]}"


class CamelModel(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# ============================================================================
# REQUEST INPUTS
# ============================================================================

class MigrationSnapshot(CamelModel):
    """A traveler's situation at one point in time (current or goal)."""
    location: str = Field(min_length=1)
    profession: str = ""
    income: float = Field(default=0.0, ge=0.0)
    skills: List[str] = Field(default_factory=list)
    qualifications: List[str] = Field(default_factory=list)
    family_status: str = ""
    dependents: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("dependents", "dependencies"),
        description="Number of dependents (the original wire field is 'dependencies')",
    )
    assets: float = Field(default=0.0, ge=0.0)
    liabilities: float = Field(default=0.0, ge=0.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def net_worth(self) -> float:
        return self.assets - self.liabilities


class PlanConstraints(CamelModel):
    """Optional caller-side limits on the plan."""
    max_budget: Optional[float] = Field(default=None, ge=0.0)
    preferred_locations: List[str] = Field(default_factory=list)
    family_considerations: List[str] = Field(default_factory=list)
    risk_tolerance: Annotated[Optional[RiskTolerance], Lowercased] = None


# ============================================================================
# STAGE OUTPUTS
# ============================================================================

class PlanningContext(CamelModel):
    """
    Normalized traveler intent produced by the Goal Interpreter.

    Immutable once produced; every downstream stage reads it.
    """
    model_config = ConfigDict(frozen=True)

    current_state: MigrationSnapshot
    goal_state: MigrationSnapshot
    intent: str = Field(min_length=1)
    constraints: List[str] = Field(default_factory=list)
    priority: Annotated[Priority, Lowercased] = Priority.SAFETY
    request_constraints: Optional[PlanConstraints] = None


class FeasibilityVerdict(CamelModel):
    is_possible: bool
    reason: str = ""


class MultimodalProof(CamelModel):
    """Evidence and narration attached to a step for the presentation layer."""
    news_links: List[str] = Field(default_factory=list)
    audio_script: str = ""
    sentiment: Annotated[Sentiment, Lowercased] = Sentiment.NEUTRAL


class MigrationStep(CamelModel):
    """Atomic unit of a migration plan."""
    id: str = Field(min_length=1)
    year: int = Field(ge=0)
    quarter: int = Field(default=1, ge=1, le=4)
    title: str = Field(min_length=1)
    description: str = ""
    category: Annotated[StepCategory, Lowercased] = StepCategory.OTHER
    requirements: List[str] = Field(default_factory=list)
    expected_cost: float = Field(default=0.0, ge=0.0)
    expected_duration: float = Field(default=0.0, ge=0.0, description="Months")
    probability: float = Field(ge=0.0, le=1.0)
    dependencies: List[str] = Field(default_factory=list)
    multimodal_proof: Optional[MultimodalProof] = None

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("step id cannot be blank")
        return value


class RiskItem(CamelModel):
    description: str = Field(min_length=1)
    severity: Annotated[RiskSeverity, Lowercased] = RiskSeverity.MEDIUM
    mitigation: str = ""


class AlternativeStrategy(CamelModel):
    name: str = Field(min_length=1)
    description: str = ""
    tradeoffs: str = ""


class MacroTrend(CamelModel):
    """An exogenous shift relevant to the migration corridor."""
    title: str = Field(min_length=1)
    description: str = ""
    impact: Annotated[TrendImpact, Lowercased] = TrendImpact.NEUTRAL
    horizon: str = ""


class PolicyAlert(CamelModel):
    """Policy Drift annotation tying a macro trend to plan steps."""
    trend: str = Field(min_length=1)
    message: str = Field(min_length=1)
    affected_step_ids: List[str] = Field(default_factory=list)
    severity: Annotated[RiskSeverity, Lowercased] = RiskSeverity.MEDIUM
    mitigation: str = ""


class DraftPlan(CamelModel):
    """Path Planner output, annotated in place by later stages."""
    steps: List[MigrationStep] = Field(min_length=1)
    total_estimated_cost: float = Field(ge=0.0)
    success_probability: float = Field(ge=0.0, le=1.0)
    critical_path: List[str] = Field(default_factory=list)
    risks: List[RiskItem] = Field(default_factory=list)
    alternative_strategies: List[AlternativeStrategy] = Field(default_factory=list)
    policy_alerts: List[PolicyAlert] = Field(default_factory=list)
    reasoning: str = ""

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]


class FailureAnalysis(CamelModel):
    risks: List[RiskItem] = Field(default_factory=list)
    adjusted_probability: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class RecommendationResult(CamelModel):
    score: float = Field(ge=0.0, le=100.0)
    summary: str = Field(min_length=1)


# ============================================================================
# PLAN INVARIANTS
# ============================================================================

def find_dependency_cycle(steps: List[MigrationStep]) -> Optional[List[str]]:
    """
    Return one dependency cycle as a list of step ids, or None.

    Edges to unknown ids are ignored here; they are reported separately.
    """
    graph = {step.id: [d for d in step.dependencies] for step in steps}
    WHITE, GREY, BLACK = 0, 1, 2
    color = {step_id: WHITE for step_id in graph}

    for root in graph:
        if color[root] != WHITE:
            continue
        stack = [(root, iter(graph[root]))]
        path = [root]
        color[root] = GREY
        while stack:
            node, children = stack[-1]
            advanced = False
            for child in children:
                if child not in graph:
                    continue
                if color[child] == GREY:
                    return path[path.index(child):] + [child]
                if color[child] == WHITE:
                    color[child] = GREY
                    stack.append((child, iter(graph[child])))
                    path.append(child)
                    advanced = True
                    break
            if not advanced:
                color[node] = BLACK
                stack.pop()
                path.pop()
    return None


def plan_invariant_violations(
    steps: List[MigrationStep],
    timeframe: int,
    critical_path: List[str],
) -> List[str]:
    """List every plan invariant the given steps break (empty when valid)."""
    violations: List[str] = []

    if not steps:
        return ["plan has no steps"]

    ids = [step.id for step in steps]
    duplicates = sorted({step_id for step_id in ids if ids.count(step_id) > 1})
    if duplicates:
        violations.append(f"duplicate step ids: {duplicates}")

    known = set(ids)
    for step in steps:
        missing = [d for d in step.dependencies if d not in known]
        if missing:
            violations.append(f"step {step.id} depends on unknown steps {missing}")
        if step.year > timeframe:
            violations.append(f"step {step.id} year {step.year} exceeds timeframe {timeframe}")

    cycle = find_dependency_cycle(steps)
    if cycle:
        violations.append(f"dependency cycle: {' -> '.join(cycle)}")

    unknown_path = [step_id for step_id in critical_path if step_id not in known]
    if unknown_path:
        violations.append(f"critical path references unknown steps {unknown_path}")

    return violations


# ============================================================================
# ASSEMBLED PLAN
# ============================================================================

class MigrationPlan(CamelModel):
    """
    The orchestrator's result. Constructed once per request, never mutated.

    Construction validates every plan invariant, so any MigrationPlan
    instance is well-formed. `is_fallback` marks a degraded result.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_plan_id)
    user_id: str = "default"
    start_state: MigrationSnapshot
    goal_state: MigrationSnapshot
    timeframe: int = Field(ge=1, le=MAX_TIMEFRAME_YEARS)
    steps: List[MigrationStep] = Field(min_length=1)
    total_estimated_cost: float = Field(ge=0.0)
    success_probability: float = Field(ge=0.0, le=1.0)
    critical_path: List[str] = Field(default_factory=list)
    risks: List[RiskItem] = Field(default_factory=list)
    alternative_strategies: List[AlternativeStrategy] = Field(default_factory=list)
    policy_alerts: List[PolicyAlert] = Field(default_factory=list)
    reasoning_trace: str = ""
    recommendation_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    recommendation_summary: Optional[str] = None
    is_fallback: bool = False
    fallback_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> "MigrationPlan":
        violations = plan_invariant_violations(self.steps, self.timeframe, self.critical_path)
        if violations:
            raise ValueError("; ".join(violations))
        return self

    def get_step(self, step_id: str) -> Optional[MigrationStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


# ============================================================================
# TIMELINE SIMULATION
# ============================================================================

class TimelineVariance(CamelModel):
    financial: float = Field(default=0.0, description="Fractional deviation from planned spend")
    timeline: int = Field(default=0, description="Months ahead (+) or behind (-)")
    probability: float = Field(default=0.0, ge=0.0, le=1.0)


class YearlySnapshot(CamelModel):
    year: int = Field(ge=0)
    completed_steps: List[str] = Field(default_factory=list)
    upcoming_steps: List[str] = Field(default_factory=list)
    variance: TimelineVariance = Field(default_factory=TimelineVariance)
