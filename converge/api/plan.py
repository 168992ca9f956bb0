"""
Planning API

Thin HTTP surface over MigrationOrchestrator.

- POST /api/gemini/plan      plan a migration
- GET  /api/gemini/plan      endpoint description
- POST /api/gemini/optimize  re-plan an existing plan under new constraints
- POST /api/gemini/simulate  year-by-year execution snapshots

The orchestrator instance lives on app.state (created when main.py
is imported). Planning never fails with a 5xx for model trouble: degraded
plans come back with `degraded: true`.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from converge.agents.models import MigrationPlan, PlanConstraints
from converge.agents.orchestrator import MigrationOrchestrator
from converge.core.logger import get_logger

logger = get_logger("api.plan")

router = APIRouter(prefix="/api/gemini", tags=["planning"])

DEFAULT_REASONING = "Generated using Gemini 3 API for goal-conditioned planning"


# ============================================================================
# Models
# ============================================================================

class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlanRequest(_Body):
    """Loose on purpose: missing or malformed states are reported as 400."""
    current_state: Optional[Dict[str, Any]] = None
    goal_state: Optional[Dict[str, Any]] = None
    timeframe: Optional[int] = None
    constraints: Optional[Dict[str, Any]] = None


class OptimizeRequest(_Body):
    plan: Dict[str, Any]
    constraints: Optional[Dict[str, Any]] = None


class SimulateRequest(_Body):
    plan: Dict[str, Any]
    years: Optional[int] = None


# ============================================================================
# Dependencies
# ============================================================================

def get_orchestrator(request: Request) -> MigrationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Planning engine not initialized")
    return orchestrator


def _validation_detail(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def _load_plan(data: Dict[str, Any]) -> MigrationPlan:
    try:
        return MigrationPlan.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid plan: {_validation_detail(e)}")


def _load_constraints(data: Optional[Dict[str, Any]]) -> Optional[PlanConstraints]:
    if data is None:
        return None
    try:
        return PlanConstraints.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid constraints: {_validation_detail(e)}")


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/plan")
async def create_plan(
    body: PlanRequest,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator),
):
    """Generate a migration plan from current state to goal state."""
    if not body.current_state or not body.goal_state:
        raise HTTPException(status_code=400, detail="Missing required fields: currentState and goalState")

    constraints = _load_constraints(body.constraints)
    try:
        plan = await orchestrator.plan(body.current_state, body.goal_state, body.timeframe, constraints)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid state: {_validation_detail(e)}")

    payload = plan.model_dump(by_alias=True, mode="json")
    return {
        "plan": payload,
        "reasoning": plan.reasoning_trace or DEFAULT_REASONING,
        "thoughtSignature": plan.reasoning_trace or None,
        "alternativeStrategies": payload["alternativeStrategies"],
        "risks": payload["risks"],
        "confidence": plan.success_probability,
        "degraded": plan.is_fallback,
    }


@router.get("/plan")
async def describe_plan_endpoint():
    return {
        "message": "Gemini Planning API",
        "version": "1.0.0",
        "endpoints": {
            "POST": "Generate migration plan from current state to goal state",
        },
    }


@router.post("/optimize")
async def optimize_plan(
    body: OptimizeRequest,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator),
):
    """Re-plan an existing plan under new constraints."""
    plan = _load_plan(body.plan)
    optimized = await orchestrator.optimize_path(plan, _load_constraints(body.constraints))
    return {"plan": optimized.model_dump(by_alias=True, mode="json")}


@router.post("/simulate")
async def simulate_plan(
    body: SimulateRequest,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator),
):
    """Simulate plan execution year by year."""
    plan = _load_plan(body.plan)
    if body.years is not None and not 0 <= body.years <= plan.timeframe:
        raise HTTPException(status_code=400, detail=f"years must be between 0 and {plan.timeframe}")
    timeline = await orchestrator.simulate_timeline(plan, body.years)
    return {"timeline": [snapshot.model_dump(by_alias=True, mode="json") for snapshot in timeline]}
