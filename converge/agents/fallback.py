"""
Fallback Generator

Builds a complete, valid MigrationPlan with no external call. Used when
no credential is configured and whenever the planning chain cannot
produce a trustworthy plan.

The output is a pure function of (current, goal, timeframe): the id is a
hash of the inputs and the timestamps are fixed, so identical inputs
give equal plans.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import List, Optional

from converge.agents.models import (
    AlternativeStrategy,
    MAX_TIMEFRAME_YEARS,
    MigrationPlan,
    MigrationSnapshot,
    MigrationStep,
    MultimodalProof,
    RiskItem,
    RiskSeverity,
    Sentiment,
    StepCategory,
)

FALLBACK_EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)
FALLBACK_SUCCESS_PROBABILITY = 0.72
FALLBACK_RECOMMENDATION_SCORE = 60.0

# (id, fraction of timeframe, quarter, title, description, category, cost, months, probability, deps)
_MILESTONES = [
    ("step_1", 0.0, 1, "Skills Assessment",
     "Benchmark current skills against roles in {goal} and list the gaps to close.",
     StepCategory.SKILL, 500.0, 2.0, 0.95, []),
    ("step_2", 0.2, 2, "Professional Certification",
     "Obtain the certifications employers in {goal} recognize for {profession}.",
     StepCategory.SKILL, 3000.0, 6.0, 0.85, ["step_1"]),
    ("step_3", 0.4, 1, "Financial Preparation",
     "Build a relocation fund covering visa fees, moving costs and six months of expenses.",
     StepCategory.FINANCIAL, 15000.0, 12.0, 0.8, ["step_1"]),
    ("step_4", 0.6, 3, "Visa Application",
     "Secure a job offer or sponsorship and file the visa application for {goal}.",
     StepCategory.LEGAL, 5000.0, 6.0, 0.7, ["step_2", "step_3"]),
    ("step_5", 0.8, 4, "Relocation",
     "Move from {current} to {goal}, register residency and settle in.",
     StepCategory.RELOCATION, 12000.0, 3.0, 0.9, ["step_4"]),
]

_RISKS = [
    RiskItem(
        description="Visa application delays or rejection",
        severity=RiskSeverity.HIGH,
        mitigation="Prepare applications for more than one destination and keep documents current.",
    ),
    RiskItem(
        description="Currency and cost-of-living changes erode the relocation fund",
        severity=RiskSeverity.MEDIUM,
        mitigation="Keep a 20% buffer on the savings target and review it every six months.",
    ),
    RiskItem(
        description="Local employers do not recognize existing qualifications",
        severity=RiskSeverity.MEDIUM,
        mitigation="Start credential recognition early and favor internationally recognized certifications.",
    ),
]

_ALTERNATIVE = AlternativeStrategy(
    name="Intra-company Transfer",
    description="Join an employer with an office in the destination and request a transfer.",
    tradeoffs="Slower and dependent on one employer, but visa sponsorship is handled for you.",
)


def fallback_plan_id(current: MigrationSnapshot, goal: MigrationSnapshot, timeframe: int) -> str:
    """Stable id derived from the request inputs."""
    material = json.dumps(
        {
            "current": current.model_dump(mode="json"),
            "goal": goal.model_dump(mode="json"),
            "timeframe": timeframe,
        },
        sort_keys=True,
        default=str,
    )
    return f"plan_fallback_{hashlib.sha1(material.encode('utf-8')).hexdigest()[:12]}"


def _build_steps(current: MigrationSnapshot, goal: MigrationSnapshot, timeframe: int) -> List[MigrationStep]:
    names = {
        "current": current.location,
        "goal": goal.location,
        "profession": goal.profession or current.profession or "your profession",
    }
    steps = []
    for step_id, fraction, quarter, title, description, category, cost, months, probability, deps in _MILESTONES:
        steps.append(MigrationStep(
            id=step_id,
            year=int(timeframe * fraction),
            quarter=quarter,
            title=title,
            description=description.format(**names),
            category=category,
            expected_cost=cost,
            expected_duration=months,
            probability=probability,
            dependencies=list(deps),
            multimodal_proof=MultimodalProof(
                audio_script=f"{title}: {description.format(**names)}",
                sentiment=Sentiment.NEUTRAL,
            ),
        ))
    return steps


def generate_fallback_plan(
    current: MigrationSnapshot,
    goal: MigrationSnapshot,
    timeframe: int,
    reason: Optional[str] = None,
) -> MigrationPlan:
    """
    Produce the deterministic substitute plan.

    Args:
        current: Traveler's current snapshot
        goal: Traveler's goal snapshot
        timeframe: Planning horizon in years (>= 1)
        reason: Why the fallback was used (stored on the plan)

    Returns:
        MigrationPlan with is_fallback=True
    """
    timeframe = min(max(1, int(timeframe)), MAX_TIMEFRAME_YEARS)
    steps = _build_steps(current, goal, timeframe)

    return MigrationPlan(
        id=fallback_plan_id(current, goal, timeframe),
        user_id=current.user_id or "default",
        start_state=current,
        goal_state=goal,
        timeframe=timeframe,
        steps=steps,
        total_estimated_cost=sum(step.expected_cost for step in steps),
        success_probability=FALLBACK_SUCCESS_PROBABILITY,
        critical_path=[step.id for step in steps],
        risks=list(_RISKS),
        alternative_strategies=[_ALTERNATIVE],
        reasoning_trace=(
            "[Fallback Planner]: Generated a standard five-milestone plan from "
            f"{current.location} to {goal.location} over {timeframe} years without model calls."
        ),
        recommendation_score=FALLBACK_RECOMMENDATION_SCORE,
        recommendation_summary=(
            "A conservative template plan. Configure the planning model for a plan tailored to your profile."
        ),
        is_fallback=True,
        fallback_reason=reason,
        created_at=FALLBACK_EPOCH,
        updated_at=FALLBACK_EPOCH,
    )
