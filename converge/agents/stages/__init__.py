"""
CONVERGE Planning Stages

The seven stages of the planning chain, in execution order.
"""

from .goal_interpreter import GoalInterpreterStage
from .feasibility import FeasibilityStage, precheck
from .path_planner import PathPlannerStage, parse_draft_plan
from .macro_futures import MacroFuturesStage
from .policy_drift import DriftAnnotations, PolicyDriftStage
from .failure_simulator import FailureSimulatorStage
from .recommendation import RecommendationStage

__all__ = [
    "GoalInterpreterStage",
    "FeasibilityStage",
    "precheck",
    "PathPlannerStage",
    "parse_draft_plan",
    "MacroFuturesStage",
    "DriftAnnotations",
    "PolicyDriftStage",
    "FailureSimulatorStage",
    "RecommendationStage",
]
