"""
CONVERGE Orchestrator Package

- Planning Graph: the seven stages wired as a LangGraph StateGraph
- Phase Logger: audit trail of phase transitions per request
- MigrationOrchestrator: public entry point with fallback guarantee
"""

from .phases import PhaseLogger, PhaseTransition, PlanningPhase
from .graph import PipelineState, PlanningPipeline, route_next
from .orchestrator import MigrationOrchestrator, PlanningOutcome, TRACE_DELIMITER

__all__ = [
    "PhaseLogger",
    "PhaseTransition",
    "PlanningPhase",
    "PipelineState",
    "PlanningPipeline",
    "route_next",
    "MigrationOrchestrator",
    "PlanningOutcome",
    "TRACE_DELIMITER",
]
