"""
Planning Phase Logger

Audit trail of pipeline phase transitions for one planning request.

LangGraph handles the actual routing through conditional edges; this
class only records and logs where the request went:

    start -> goal_interpreted -> feasibility_checked -> path_planned
          -> trends_gathered -> drift_applied -> failure_simulated
          -> scored -> done

or ends in `aborted` (infeasible goal) / `fallback_requested`.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from converge.core.logger import get_logger

logger = get_logger("orchestrator.phases")


class PlanningPhase(str, Enum):
    START = "start"
    GOAL_INTERPRETED = "goal_interpreted"
    FEASIBILITY_CHECKED = "feasibility_checked"
    PATH_PLANNED = "path_planned"
    TRENDS_GATHERED = "trends_gathered"
    DRIFT_APPLIED = "drift_applied"
    FAILURE_SIMULATED = "failure_simulated"
    SCORED = "scored"
    DONE = "done"
    ABORTED = "aborted"
    FALLBACK_REQUESTED = "fallback_requested"


TERMINAL_PHASES = {PlanningPhase.DONE, PlanningPhase.ABORTED, PlanningPhase.FALLBACK_REQUESTED}


@dataclass
class PhaseTransition:
    """Record of a single phase transition."""
    from_phase: PlanningPhase
    to_phase: PlanningPhase
    reason: str = "transition"
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PhaseLogger:
    """Tracks one request's walk through the planning phases."""

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or uuid.uuid4().hex[:8]
        self.current_phase = PlanningPhase.START
        self.history: List[PhaseTransition] = []

    def log_transition(
        self,
        to_phase: PlanningPhase,
        reason: str = "transition",
        details: Optional[Dict[str, Any]] = None,
    ) -> PhaseTransition:
        transition = PhaseTransition(
            from_phase=self.current_phase,
            to_phase=to_phase,
            reason=reason,
            details=details or {},
        )
        self.history.append(transition)
        self.current_phase = to_phase

        logger.debug(f"[{self.request_id}] {transition.from_phase.value} -> {to_phase.value} ({reason})")
        return transition

    @property
    def is_terminal(self) -> bool:
        return self.current_phase in TERMINAL_PHASES

    @property
    def phases(self) -> List[PlanningPhase]:
        """Visited phases in order, starting with START."""
        return [PlanningPhase.START] + [t.to_phase for t in self.history]

    def get_summary(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "current_phase": self.current_phase.value,
            "transitions": len(self.history),
            "phases": [p.value for p in self.phases],
        }
