"""
Policy Drift Interpreter Stage

Folds macro trends into the draft plan as annotations. This stage never
removes, reorders or rewrites steps: it only produces policy alerts and
the risk items derived from them, which the orchestrator appends.

Every trend ends up with an alert. Trends the model did not address get
a plain alert built from the trend itself. An alert becomes a risk when
its severity is high/critical or its trend has negative impact.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from converge.agents.base.base_stage import BaseStage
from converge.agents.failures import StageFailure, StageResult
from converge.agents.models import (
    DraftPlan,
    MacroTrend,
    PlanningContext,
    PolicyAlert,
    RiskItem,
    RiskSeverity,
    TrendImpact,
)
from converge.core.logger import get_logger

logger = get_logger("stages.policy_drift")

_RISKY_SEVERITIES = {RiskSeverity.HIGH.value, RiskSeverity.CRITICAL.value}


@dataclass(frozen=True)
class DriftAnnotations:
    """What Policy Drift adds to a draft plan."""
    alerts: List[PolicyAlert] = field(default_factory=list)
    risks: List[RiskItem] = field(default_factory=list)


def _key(title: str) -> str:
    return title.strip().lower()


def derive_risks(alerts: List[PolicyAlert], trends: List[MacroTrend]) -> List[RiskItem]:
    negative = {_key(t.title) for t in trends if t.impact == TrendImpact.NEGATIVE.value}
    risks = []
    for alert in alerts:
        if alert.severity in _RISKY_SEVERITIES or _key(alert.trend) in negative:
            risks.append(RiskItem(
                description=f"Policy drift ({alert.trend}): {alert.message}",
                severity=alert.severity,
                mitigation=alert.mitigation,
            ))
    return risks


class PolicyDriftStage(BaseStage[DriftAnnotations]):
    name = "Policy Drift"
    role = "policy_drift"

    async def run(
        self,
        context: PlanningContext,
        draft: DraftPlan,
        trends: List[MacroTrend],
        strict: bool = False,
    ) -> Union[StageResult[DriftAnnotations], StageFailure]:
        if not trends:
            logger.info(f"[{self.name}] no trends to fold in, skipping model call")
            return StageResult(stage=self.name, parsed=DriftAnnotations())
        return await super().run(context, draft, trends, strict=strict)

    def build_payload(self, context: PlanningContext, draft: DraftPlan, trends: List[MacroTrend]) -> Dict[str, Any]:
        return {
            "intent": context.intent,
            "trends": [t.model_dump(by_alias=True, mode="json") for t in trends],
            "draftPlan": {
                "steps": [
                    {
                        "id": step.id,
                        "year": step.year,
                        "title": step.title,
                        "category": step.category,
                        "requirements": step.requirements,
                    }
                    for step in draft.steps
                ],
                "risks": [r.model_dump(by_alias=True, mode="json") for r in draft.risks],
            },
        }

    def validate(
        self,
        parsed: Any,
        context: PlanningContext,
        draft: DraftPlan,
        trends: List[MacroTrend],
    ) -> DriftAnnotations:
        items = parsed.get("alerts") if isinstance(parsed, dict) else parsed
        if not isinstance(items, list):
            raise ValueError("expected an 'alerts' array")

        known = set(draft.step_ids)
        alerts: List[PolicyAlert] = []
        for item in items:
            if not isinstance(item, dict):
                raise ValueError(f"alert entries must be objects, got {type(item).__name__}")
            alert = PolicyAlert.model_validate(item)
            unknown = [s for s in alert.affected_step_ids if s not in known]
            if unknown:
                logger.warning(f"[{self.name}] dropping unknown step ids {unknown} from alert '{alert.trend}'")
                alert = alert.model_copy(
                    update={"affected_step_ids": [s for s in alert.affected_step_ids if s in known]}
                )
            alerts.append(alert)

        covered = {_key(a.trend) for a in alerts}
        for trend in trends:
            if _key(trend.title) in covered:
                continue
            negative = trend.impact == TrendImpact.NEGATIVE.value
            alerts.append(PolicyAlert(
                trend=trend.title,
                message=trend.description or trend.title,
                severity=RiskSeverity.MEDIUM if negative else RiskSeverity.LOW,
            ))

        return DriftAnnotations(alerts=alerts, risks=derive_risks(alerts, trends))
