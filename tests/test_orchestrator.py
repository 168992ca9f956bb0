"""
Tests for the CONVERGE Migration Orchestrator

Tests cover:
- Missing credential: deterministic fallback, zero model calls
- Early exit on an infeasible goal
- Fallback on any stage failure (unparsable, timeout, empty plan)
- End-to-end scenarios A, B and C
- Retry accounting and cooperative cancellation
- Phase logging and trace aggregation
"""

import asyncio
import copy
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from pydantic import ValidationError
from unittest.mock import patch

from converge.agents.failures import InfeasibleGoal, StageFailure
from converge.agents.fallback import generate_fallback_plan
from converge.agents.models import MAX_TIMEFRAME_YEARS, MigrationPlan, MigrationSnapshot, plan_invariant_violations
from converge.agents.orchestrator import (
    MigrationOrchestrator,
    PlanningPhase,
    TRACE_DELIMITER,
)
from converge.core.config import Settings
from tests.fakes import (
    CURRENT_STATE,
    GOAL_STATE,
    PLAN_REPLY,
    FakeChatModel,
    Sequential,
    as_text,
    scenario_a_replies,
)

PIPELINE_ROLES = [
    "goal_interpreter",
    "feasibility",
    "path_planner",
    "macro_futures",
    "policy_drift",
    "failure_simulator",
    "recommendation",
]


def assert_valid_plan(plan: MigrationPlan):
    assert plan.steps
    assert plan_invariant_violations(plan.steps, plan.timeframe, plan.critical_path) == []
    assert 0.0 <= plan.success_probability <= 1.0
    for step in plan.steps:
        assert 0.0 <= step.probability <= 1.0
        assert step.expected_cost >= 0
        assert 0 <= step.year <= plan.timeframe


def fallback_for(timeframe=10) -> MigrationPlan:
    return generate_fallback_plan(
        MigrationSnapshot.model_validate(CURRENT_STATE),
        MigrationSnapshot.model_validate(GOAL_STATE),
        timeframe,
    )


class TestMissingConfiguration:
    """No credential is a normal state: fallback, never a model call."""

    @pytest.mark.asyncio
    async def test_fallback_without_calls(self, no_credential_settings):
        llm = FakeChatModel(scenario_a_replies())
        orchestrator = MigrationOrchestrator(no_credential_settings, llm=llm)

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert llm.calls == []
        assert plan.is_fallback is True
        assert plan.fallback_reason == "configuration_missing"
        assert_valid_plan(plan)

    @pytest.mark.asyncio
    async def test_deterministic(self, no_credential_settings):
        orchestrator = MigrationOrchestrator(no_credential_settings)

        first = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)
        second = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert first == second

    def test_model_never_built(self, no_credential_settings):
        with patch("converge.agents.orchestrator.orchestrator.LLMFactory.get_model") as get_model:
            orchestrator = MigrationOrchestrator(no_credential_settings)
        get_model.assert_not_called()
        assert orchestrator.enabled is False

    def test_model_built_from_settings(self, settings):
        with patch("converge.agents.orchestrator.orchestrator.LLMFactory.get_model") as get_model:
            get_model.return_value = FakeChatModel()
            orchestrator = MigrationOrchestrator(settings)
        get_model.assert_called_once_with(settings)
        assert orchestrator.enabled is True


class TestScenarioA:
    """All stages succeed with canonical payloads."""

    @pytest.mark.asyncio
    async def test_full_plan(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert_valid_plan(plan)
        assert plan.is_fallback is False
        assert plan.fallback_reason is None
        assert len(plan.steps) == 4
        assert 0 <= plan.recommendation_score <= 100
        assert plan.recommendation_score == 78
        assert plan.user_id == "user_42"

    @pytest.mark.asyncio
    async def test_stages_called_in_order(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)
        await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)
        assert scenario_a_llm.roles == PIPELINE_ROLES

    @pytest.mark.asyncio
    async def test_merges_later_stages(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)
        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        # Failure Simulator lowered probability from 0.7
        assert plan.success_probability == pytest.approx(0.62)
        # 1 planner risk + 1 drift risk + 2 red-team risks
        assert len(plan.risks) == 4
        assert len(plan.policy_alerts) == 2
        assert plan.get_step("step_3").dependencies == ["step_2"]
        assert plan.recommendation_summary.startswith("A solid plan")

    @pytest.mark.asyncio
    async def test_adjusted_probability_never_raises_confidence(self, settings):
        replies = scenario_a_replies()
        replies["failure_simulator"] = as_text({"risks": [], "adjustedProbability": 0.95})
        orchestrator = MigrationOrchestrator(settings, llm=FakeChatModel(replies))

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.success_probability == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_missing_adjusted_probability_keeps_draft(self, settings):
        replies = scenario_a_replies()
        replies["failure_simulator"] = as_text({"risks": []})
        orchestrator = MigrationOrchestrator(settings, llm=FakeChatModel(replies))

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.success_probability == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_reasoning_trace_in_stage_order(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)
        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        sections = plan.reasoning_trace.split(TRACE_DELIMITER)
        labels = [section.split("]:")[0] + "]" for section in sections]
        assert labels == [
            "[Goal Interpreter]",
            "[Feasibility Envelope]",
            "[Path Planner]",
            "[Macro Futures]",
            "[Policy Drift]",
            "[Recommendation]",
        ]
        assert "Language skills gate" in sections[2]
        assert "quotas hit the sponsorship step" in sections[4]

    @pytest.mark.asyncio
    async def test_phases(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)
        outcome = await orchestrator.plan_with_trace(CURRENT_STATE, GOAL_STATE, 10)

        assert outcome.degraded is False
        assert outcome.phases == [
            PlanningPhase.START,
            PlanningPhase.GOAL_INTERPRETED,
            PlanningPhase.FEASIBILITY_CHECKED,
            PlanningPhase.PATH_PLANNED,
            PlanningPhase.TRENDS_GATHERED,
            PlanningPhase.DRIFT_APPLIED,
            PlanningPhase.FAILURE_SIMULATED,
            PlanningPhase.SCORED,
            PlanningPhase.DONE,
        ]

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_isolated(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)

        plans = await asyncio.gather(*[
            orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10) for _ in range(3)
        ])

        assert len({plan.id for plan in plans}) == 3
        assert all(not plan.is_fallback for plan in plans)
        assert len(scenario_a_llm.calls) == 21


class TestScenarioB:
    """Every model call times out."""

    @pytest.mark.asyncio
    async def test_equals_fallback(self):
        settings = Settings(gemini_api_key="test-key", stage_timeout_seconds=0.05)
        llm = FakeChatModel(scenario_a_replies(), delay=5)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is True
        assert "timeout" in plan.fallback_reason
        expected = fallback_for(10)
        assert plan.model_dump(exclude={"fallback_reason"}) == expected.model_dump(exclude={"fallback_reason"})

    @pytest.mark.asyncio
    async def test_timeout_not_retried(self):
        settings = Settings(gemini_api_key="test-key", stage_timeout_seconds=0.05, stage_retries=3)
        llm = FakeChatModel(scenario_a_replies(), delay=5)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert llm.roles == ["goal_interpreter"]


class TestScenarioC:
    """The Path Planner returns an empty steps array."""

    @pytest.mark.asyncio
    async def test_empty_plan_falls_back(self, settings):
        replies = scenario_a_replies()
        replies["path_planner"] = as_text({"steps": [], "successProbability": 0.5})
        llm = FakeChatModel(replies)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        outcome = await orchestrator.plan_with_trace(CURRENT_STATE, GOAL_STATE, 10)

        assert outcome.plan.is_fallback is True
        assert_valid_plan(outcome.plan)
        assert isinstance(outcome.failure, StageFailure)
        assert outcome.failure.stage == "Path Planner"
        assert outcome.phases[-1] == PlanningPhase.FALLBACK_REQUESTED
        assert llm.calls_for("macro_futures") == 0


class TestEarlyExit:
    """An infeasible goal stops the chain before planning."""

    @pytest.mark.asyncio
    async def test_no_planning_calls(self, settings):
        replies = scenario_a_replies()
        replies["feasibility"] = as_text({"isPossible": False, "reason": "No legal route exists"})
        llm = FakeChatModel(replies)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        outcome = await orchestrator.plan_with_trace(CURRENT_STATE, GOAL_STATE, 10)

        for role in ("path_planner", "macro_futures", "policy_drift", "failure_simulator", "recommendation"):
            assert llm.calls_for(role) == 0
        assert isinstance(outcome.failure, InfeasibleGoal)
        assert outcome.plan.is_fallback is True
        assert outcome.plan.fallback_reason == "infeasible: No legal route exists"
        assert outcome.phases[-1] == PlanningPhase.ABORTED

    @pytest.mark.asyncio
    async def test_precheck_blocks_without_feasibility_call(self, settings):
        current = dict(CURRENT_STATE, assets=0, liabilities=50000)
        goal = dict(GOAL_STATE, metadata={"visaType": "investor"})
        llm = FakeChatModel(scenario_a_replies())
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        plan = await orchestrator.plan(current, goal, 10)

        assert llm.roles == ["goal_interpreter"]
        assert plan.fallback_reason.startswith("infeasible:")


class TestStageFailures:
    """Any failing stage after feasibility engages the fallback cleanly."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", PIPELINE_ROLES)
    async def test_unparsable_output_falls_back(self, settings, role):
        replies = scenario_a_replies()
        replies[role] = "{this is not: json}"
        llm = FakeChatModel(replies)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is True
        assert_valid_plan(plan)
        assert plan.recommendation_score is not None
        later = PIPELINE_ROLES[PIPELINE_ROLES.index(role) + 1:]
        assert all(llm.calls_for(r) == 0 for r in later)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [
        'Here: {"risks": [{"description": "Visa quota cut", "severity": "high"}, {"description": "trunc',
        '{"unrelated": 1}',
    ])
    async def test_unusable_red_team_reply_falls_back(self, settings, reply):
        replies = scenario_a_replies()
        replies["failure_simulator"] = reply
        orchestrator = MigrationOrchestrator(settings, llm=FakeChatModel(replies))

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is True
        assert "Failure Simulator" in plan.fallback_reason
        assert all(risk.description != "Visa quota cut" for risk in plan.risks)

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self, settings):
        replies = scenario_a_replies()
        replies["macro_futures"] = ConnectionError("network down")
        orchestrator = MigrationOrchestrator(settings, llm=FakeChatModel(replies))

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is True
        assert "Macro Futures" in plan.fallback_reason

    @pytest.mark.asyncio
    async def test_prose_is_retried_once_then_succeeds(self, settings):
        replies = scenario_a_replies()
        replies["recommendation"] = Sequential("Looks great to me!", as_text({"score": 70, "summary": "Fine."}))
        llm = FakeChatModel(replies)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is False
        assert plan.recommendation_score == 70
        assert llm.calls_for("recommendation") == 2

    @pytest.mark.asyncio
    async def test_prose_twice_falls_back(self, settings):
        replies = scenario_a_replies()
        replies["path_planner"] = "I would suggest learning German first."
        llm = FakeChatModel(replies)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is True
        assert llm.calls_for("path_planner") == 2

    @pytest.mark.asyncio
    async def test_year_outside_timeframe_falls_back(self, settings):
        replies = scenario_a_replies()
        payload = copy.deepcopy(PLAN_REPLY)
        payload["steps"][3]["year"] = 15
        replies["path_planner"] = as_text(payload)
        orchestrator = MigrationOrchestrator(settings, llm=FakeChatModel(replies))

        plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is True
        assert "schema violation" in plan.fallback_reason

    @pytest.mark.asyncio
    async def test_unexpected_exception_falls_back(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)
        with patch.object(orchestrator.pipeline, "run", side_effect=RuntimeError("graph bug")):
            plan = await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10)

        assert plan.is_fallback is True
        assert plan.fallback_reason == "internal_error: RuntimeError"


class TestInputs:
    """Request normalization."""

    @pytest.mark.asyncio
    async def test_default_timeframe(self, no_credential_settings):
        plan = await MigrationOrchestrator(no_credential_settings).plan(CURRENT_STATE, GOAL_STATE)
        assert plan.timeframe == 10

    @pytest.mark.asyncio
    async def test_timeframe_clamped_to_one(self, no_credential_settings):
        plan = await MigrationOrchestrator(no_credential_settings).plan(CURRENT_STATE, GOAL_STATE, 0)
        assert plan.timeframe == 1
        assert_valid_plan(plan)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeframe", ["abc", float("nan"), float("inf"), float("-inf"), [3], True])
    async def test_unusable_timeframe_uses_default(self, no_credential_settings, timeframe):
        plan = await MigrationOrchestrator(no_credential_settings).plan(CURRENT_STATE, GOAL_STATE, timeframe)
        assert plan.timeframe == 10
        assert_valid_plan(plan)

    @pytest.mark.asyncio
    async def test_numeric_string_timeframe(self, no_credential_settings):
        plan = await MigrationOrchestrator(no_credential_settings).plan(CURRENT_STATE, GOAL_STATE, "4")
        assert plan.timeframe == 4

    @pytest.mark.asyncio
    async def test_timeframe_capped(self, no_credential_settings):
        plan = await MigrationOrchestrator(no_credential_settings).plan(CURRENT_STATE, GOAL_STATE, 10 ** 9)
        assert plan.timeframe == MAX_TIMEFRAME_YEARS
        assert_valid_plan(plan)

    @pytest.mark.asyncio
    async def test_unusable_timeframe_with_model(self, settings, scenario_a_llm):
        plan = await MigrationOrchestrator(settings, llm=scenario_a_llm).plan(CURRENT_STATE, GOAL_STATE, "soon")
        assert plan.is_fallback is False
        assert plan.timeframe == 10

    @pytest.mark.asyncio
    async def test_malformed_snapshot_raises(self, no_credential_settings):
        with pytest.raises(ValidationError):
            await MigrationOrchestrator(no_credential_settings).plan({"income": 10}, GOAL_STATE)

    @pytest.mark.asyncio
    async def test_constraints_reach_goal_interpreter(self, settings, scenario_a_llm):
        orchestrator = MigrationOrchestrator(settings, llm=scenario_a_llm)
        await orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10, constraints={"maxBudget": 40000})

        payload = scenario_a_llm.calls[0].messages[-1].content
        assert '"maxBudget": 40000.0' in payload


class TestCancellation:
    """Caller cancellation reaches the in-flight call and is not swallowed."""

    @pytest.mark.asyncio
    async def test_cancel_mid_pipeline(self):
        settings = Settings(gemini_api_key="test-key", stage_timeout_seconds=10)
        llm = FakeChatModel(scenario_a_replies(), delay=5)
        orchestrator = MigrationOrchestrator(settings, llm=llm)

        task = asyncio.create_task(orchestrator.plan(CURRENT_STATE, GOAL_STATE, 10))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert llm.cancelled is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
