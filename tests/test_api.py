"""
Tests for the Planning API

Tests cover:
- Request validation (400 for missing or malformed states)
- Degraded plans when no credential is configured
- Full pipeline through HTTP with a scripted model
- Optimize / simulate endpoints
- App wiring (/health)
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from converge.agents.orchestrator import MigrationOrchestrator
from converge.api import plan_router
from converge.core.config import Settings
from tests.fakes import CURRENT_STATE, GOAL_STATE, FakeChatModel, scenario_a_replies


def make_client(orchestrator=None):
    app = FastAPI()
    app.include_router(plan_router)
    if orchestrator is not None:
        app.state.orchestrator = orchestrator
    return TestClient(app)


@pytest.fixture
def offline_client():
    return make_client(MigrationOrchestrator(Settings(gemini_api_key=None)))


@pytest.fixture
def online_client():
    settings = Settings(gemini_api_key="test-key", stage_timeout_seconds=0.5)
    llm = FakeChatModel(scenario_a_replies())
    return make_client(MigrationOrchestrator(settings, llm=llm))


class TestPlanValidation:
    """Tests for 400 responses."""

    @pytest.mark.parametrize("body", [
        {},
        {"currentState": CURRENT_STATE},
        {"goalState": GOAL_STATE},
    ])
    def test_missing_states(self, offline_client, body):
        response = offline_client.post("/api/gemini/plan", json=body)
        assert response.status_code == 400
        assert "currentState and goalState" in response.json()["detail"]

    def test_invalid_state(self, offline_client):
        body = {"currentState": {"location": "Austin", "income": -5}, "goalState": GOAL_STATE}
        response = offline_client.post("/api/gemini/plan", json=body)
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Invalid state")

    def test_invalid_constraints(self, offline_client):
        body = {"currentState": CURRENT_STATE, "goalState": GOAL_STATE, "constraints": {"maxBudget": -1}}
        response = offline_client.post("/api/gemini/plan", json=body)
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Invalid constraints")

    def test_uninitialized_engine(self):
        response = make_client().post("/api/gemini/plan", json={"currentState": CURRENT_STATE, "goalState": GOAL_STATE})
        assert response.status_code == 503


class TestPlanEndpoint:
    """Tests for POST /api/gemini/plan."""

    def test_degraded_without_credential(self, offline_client):
        body = {"currentState": CURRENT_STATE, "goalState": GOAL_STATE, "timeframe": 5}
        response = offline_client.post("/api/gemini/plan", json=body)

        assert response.status_code == 200
        data = response.json()
        assert data["degraded"] is True
        assert data["plan"]["isFallback"] is True
        assert data["plan"]["fallbackReason"] == "configuration_missing"
        assert data["plan"]["timeframe"] == 5
        assert len(data["plan"]["steps"]) == 5
        assert data["confidence"] == 0.72
        assert data["risks"] == data["plan"]["risks"]

    def test_full_pipeline(self, online_client):
        body = {"currentState": CURRENT_STATE, "goalState": GOAL_STATE, "timeframe": 10}
        response = online_client.post("/api/gemini/plan", json=body)

        assert response.status_code == 200
        data = response.json()
        assert data["degraded"] is False
        assert data["plan"]["recommendationScore"] == 78
        assert "[Goal Interpreter]" in data["reasoning"]
        assert data["thoughtSignature"] == data["reasoning"]
        assert data["alternativeStrategies"] == data["plan"]["alternativeStrategies"]

    def test_describe(self, offline_client):
        response = offline_client.get("/api/gemini/plan")
        assert response.status_code == 200
        assert "POST" in response.json()["endpoints"]


class TestRefinementEndpoints:
    """Tests for /optimize and /simulate."""

    def _plan(self, client):
        body = {"currentState": CURRENT_STATE, "goalState": GOAL_STATE, "timeframe": 4}
        return client.post("/api/gemini/plan", json=body).json()["plan"]

    def test_optimize(self, offline_client):
        plan = self._plan(offline_client)
        response = offline_client.post("/api/gemini/optimize", json={"plan": plan, "constraints": {"maxBudget": 1000}})

        assert response.status_code == 200
        optimized = response.json()["plan"]
        assert optimized["id"] == plan["id"]
        assert optimized["totalEstimatedCost"] == pytest.approx(plan["totalEstimatedCost"] * 0.9)

    def test_optimize_rejects_broken_plan(self, offline_client):
        plan = self._plan(offline_client)
        plan["steps"][0]["dependencies"] = ["step_5"]
        plan["steps"][4]["dependencies"] = ["step_1"]
        response = offline_client.post("/api/gemini/optimize", json={"plan": plan})

        assert response.status_code == 400
        assert response.json()["detail"].startswith("Invalid plan")

    def test_simulate(self, offline_client):
        plan = self._plan(offline_client)
        response = offline_client.post("/api/gemini/simulate", json={"plan": plan, "years": 3})

        assert response.status_code == 200
        timeline = response.json()["timeline"]
        assert [entry["year"] for entry in timeline] == [0, 1, 2, 3]
        assert "completedSteps" in timeline[0]

    @pytest.mark.parametrize("years", [300000, 5, -1])
    def test_simulate_rejects_years_outside_plan(self, offline_client, years):
        plan = self._plan(offline_client)
        response = offline_client.post("/api/gemini/simulate", json={"plan": plan, "years": years})

        assert response.status_code == 400
        assert response.json()["detail"] == "years must be between 0 and 4"

    def test_simulate_defaults_to_plan_timeframe(self, offline_client):
        plan = self._plan(offline_client)
        response = offline_client.post("/api/gemini/simulate", json={"plan": plan})

        assert response.status_code == 200
        assert len(response.json()["timeline"]) == 5


class TestApp:
    """Tests for main.app wiring."""

    def test_health(self):
        from main import app

        client = TestClient(app)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "planningEnabled": app.state.orchestrator.enabled,
        }
        assert client.get("/").status_code == 200


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
