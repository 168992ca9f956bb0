"""Shared fixtures for the CONVERGE test suite."""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from converge.agents.models import MigrationSnapshot
from converge.core.config import Settings
from tests.fakes import CURRENT_STATE, GOAL_STATE, FakeChatModel, scenario_a_replies


@pytest.fixture
def settings():
    """Settings with a credential and short timeouts."""
    return Settings(gemini_api_key="test-key", stage_timeout_seconds=0.5, stage_retries=1)


@pytest.fixture
def no_credential_settings():
    return Settings(gemini_api_key=None)


@pytest.fixture
def current_snapshot():
    return MigrationSnapshot.model_validate(CURRENT_STATE)


@pytest.fixture
def goal_snapshot():
    return MigrationSnapshot.model_validate(GOAL_STATE)


@pytest.fixture
def scenario_a_llm():
    return FakeChatModel(scenario_a_replies())
