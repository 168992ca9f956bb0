"""
CONVERGE Runtime Settings

Settings are read from the process environment. main.py calls
load_dotenv() first, so a local .env file works the same way.

Environment variables:
- GEMINI_API_KEY: credential for the Gemini backend (absence is normal;
  every request is then served by the fallback planner)
- CONVERGE_MODEL: Gemini model name
- CONVERGE_TEMPERATURE: sampling temperature
- CONVERGE_STAGE_TIMEOUT: seconds allowed for one stage call
- CONVERGE_STAGE_RETRIES: strict-prompt retries for stages that return no JSON
- CONVERGE_DEFAULT_TIMEFRAME: planning horizon in years when none is given
"""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = "gemini-3-pro-preview"
DEFAULT_TIMEFRAME_YEARS = 10


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration for the planning orchestrator."""
    gemini_api_key: Optional[str] = None
    model_name: str = DEFAULT_MODEL
    temperature: float = 1.0
    stage_timeout_seconds: float = 60.0
    stage_retries: int = 1
    default_timeframe: int = DEFAULT_TIMEFRAME_YEARS

    @property
    def has_credential(self) -> bool:
        return bool(self.gemini_api_key and self.gemini_api_key.strip())

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        settings = cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            model_name=os.getenv("CONVERGE_MODEL", DEFAULT_MODEL),
            temperature=_env_float("CONVERGE_TEMPERATURE", 1.0),
            stage_timeout_seconds=_env_float("CONVERGE_STAGE_TIMEOUT", 60.0),
            stage_retries=_env_int("CONVERGE_STAGE_RETRIES", 1),
            default_timeframe=_env_int("CONVERGE_DEFAULT_TIMEFRAME", DEFAULT_TIMEFRAME_YEARS),
        )
        if settings.stage_timeout_seconds <= 0:
            raise ValueError("CONVERGE_STAGE_TIMEOUT must be positive")
        if settings.stage_retries < 0:
            raise ValueError("CONVERGE_STAGE_RETRIES cannot be negative")
        if settings.default_timeframe < 1:
            raise ValueError("CONVERGE_DEFAULT_TIMEFRAME must be at least 1")
        return settings
