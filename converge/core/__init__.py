"""
CONVERGE Core Module

Provides centralized utilities and configuration.
"""

from converge.core.logger import (
    setup_logging,
    get_logger,
    dev_log,
    truncate_for_log,
    log_timing,
    IS_DEV,
)

from converge.core.config import Settings
from converge.core.llm_factory import LLMFactory

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "dev_log",
    "truncate_for_log",
    "log_timing",
    "IS_DEV",
    # Configuration
    "Settings",
    # LLM
    "LLMFactory",
]
