"""
CONVERGE Agent Prompts

Centralized prompt management for every planning stage and the
refinement calls. The Model Invoker looks prompts up by role.
"""

from .stages import STAGE_PROMPTS, STRICT_JSON_SUFFIX
from .refinement import REFINEMENT_PROMPTS
from .security_prefix import wrap_system_prompt

# Role name to system prompt, for the invoker
AGENT_PROMPTS = {**STAGE_PROMPTS, **REFINEMENT_PROMPTS}

__all__ = [
    "AGENT_PROMPTS",
    "STAGE_PROMPTS",
    "REFINEMENT_PROMPTS",
    "STRICT_JSON_SUFFIX",
    "wrap_system_prompt",
]
