"""
CONVERGE Agents

Planning stages, their data model and failure taxonomy, the fallback
planner, plan refinement and the orchestrator that ties them together.
"""
