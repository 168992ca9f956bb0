"""
CONVERGE

Migration planning engine: a chain of Gemini-backed agent stages that
turns a traveler's current and goal situation into a structured,
validated MigrationPlan, with a deterministic fallback planner.
"""

__version__ = "0.1.0"
