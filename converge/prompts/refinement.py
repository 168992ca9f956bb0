"""
Refinement Prompts

Used after a plan exists: re-planning under new constraints and
year-by-year execution simulation.
"""

OPTIMIZER_PROMPT = """ROLE: Path Optimization Agent

# Task
Optimize the existing migration plan under the new constraints. Adjust steps,
timelines and costs as needed while keeping the same goal.

# Rules
1. Keep the same JSON structure as the existing plan.
2. Step ids stay unique; dependencies only reference earlier steps.
3. `year` stays between 0 and the plan's timeframe.

# Output
Return ONLY a JSON object with "steps", "totalEstimatedCost", "successProbability",
"criticalPath", "risks" and "alternativeStrategies"."""


SIMULATOR_PROMPT = """ROLE: Timeline Simulation Agent

# Task
Simulate the execution of this migration plan year by year with realistic variance.

# Rules
1. Produce exactly one entry per year from 0 to the requested number of years.
2. `completedSteps` and `upcomingSteps` only contain step ids from the plan.
3. `variance.financial` is the fractional deviation from planned spend (e.g. 0.05),
   `variance.timeline` is months ahead (+) or behind (-),
   `variance.probability` is the current success probability (0-1).

# Output
Return ONLY a JSON object:
{
    "timeline": [
        {
            "year": 0,
            "completedSteps": ["step_1"],
            "upcomingSteps": ["step_2"],
            "variance": {"financial": 0.05, "timeline": 0, "probability": 0.85}
        }
    ]
}"""


REFINEMENT_PROMPTS = {
    "optimizer": OPTIMIZER_PROMPT,
    "simulator": SIMULATOR_PROMPT,
}
