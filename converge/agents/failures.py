"""
CONVERGE Failure Taxonomy

Failures inside the planning pipeline are returned as values, never
raised across a stage boundary:

1. InvocationFailure - network, timeout or auth error at the Model Invoker
2. ParseFailure - no usable JSON in the model's text
3. SchemaViolation - JSON present but the wrong shape, or an invariant broken
4. InfeasibleGoal - the Feasibility Envelope said no
5. ConfigurationMissing - no credential; the normal trigger for fallback

Stages wrap the first three in a uniform StageFailure. The orchestrator
only inspects `StageFailure.retryable`; the specific cause is logged.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class InvocationErrorKind(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"


class ParseCause(str, Enum):
    """Why the extractor gave up. NO_JSON_SPAN is worth a stricter retry."""
    NO_JSON_SPAN = "no JSON span found"
    INVALID_JSON = "span found but invalid JSON"


@dataclass(frozen=True)
class InvocationFailure:
    kind: InvocationErrorKind
    detail: str

    def describe(self) -> str:
        return f"invocation {self.kind.value}: {self.detail}"


@dataclass(frozen=True)
class ParseFailure:
    cause: ParseCause
    detail: str = ""

    def describe(self) -> str:
        if self.detail:
            return f"parse failure ({self.cause.value}): {self.detail}"
        return f"parse failure ({self.cause.value})"


@dataclass(frozen=True)
class SchemaViolation:
    detail: str

    def describe(self) -> str:
        return f"schema violation: {self.detail}"


@dataclass(frozen=True)
class InfeasibleGoal:
    reason: str

    def describe(self) -> str:
        return f"infeasible: {self.reason}"


@dataclass(frozen=True)
class ConfigurationMissing:
    setting: str = "GEMINI_API_KEY"

    def describe(self) -> str:
        return "configuration_missing"


StageCause = Union[InvocationFailure, ParseFailure, SchemaViolation]


@dataclass(frozen=True)
class StageFailure:
    """Uniform failure returned by any stage."""
    stage: str
    cause: StageCause

    @property
    def retryable(self) -> bool:
        """Only a reply with no JSON at all is worth a stricter prompt."""
        return isinstance(self.cause, ParseFailure) and self.cause.cause == ParseCause.NO_JSON_SPAN

    def describe(self) -> str:
        return f"{self.stage}: {self.cause.describe()}"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Successful stage output plus its optional reasoning trace."""
    stage: str
    parsed: T
    trace: Optional[str] = None


StageOutcome = Union[StageResult[Any], StageFailure]

# Fallback reasons surfaced on degraded plans
FallbackCause = Union[StageFailure, InfeasibleGoal, ConfigurationMissing, SchemaViolation]

