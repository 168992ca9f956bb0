"""
CONVERGE Base Stage

Abstract base class for the seven planning stages. Every stage runs the
same loop:

    build payload -> Model Invoker -> Response Extractor -> validate

and returns a StageResult or a StageFailure. Nothing is raised past the
stage boundary except caller cancellation.

Concrete stages only implement `build_payload` and `validate`.
`validate` raises ValueError/TypeError (pydantic's ValidationError is a
ValueError) for anything that does not fit the stage's schema; the base
class turns that into SchemaViolation.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, TypeVar, Union

from converge.agents.failures import (
    InvocationFailure,
    ParseFailure,
    SchemaViolation,
    StageFailure,
    StageResult,
)
from converge.core.invoker import ModelInvoker
from converge.core.logger import dev_log, get_logger, log_timing, truncate_for_log
from converge.utils.json_extractor import extract_json

logger = get_logger("stages")

T = TypeVar("T")


class BaseStage(ABC, Generic[T]):
    """
    Abstract base class for planning stages.

    Attributes:
        name: Human-readable stage name (used in traces and logs)
        role: Prompt role key understood by the Model Invoker
        invoker: Shared Model Invoker owned by the orchestrator

    Example:
        class EchoStage(BaseStage[dict]):
            name = "Echo"
            role = "echo"

            def build_payload(self, text):
                return {"text": text}

            def validate(self, parsed, text):
                return parsed
    """

    name: str = "Stage"
    role: str = ""

    def __init__(self, invoker: ModelInvoker):
        self.invoker = invoker

    @abstractmethod
    def build_payload(self, *args: Any) -> Dict[str, Any]:
        """
        Build the JSON payload sent to the model.

        Receives the same positional arguments as `run`.
        """

    @abstractmethod
    def validate(self, parsed: Any, *args: Any) -> T:
        """
        Check the extracted JSON against the stage's schema.

        Args:
            parsed: Value returned by the Response Extractor
            *args: The same positional arguments as `run`

        Returns:
            The stage's typed output

        Raises:
            ValueError / TypeError: If the shape is wrong
        """

    def fail(self, cause: Union[InvocationFailure, ParseFailure, SchemaViolation]) -> StageFailure:
        logger.warning(f"[{self.name}] stage failed: {cause.describe()}")
        return StageFailure(stage=self.name, cause=cause)

    @log_timing(logger)
    async def run(self, *args: Any, strict: bool = False) -> Union[StageResult[T], StageFailure]:
        """
        Execute the stage once.

        Args:
            *args: Prior context for this stage
            strict: Ask the model for bare JSON (used on retry)

        Returns:
            StageResult with the validated output, or StageFailure
        """
        payload = self.build_payload(*args)

        invocation = await self.invoker.invoke(self.role, payload, strict=strict)
        if isinstance(invocation, InvocationFailure):
            return self.fail(invocation)

        parsed = extract_json(invocation.raw_text)
        if isinstance(parsed, ParseFailure):
            dev_log(logger, "[%s] unparsable reply: %s", self.name, truncate_for_log(invocation.raw_text, 300))
            return self.fail(parsed)

        try:
            output = self.validate(parsed, *args)
        except (ValueError, TypeError) as e:
            return self.fail(SchemaViolation(truncate_for_log(str(e), 500)))

        logger.info(f"[{self.name}] ok ({invocation.duration_ms}ms)")
        return StageResult(stage=self.name, parsed=output, trace=invocation.trace)


async def run_with_retry(
    stage: BaseStage,
    *args: Any,
    retries: int = 1,
) -> Union[StageResult[Any], StageFailure]:
    """
    Run a stage, re-running it with a strict prompt while it returns no JSON.

    Other failures are returned as-is on the first attempt.
    """
    outcome = await stage.run(*args)
    attempt = 0
    while isinstance(outcome, StageFailure) and outcome.retryable and attempt < retries:
        attempt += 1
        logger.info(f"[{stage.name}] no JSON in reply, retrying with strict prompt ({attempt}/{retries})")
        outcome = await stage.run(*args, strict=True)
    return outcome
