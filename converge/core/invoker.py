"""
Model Invoker

Wraps exactly one request to the chat model for a given stage role:
system prompt for the role + JSON payload as the human turn.

- Every call is bounded by asyncio.wait_for
- Timeouts and transport errors come back as InvocationFailure values
- asyncio.CancelledError is never caught; the caller's cancellation
  reaches the in-flight request
- No retries here (the orchestrator owns retry policy)
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from langchain_core.messages import HumanMessage, SystemMessage

from converge.agents.failures import InvocationErrorKind, InvocationFailure
from converge.core.logger import dev_log, get_logger, truncate_for_log
from converge.prompts import AGENT_PROMPTS, STRICT_JSON_SUFFIX, wrap_system_prompt
from converge.utils.json_extractor import coerce_text

logger = get_logger("invoker")

TRACE_MAX_CHARS = 300


@dataclass(frozen=True)
class InvocationResult:
    """Raw model text for one stage call plus an optional reasoning excerpt."""
    role: str
    raw_text: str
    trace: Optional[str] = None
    duration_ms: int = 0


def _shorten(text: str) -> Optional[str]:
    text = " ".join(text.split())
    if not text:
        return None
    if len(text) > TRACE_MAX_CHARS:
        return text[:TRACE_MAX_CHARS] + "..."
    return text


def extract_trace(content: Any) -> Optional[str]:
    """
    Pull a short reasoning excerpt out of a model response.

    Gemini returns thoughts as 'thinking' parts when include_thoughts is
    on. Plain-text replies may instead open with a 'Thought:' line.
    """
    if isinstance(content, list):
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") in ("thinking", "reasoning"):
                fragment = part.get("thinking") or part.get("reasoning") or part.get("text") or ""
                shortened = _shorten(str(fragment))
                if shortened:
                    return shortened
        return None

    if isinstance(content, str):
        for line in content.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.lower().startswith("thought:"):
                return _shorten(stripped[len("thought:"):])
            break
    return None


def _serialize_payload(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str, ensure_ascii=False)


class ModelInvoker:
    """
    One chat model, many stage roles.

    Args:
        llm: Any LangChain chat model (anything with an async ainvoke)
        timeout_seconds: Upper bound for a single call
        prompts: Role name to system prompt mapping
    """

    def __init__(
        self,
        llm: Any,
        timeout_seconds: float,
        prompts: Optional[Dict[str, str]] = None,
    ):
        self.llm = llm
        self.timeout_seconds = timeout_seconds
        self.prompts = prompts if prompts is not None else AGENT_PROMPTS

    def build_messages(self, role: str, payload: Mapping[str, Any], strict: bool = False) -> list:
        """System prompt for the role, then the serialized request context."""
        if role not in self.prompts:
            raise KeyError(f"No prompt registered for role '{role}'")

        body = _serialize_payload(payload)
        if strict:
            body += STRICT_JSON_SUFFIX

        return [
            SystemMessage(content=wrap_system_prompt(self.prompts[role])),
            HumanMessage(content=body),
        ]

    async def invoke(
        self,
        role: str,
        payload: Mapping[str, Any],
        strict: bool = False,
    ) -> Union[InvocationResult, InvocationFailure]:
        """
        Make exactly one model call for `role`.

        Args:
            role: Stage role (key into the prompt table)
            payload: JSON-serializable request context
            strict: Append the JSON-only reminder (used on retry)

        Returns:
            InvocationResult on success, InvocationFailure otherwise
        """
        messages = self.build_messages(role, payload, strict=strict)
        dev_log(logger, "[%s] payload: %s", role, truncate_for_log(messages[-1].content, 500))

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.llm.ainvoke(messages, config={"run_name": role, "tags": [role]}),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{role}] model call timed out after {self.timeout_seconds}s")
            return InvocationFailure(
                InvocationErrorKind.TIMEOUT,
                f"no response within {self.timeout_seconds}s",
            )
        except Exception as e:
            logger.warning(f"[{role}] model call failed: {type(e).__name__}: {e}")
            return InvocationFailure(InvocationErrorKind.TRANSPORT, f"{type(e).__name__}: {e}")

        duration_ms = int((time.perf_counter() - start) * 1000)
        content = getattr(response, "content", response)
        raw_text = coerce_text(content)

        dev_log(logger, "[%s] response (%dms): %s", role, duration_ms, truncate_for_log(raw_text, 500))

        return InvocationResult(
            role=role,
            raw_text=raw_text,
            trace=extract_trace(content),
            duration_ms=duration_ms,
        )
