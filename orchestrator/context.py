"""Runtime context shared by the mode handlers of one session."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from llm_backend import LLMBackend, ModelResponse
from pipeline.errors import ExecutionTimeoutError, ProviderError, SessionCancelledError, ToolError
from routing.registry import ModelRegistry
from schemas.task import ExecutionContext, Task
from tools.base import ToolBackend, ToolResult, ToolStatus

from .state_machine import SessionStateMachine
from .switch_monitor import SwitchMetrics

logger = logging.getLogger(__name__)

# Cost per 1k tokens for models without a profile
UNKNOWN_MODEL_COST_PER_1K = 0.05


class CancellationToken:
    """Cooperative cancellation flag shared with worker threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def call_cost(registry: ModelRegistry, model_id: str, tokens: int) -> float:
    """Cost of a call: tokens / 1000 * (profile cost * 0.1)."""
    profile = registry.get(model_id)
    per_1k = profile.capabilities.cost * 0.1 if profile is not None else UNKNOWN_MODEL_COST_PER_1K
    return tokens / 1000 * per_1k


@dataclass
class RunContext:
    """Everything a mode handler needs to execute one attempt.

    Attributes:
        task: Task being executed
        machine: State machine of the session
        backend: Model backend
        registry: Registry of the snapshot the decision was made against
        token: Cancellation token of the session
        deadline: time.monotonic() value at which the session budget expires
        tools: Optional tool backend
        context: Caller-supplied execution context
        can_retry: Another attempt may follow the current one
    """

    task: Task
    machine: SessionStateMachine
    backend: LLMBackend
    registry: ModelRegistry
    token: CancellationToken = field(default_factory=CancellationToken)
    deadline: float | None = None
    tools: ToolBackend | None = None
    context: ExecutionContext | None = None
    can_retry: bool = False

    @property
    def session_id(self) -> str:
        return self.machine.session.id

    def remaining(self) -> float | None:
        """Seconds left in the session budget (None = unbounded)."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def check(self) -> None:
        """Raise if the session was cancelled or ran out of time.

        Raises:
            SessionCancelledError: If the caller cancelled the session
            ExecutionTimeoutError: If the session budget is exhausted
        """
        if self.token.cancelled:
            raise SessionCancelledError(f"Session {self.session_id} cancelled", session_id=self.session_id)
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise ExecutionTimeoutError(
                f"Session {self.session_id} exceeded its time budget",
                session_id=self.session_id,
            )

    def call_model(self, prompt: str, model_id: str, params: dict[str, Any] | None = None) -> ModelResponse:
        """Invoke a model and account for the call in the session.

        Raises:
            ProviderError: If the backend fails
            SessionCancelledError / ExecutionTimeoutError: From check()
        """
        self.check()
        try:
            response = self.backend.invoke(prompt, model_id, params)
        except ProviderError:
            self.machine.record_call(0.0, 0, success=False)
            raise
        self.record_response(response)
        return response

    def record_response(self, response: ModelResponse) -> float:
        """Account for a response obtained outside call_model; returns its cost."""
        tokens = response.usage.total_tokens
        cost = call_cost(self.registry, response.model_id, tokens)
        self.machine.record_call(cost, tokens, success=True)
        return cost

    def run_tool(self, tool_id: str, parameters: dict[str, Any], required: bool) -> ToolResult:
        """Execute a tool.

        Raises:
            ToolError: If a required tool fails or no tool backend exists
        """
        self.check()
        if self.tools is None:
            result = ToolResult(tool_id=tool_id, status=ToolStatus.FAILURE, error="No tool backend configured")
        else:
            result = self.tools.execute(tool_id, parameters)
        self.machine.record_tool_call(result.success)
        if not result.success:
            if required:
                raise ToolError(f"Required tool {tool_id} failed: {result.error}",
                                tool_id=tool_id, required=True)
            logger.warning("Optional tool %s failed, excluding it: %s", tool_id, result.error)
        return result

    def switch_metrics(self, confidence: float | None = None) -> SwitchMetrics:
        session = self.machine.session
        decision = session.active_decision
        return SwitchMetrics(
            complexity=decision.features.complexity if decision else 0.0,
            cost=session.total_cost,
            elapsed_ms=session.elapsed_ms,
            error_rate=session.error_rate,
            confidence=confidence,
        )
