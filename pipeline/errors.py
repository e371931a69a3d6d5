"""Error hierarchy shared by routing, execution and ensemble code.

Every error can carry the id of the ExecutionSession it belongs to and the
reasoning steps accumulated up to the failure, so a failed task can be
diagnosed from its trace without re-running it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from schemas.session import ReasoningStep


class ReasoningError(Exception):
    """Base class for all hybrid-routing errors."""

    kind: str = "reasoning"

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        steps: list[ReasoningStep] | None = None,
    ) -> None:
        self.message = message
        self.session_id = session_id
        self.steps: list[ReasoningStep] = list(steps or [])
        super().__init__(message)

    def attach(self, session_id: str, steps: list[ReasoningStep]) -> "ReasoningError":
        """Attach session context (only fills fields that are still empty)."""
        if self.session_id is None:
            self.session_id = session_id
        if not self.steps:
            self.steps = list(steps)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "message": self.message,
            "session_id": self.session_id,
            "step_ids": [s.id for s in self.steps],
        }


class ValidationError(ReasoningError):
    """Malformed task or output-schema mismatch, raised before any model call."""

    kind = "validation"


class ProviderError(ReasoningError):
    """A model backend call failed."""

    kind = "provider"

    def __init__(self, message: str, model_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.model_id = model_id


class ToolError(ReasoningError):
    """A tool backend call failed."""

    kind = "tool"

    def __init__(
        self,
        message: str,
        tool_id: str | None = None,
        required: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.tool_id = tool_id
        self.required = required


class ExecutionTimeoutError(ReasoningError, TimeoutError):
    """The session wall-clock budget or a call deadline was exceeded.

    `partial_results` holds whatever model results arrived before the
    deadline so that a best-effort partial synthesis can still be produced.
    """

    kind = "timeout"

    def __init__(self, message: str, partial_results: list[Any] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.partial_results = list(partial_results or [])


class LowConfidenceError(ReasoningError):
    """Self-reflection confidence fell below the configured threshold."""

    kind = "low_confidence"

    def __init__(
        self,
        message: str,
        confidence: float,
        improvements: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.confidence = confidence
        self.improvements = list(improvements or [])


class SessionCancelledError(ReasoningError):
    """The caller cancelled the session."""

    kind = "cancelled"


class InvalidTransitionError(ReasoningError):
    """A session state change or mode transition violated the state machine."""

    kind = "invalid_transition"
