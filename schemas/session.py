"""Execution session schema.

State representation for one task execution: status, the active routing
decision, mode transitions and the append-only reasoning trace. Only the
session state machine mutates these objects.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .routing import ModeCategory, RoutingDecision


class SessionStatus(str, Enum):
    """Execution session status."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"  # Flagged for external review
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED})


class StepType(str, Enum):
    """Kind of reasoning step."""

    ANALYSIS = "analysis"
    PLANNING = "planning"
    TOOL_SELECTION = "tool_selection"
    VALIDATION = "validation"
    SYNTHESIS = "synthesis"


class ReasoningStep(BaseModel):
    """One append-only entry of the reasoning trace."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: StepType
    content: str
    confidence: float = Field(..., ge=0, le=1)
    timestamp: datetime = Field(default_factory=datetime.now)
    dependencies: tuple[str, ...] = ()
    output: Any = None
    attempt: int = 1


class ModeTransition(BaseModel):
    """Record of a mode switch during execution."""

    model_config = ConfigDict(frozen=True)

    from_mode: ModeCategory
    to_mode: ModeCategory
    timestamp: datetime = Field(default_factory=datetime.now)
    reason: str
    confidence: float = Field(..., ge=0, le=1)
    metrics: dict[str, Any] = Field(default_factory=dict)
    attempt: int = 1


class ErrorInfo(BaseModel):
    """Error attached to a failed session."""

    type: str
    message: str
    step_id: str | None = None


class ExecutionSession(BaseModel):
    """Complete execution state of one task."""

    id: str = Field(default_factory=lambda: f"ses-{uuid.uuid4().hex[:12]}")
    task_id: str

    # Status
    status: SessionStatus = SessionStatus.PENDING
    attempt: int = 0
    current_mode: ModeCategory | None = None

    # Decisions (at most one active)
    active_decision: RoutingDecision | None = None
    decisions: list[RoutingDecision] = Field(default_factory=list)

    # Trace
    transitions: list[ModeTransition] = Field(default_factory=list)
    steps: list[ReasoningStep] = Field(default_factory=list)

    # Accounting
    total_cost: float = 0.0
    total_tokens: int = 0
    model_calls: int = 0
    failed_calls: int = 0
    tool_calls: int = 0

    # Timing
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    # Outcome
    error: ErrorInfo | None = None
    next_attempt_mode: ModeCategory | None = None
    review_requested: bool = False
    review_notes: str | None = None
    result: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def elapsed_ms(self) -> int:
        if self.started_at is None:
            return 0
        end = self.completed_at or datetime.now()
        return int((end - self.started_at).total_seconds() * 1000)

    @property
    def error_rate(self) -> float:
        calls = self.model_calls + self.tool_calls
        if calls == 0:
            return 0.0
        return self.failed_calls / calls


class ExecutionResult(BaseModel):
    """What submit_task returns to the caller."""

    session_id: str
    task_id: str
    status: SessionStatus
    content: Any = None
    confidence: float = 0.0
    consensus: float = 1.0

    # Flags
    low_confidence: bool = False
    partial: bool = False
    needs_review: bool = False
    from_cache: bool = False

    # Execution summary
    mode: ModeCategory | None = None
    model: str | None = None
    contributors: list[str] = Field(default_factory=list)
    transitions: list[ModeTransition] = Field(default_factory=list)
    cost: float = 0.0
    tokens: int = 0
    elapsed_ms: int = 0
    attempts: int = 1
    decision: RoutingDecision | None = None
    error: ErrorInfo | None = None

    @property
    def success(self) -> bool:
        return self.status == SessionStatus.COMPLETED
