"""State machine for execution sessions.

Every change to an ExecutionSession goes through SessionStateMachine:
status changes are checked against an explicit transition table, mode
escalation within one attempt is monotonic, and a terminal session
rejects further steps.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from pipeline.errors import InvalidTransitionError, ReasoningError
from schemas.routing import ModeCategory, RoutingDecision
from schemas.session import (
    ErrorInfo,
    ExecutionSession,
    ModeTransition,
    ReasoningStep,
    SessionStatus,
    StepType,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """Defines a valid status transition."""

    from_status: SessionStatus
    to_status: SessionStatus


# Mode escalations allowed within a single attempt
MODE_ESCALATIONS: dict[ModeCategory, frozenset[ModeCategory]] = {
    ModeCategory.NON_THINKING: frozenset({ModeCategory.THINKING}),
    ModeCategory.HYBRID: frozenset({ModeCategory.THINKING}),
    ModeCategory.THINKING: frozenset(),
}


class SessionStateMachine:
    """Owns one ExecutionSession and enforces its invariants.

    Thread-safe: ensemble workers and a cancelling caller may touch the
    same session concurrently.
    """

    TRANSITIONS: list[Transition] = [
        Transition(SessionStatus.PENDING, SessionStatus.RUNNING),
        Transition(SessionStatus.PENDING, SessionStatus.FAILED),
        Transition(SessionStatus.RUNNING, SessionStatus.COMPLETED),
        Transition(SessionStatus.RUNNING, SessionStatus.FAILED),
        Transition(SessionStatus.RUNNING, SessionStatus.PAUSED),
        # External review resolution
        Transition(SessionStatus.PAUSED, SessionStatus.COMPLETED),
        Transition(SessionStatus.PAUSED, SessionStatus.FAILED),
    ]

    def __init__(self, session: ExecutionSession) -> None:
        self.session = session
        self._lock = threading.RLock()

        self._transition_map: dict[SessionStatus, set[SessionStatus]] = {}
        for t in self.TRANSITIONS:
            self._transition_map.setdefault(t.from_status, set()).add(t.to_status)

    @classmethod
    def create(cls, task_id: str, session_id: str | None = None) -> "SessionStateMachine":
        session = ExecutionSession(task_id=task_id)
        if session_id:
            session.id = session_id
        return cls(session)

    # Status

    def can_transition(self, to_status: SessionStatus) -> bool:
        return to_status in self._transition_map.get(self.session.status, set())

    def _set_status(self, to_status: SessionStatus) -> None:
        if not self.can_transition(to_status):
            raise InvalidTransitionError(
                f"Session {self.session.id}: {self.session.status.value} -> {to_status.value} not allowed",
                session_id=self.session.id,
            )
        logger.debug("Session %s: %s -> %s", self.session.id, self.session.status.value, to_status.value)
        self.session.status = to_status

    def start(self) -> None:
        with self._lock:
            self._set_status(SessionStatus.RUNNING)
            self.session.started_at = datetime.now()

    def complete(self, result: Any) -> None:
        with self._lock:
            self._set_status(SessionStatus.COMPLETED)
            self.session.result = result
            self.session.completed_at = datetime.now()

    def fail(self, error: ReasoningError, step_id: str | None = None) -> None:
        with self._lock:
            self._set_status(SessionStatus.FAILED)
            self.session.error = ErrorInfo(type=error.kind, message=error.message, step_id=step_id)
            self.session.completed_at = datetime.now()

    def pause(self, notes: str, result: Any = None) -> None:
        """Hold the session for external review."""
        with self._lock:
            self._set_status(SessionStatus.PAUSED)
            self.session.review_requested = True
            self.session.review_notes = notes
            self.session.result = result

    def resolve_review(self, approved: bool, notes: str | None = None) -> None:
        """Resolve a review hold to completed (approved) or failed."""
        with self._lock:
            if self.session.status != SessionStatus.PAUSED:
                raise InvalidTransitionError(
                    f"Session {self.session.id} is not awaiting review",
                    session_id=self.session.id,
                )
            if notes:
                self.session.review_notes = notes
            if approved:
                self._set_status(SessionStatus.COMPLETED)
            else:
                self._set_status(SessionStatus.FAILED)
                self.session.error = ErrorInfo(type="review_rejected", message=notes or "Rejected in review")
            self.session.completed_at = datetime.now()

    def _guard_terminal(self) -> None:
        if self.session.is_terminal:
            raise InvalidTransitionError(
                f"Session {self.session.id} is {self.session.status.value}; no further changes allowed",
                session_id=self.session.id,
            )

    # Decisions and modes

    def activate_decision(self, decision: RoutingDecision) -> None:
        """Bind the first attempt's decision."""
        with self._lock:
            self._guard_terminal()
            if self.session.active_decision is not None:
                raise InvalidTransitionError(
                    f"Session {self.session.id} already has an active decision; use begin_attempt",
                    session_id=self.session.id,
                )
            self.session.attempt = decision.attempt
            self.session.active_decision = decision
            self.session.decisions.append(decision)
            self.session.current_mode = decision.mode

    def begin_attempt(self, decision: RoutingDecision, reason: str) -> None:
        """Replace the active decision with a new attempt's decision."""
        with self._lock:
            self._guard_terminal()
            if decision.attempt <= self.session.attempt:
                raise InvalidTransitionError(
                    f"Attempt {decision.attempt} does not follow attempt {self.session.attempt}",
                    session_id=self.session.id,
                )
            previous_mode = self.session.current_mode
            self.session.next_attempt_mode = None
            self.session.attempt = decision.attempt
            self.session.active_decision = decision
            self.session.decisions.append(decision)
            self.session.current_mode = decision.mode

            if previous_mode is not None:
                self.session.transitions.append(ModeTransition(
                    from_mode=previous_mode,
                    to_mode=decision.mode,
                    reason=reason,
                    confidence=decision.confidence,
                    metrics=self.metrics(),
                    attempt=decision.attempt,
                ))
            logger.info("Session %s: attempt %d (%s/%s): %s",
                        self.session.id, decision.attempt, decision.mode.value, decision.model, reason)

    def record_transition(
        self,
        to_mode: ModeCategory,
        reason: str,
        confidence: float,
        metrics: dict[str, Any] | None = None,
    ) -> ModeTransition:
        """Escalate the mode within the current attempt.

        Raises:
            InvalidTransitionError: If the escalation is not monotonic
        """
        with self._lock:
            self._guard_terminal()
            from_mode = self.session.current_mode
            if from_mode is None or to_mode not in MODE_ESCALATIONS[from_mode]:
                raise InvalidTransitionError(
                    f"Mode change {from_mode.value if from_mode else None} -> {to_mode.value} "
                    f"is not an escalation",
                    session_id=self.session.id,
                )
            transition = ModeTransition(
                from_mode=from_mode,
                to_mode=to_mode,
                reason=reason,
                confidence=max(0.0, min(1.0, confidence)),
                metrics=metrics if metrics is not None else self.metrics(),
                attempt=self.session.attempt,
            )
            self.session.transitions.append(transition)
            self.session.current_mode = to_mode

        logger.info("Session %s: %s -> %s (%s)", self.session.id, from_mode.value, to_mode.value, reason)
        return transition

    def set_next_attempt_mode(self, mode: ModeCategory) -> None:
        with self._lock:
            self.session.next_attempt_mode = mode

    # Trace and accounting

    def append_step(
        self,
        step_type: StepType,
        content: str,
        confidence: float,
        dependencies: tuple[str, ...] = (),
        output: Any = None,
    ) -> ReasoningStep:
        """Append a reasoning step.

        Raises:
            InvalidTransitionError: If the session is terminal
        """
        with self._lock:
            self._guard_terminal()
            step = ReasoningStep(
                id=f"{self.session.id}-s{len(self.session.steps) + 1}",
                type=step_type,
                content=content,
                confidence=max(0.0, min(1.0, confidence)),
                dependencies=dependencies,
                output=output,
                attempt=max(1, self.session.attempt),
            )
            self.session.steps.append(step)
            return step

    def record_call(self, cost: float, tokens: int, success: bool = True) -> None:
        with self._lock:
            self.session.model_calls += 1
            if success:
                self.session.total_cost += cost
                self.session.total_tokens += tokens
            else:
                self.session.failed_calls += 1

    def record_tool_call(self, success: bool) -> None:
        with self._lock:
            self.session.tool_calls += 1
            if not success:
                self.session.failed_calls += 1

    def steps(self, attempt: int | None = None) -> list[ReasoningStep]:
        with self._lock:
            return [s for s in self.session.steps if attempt is None or s.attempt == attempt]

    def metrics(self) -> dict[str, Any]:
        """Snapshot of the session's running metrics."""
        return {
            "cost": round(self.session.total_cost, 6),
            "tokens": self.session.total_tokens,
            "elapsed_ms": self.session.elapsed_ms,
            "error_rate": round(self.session.error_rate, 4),
            "model_calls": self.session.model_calls,
        }

    # Persistence

    def save_state(self, sessions_dir: Path | str) -> Path:
        """Persist the session to `<sessions_dir>/<session_id>.json`."""
        sessions_dir = Path(sessions_dir)
        sessions_dir.mkdir(parents=True, exist_ok=True)
        state_file = sessions_dir / f"{self.session.id}.json"

        with self._lock:
            data = self.session.model_dump(mode="json")
        with open(state_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

        return state_file

    @classmethod
    def load_state(cls, sessions_dir: Path | str, session_id: str) -> "SessionStateMachine":
        """Load a persisted session.

        Raises:
            FileNotFoundError: If no state file exists for the session
        """
        state_file = Path(sessions_dir) / f"{session_id}.json"
        with open(state_file, encoding="utf-8") as f:
            data = json.load(f)
        return cls(ExecutionSession(**data))
