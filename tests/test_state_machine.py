"""Tests for the session state machine and the result cache."""

import pytest

from orchestrator import ResultCache, SessionStateMachine
from pipeline.config import RoutingConfig
from pipeline.errors import InvalidTransitionError, ToolError
from routing import ModelRouter
from schemas.routing import ModeCategory
from schemas.session import SessionStatus, StepType


@pytest.fixture
def decision(make_task, snapshots):
    return ModelRouter(RoutingConfig(), snapshots).decide(make_task())


@pytest.fixture
def machine(decision):
    machine = SessionStateMachine.create(decision.task_id, "ses-test")
    machine.start()
    machine.activate_decision(decision)
    return machine


def test_pending_session_cannot_complete():
    machine = SessionStateMachine.create("task-1")
    with pytest.raises(InvalidTransitionError):
        machine.complete("done")


def test_terminal_session_rejects_steps(machine):
    machine.append_step(StepType.ANALYSIS, "looked at it", 0.9)
    machine.complete("done")

    with pytest.raises(InvalidTransitionError):
        machine.append_step(StepType.SYNTHESIS, "late", 0.9)
    with pytest.raises(InvalidTransitionError):
        machine.complete("again")
    assert len(machine.steps()) == 1


def test_failed_session_keeps_trace_and_error(machine):
    step = machine.append_step(StepType.TOOL_SELECTION, "selected lookup", 0.8)
    machine.fail(ToolError("lookup failed", tool_id="lookup", required=True), step_id=step.id)

    assert machine.session.status == SessionStatus.FAILED
    assert machine.session.error.type == "tool"
    assert machine.session.error.step_id == step.id
    assert machine.steps() == [step]


def test_mode_escalation_is_monotonic(machine):
    assert machine.session.current_mode == ModeCategory.NON_THINKING
    transition = machine.record_transition(ModeCategory.THINKING, "quality threshold", 0.5)

    assert transition.from_mode == ModeCategory.NON_THINKING
    assert machine.session.current_mode == ModeCategory.THINKING
    with pytest.raises(InvalidTransitionError):
        machine.record_transition(ModeCategory.NON_THINKING, "going back", 0.9)
    with pytest.raises(InvalidTransitionError):
        machine.record_transition(ModeCategory.HYBRID, "going back", 0.9)


def test_second_decision_requires_new_attempt(machine, decision):
    with pytest.raises(InvalidTransitionError):
        machine.activate_decision(decision)
    with pytest.raises(InvalidTransitionError):
        machine.begin_attempt(decision, "same attempt")

    retry = decision.model_copy(update={"attempt": 2, "mode": ModeCategory.THINKING})
    machine.begin_attempt(retry, "escalate and retry")
    assert machine.session.attempt == 2
    assert machine.session.active_decision == retry
    assert len(machine.session.decisions) == 2
    assert machine.session.transitions[-1].attempt == 2


def test_steps_are_tagged_with_attempt(machine, decision):
    machine.append_step(StepType.ANALYSIS, "first", 0.9)
    machine.begin_attempt(decision.model_copy(update={"attempt": 2}), "retry")
    machine.append_step(StepType.ANALYSIS, "second", 0.9)

    assert [s.content for s in machine.steps(attempt=1)] == ["first"]
    assert [s.content for s in machine.steps(attempt=2)] == ["second"]
    assert [s.id for s in machine.steps()] == ["ses-test-s1", "ses-test-s2"]


def test_review_resolution(machine):
    machine.pause("confidence trigger", result="draft")
    assert machine.session.status == SessionStatus.PAUSED
    assert machine.session.review_requested

    machine.resolve_review(approved=True, notes="looks fine")
    assert machine.session.status == SessionStatus.COMPLETED
    with pytest.raises(InvalidTransitionError):
        machine.resolve_review(approved=False)


def test_rejected_review_fails_session(machine):
    machine.pause("confidence trigger")
    machine.resolve_review(approved=False, notes="wrong")
    assert machine.session.status == SessionStatus.FAILED
    assert machine.session.error.type == "review_rejected"


def test_call_accounting(machine):
    machine.record_call(0.01, 30)
    machine.record_call(0.0, 0, success=False)
    machine.record_tool_call(success=False)

    session = machine.session
    assert session.total_cost == pytest.approx(0.01)
    assert session.total_tokens == 30
    assert session.model_calls == 2
    assert session.failed_calls == 2
    assert session.error_rate == pytest.approx(2 / 3)


def test_save_and_load_state(machine, tmp_path):
    machine.append_step(StepType.ANALYSIS, "looked at it", 0.9, output={"k": 1})
    machine.complete("done")
    path = machine.save_state(tmp_path)

    loaded = SessionStateMachine.load_state(tmp_path, "ses-test")
    assert path.name == "ses-test.json"
    assert loaded.session.status == SessionStatus.COMPLETED
    assert loaded.steps()[0].output == {"k": 1}
    assert loaded.session.active_decision.model == machine.session.active_decision.model


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cache_evicts_least_recently_used():
    cache = ResultCache(max_size=2, ttl_seconds=60, clock=FakeClock())
    cache.put("a", "A", 0.8, "m", 10)
    cache.put("b", "B", 0.8, "m", 10)
    assert cache.get("a").content == "A"

    cache.put("c", "C", 0.8, "m", 10)
    assert cache.get("b") is None
    assert cache.get("a") is not None
    assert len(cache) == 2


def test_cache_entries_expire():
    clock = FakeClock()
    cache = ResultCache(max_size=10, ttl_seconds=60, clock=clock)
    cache.put("a", "A", 0.8, "m", 10)

    clock.now = 59
    assert cache.get("a") is not None
    clock.now = 121
    assert cache.get("a") is None
    assert cache.stats() == {"size": 0, "hits": 1, "misses": 1}
