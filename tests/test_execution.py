"""End-to-end execution tests through HybridReasoningService."""

import json
import threading
import time

import pytest

from learning import SnapshotStore
from orchestrator import SwitchAction, SwitchMonitor, Trigger, TriggerType
from pipeline.errors import ValidationError
from schemas.routing import ModeCategory, RoutingAction, RoutingRule, RuleSet
from schemas.session import SessionStatus, StepType
from schemas.task import Complexity, Priority, SubmitOptions
from tools import LocalToolBackend, ToolCategory, ToolSpec

from conftest import FakeBackend


def _tools() -> LocalToolBackend:
    def flaky(params):
        raise RuntimeError("service down")

    tools = LocalToolBackend()
    tools.register(ToolSpec("lookup", category=ToolCategory.ANALYSIS), lambda params: {"rows": 3})
    tools.register(ToolSpec("flaky", category=ToolCategory.SYSTEM), flaky)
    return tools


def _ensemble_snapshots() -> SnapshotStore:
    rule = RoutingRule(
        id="ensemble",
        action=RoutingAction(
            mode=ModeCategory.THINKING,
            model="gpt-4o",
            secondary_models=("claude-3.5-sonnet", "gemini-pro"),
        ),
    )
    return SnapshotStore(rule_set=RuleSet(rules=(rule,)))


THINKING = SubmitOptions(mode=ModeCategory.THINKING)


# Non-thinking


def test_simple_task_answers_directly(make_service, make_task, backend):
    service = make_service(backend)
    result = service.submit_task(make_task())

    assert result.status == SessionStatus.COMPLETED
    assert result.mode == ModeCategory.NON_THINKING
    assert result.model == "glm-45-air"
    assert result.confidence >= 0.8
    assert result.content == "A direct answer."
    assert [c.kind for c in backend.calls] == ["direct"]
    assert result.tokens == 30
    assert result.cost > 0
    assert service.get_session(result.session_id).status == SessionStatus.COMPLETED
    assert service.learner.store.recent(1)[0].rule_id == "low-complexity-non-thinking"


def test_repeated_content_is_served_from_cache(make_service, make_task, backend):
    service = make_service(backend)
    first = service.submit_task(make_task(id="task-1"))
    second = service.submit_task(make_task(id="task-2"))

    assert not first.from_cache
    assert second.from_cache
    assert second.content == first.content
    assert len(backend.calls_of("direct")) == 1
    assert service.get_performance_metrics().total_requests == 1


# Thinking


def test_healthcare_task_runs_strict_thinking(make_service, make_task, backend):
    service = make_service(backend)
    task = make_task(complexity=Complexity.EXPERT, priority=Priority.CRITICAL, domain="healthcare")
    result = service.submit_task(task)

    assert result.status == SessionStatus.COMPLETED
    assert result.mode == ModeCategory.THINKING
    assert result.model == "glm-45-flagship"
    assert result.decision.parameters["compliance"] == "strict"
    assert result.content == "A reasoned answer."
    assert not result.low_confidence

    reflection = backend.calls_of("reflection")
    assert len(reflection) == 1
    assert reflection[0].kwargs == {"json_mode": True}

    steps = service.get_reasoning_trace(result.session_id)
    assert [s.type for s in steps] == [
        StepType.ANALYSIS,
        StepType.PLANNING,
        StepType.ANALYSIS,
        StepType.VALIDATION,
        StepType.SYNTHESIS,
    ]
    assert steps[1].output[2] == "step-by-step-reasoning"


def test_low_confidence_stops_after_max_depth(make_service, make_task, config):
    config.thinking.max_depth = 2
    backend = FakeBackend({"reflection": '{"confidence": 0.5, "improvements": ["cite sources"]}'})
    result = make_service(backend).submit_task(make_task(), THINKING)

    reasoning = backend.calls_of("reasoning")
    assert len(reasoning) == 3
    assert "cite sources" in reasoning[1].prompt
    assert result.status == SessionStatus.COMPLETED
    assert result.low_confidence


def test_schema_mismatch_caps_confidence(make_service, make_task, config):
    config.thinking.max_depth = 0
    backend = FakeBackend({"reasoning": '{"answer": "x"}'})
    task = make_task(expected_output={"type": "json", "required": ["summary"]})
    service = make_service(backend)
    result = service.submit_task(task, THINKING)

    steps = service.get_reasoning_trace(result.session_id)
    validation = [s for s in steps if s.type == StepType.VALIDATION]
    assert validation[0].content == "Missing required field: summary"
    assert validation[0].confidence == 0.5
    assert result.low_confidence


def test_optional_tool_failure_is_excluded(make_service, make_task, backend):
    service = make_service(backend, tools=_tools())
    task = make_task(required_tools=("lookup",), optional_tools=("flaky",))
    result = service.submit_task(task, THINKING)

    assert result.status == SessionStatus.COMPLETED
    tool_step = next(s for s in service.get_reasoning_trace(result.session_id) if s.type == StepType.TOOL_SELECTION)
    assert tool_step.output["succeeded"] == ["lookup"]
    assert tool_step.output["failed"] == ["flaky"]
    assert '"rows": 3' in backend.calls_of("reasoning")[0].prompt


def test_required_tool_failure_fails_session(make_service, make_task, backend):
    service = make_service(backend, tools=_tools())
    result = service.submit_task(make_task(required_tools=("flaky",)), THINKING)

    assert result.status == SessionStatus.FAILED
    assert result.error.type == "tool"
    steps = service.get_reasoning_trace(result.session_id)
    assert [s.type for s in steps] == [StepType.ANALYSIS, StepType.PLANNING]
    assert result.error.step_id == steps[-1].id
    assert backend.calls == []


def test_very_low_confidence_is_held_for_review(make_service, make_task):
    backend = FakeBackend({"reflection": '{"confidence": 0.2}'})
    service = make_service(backend)
    result = service.submit_task(make_task(), THINKING)

    assert result.status == SessionStatus.PAUSED
    assert result.needs_review

    session = service.resolve_review(result.session_id, approved=True)
    assert session.status == SessionStatus.COMPLETED


def test_escalate_and_retry_upgrades_model_tier(make_service, make_task):
    monitor = SwitchMonitor((
        Trigger(TriggerType.CONFIDENCE, 0.95, SwitchAction.ESCALATE_AND_RETRY, ModeCategory.THINKING, below=True),
    ))
    backend = FakeBackend()
    service = make_service(backend, monitor=monitor)
    result = service.submit_task(make_task(), THINKING)

    assert result.attempts == 2
    assert result.decision.attempt == 2
    assert result.decision.model == "claude-3.5-sonnet"
    assert result.status == SessionStatus.COMPLETED
    assert [t.attempt for t in result.transitions] == [2]
    assert {c.model for c in backend.calls_of("reasoning")} == {"glm-45-air", "claude-3.5-sonnet"}
    assert service.get_reasoning_trace(result.session_id)[-1].attempt == 2


def test_de_escalation_makes_next_attempt_non_thinking(make_service, make_task, config):
    config.thinking.reflection_model = "reviewer"
    monitor = SwitchMonitor((
        Trigger(TriggerType.ERROR_RATE, 0.4, SwitchAction.ESCALATE_AND_RETRY),
        Trigger(TriggerType.COST, 0.0, SwitchAction.DE_ESCALATE_NEXT, ModeCategory.THINKING),
    ))
    backend = FakeBackend(fail={"reviewer"})
    service = make_service(backend, monitor=monitor)
    result = service.submit_task(make_task(), THINKING)

    assert result.status == SessionStatus.COMPLETED
    assert result.attempts == 2
    assert result.mode == ModeCategory.NON_THINKING
    assert result.decision.mode == ModeCategory.NON_THINKING
    assert result.decision.model == "glm-45-air"
    transition = result.transitions[-1]
    assert (transition.from_mode, transition.to_mode) == (ModeCategory.THINKING, ModeCategory.NON_THINKING)
    assert "cost trigger" in transition.reason
    assert len(backend.calls_of("reasoning")) == 1
    assert len(backend.calls_of("direct")) == 1
    assert service.get_session(result.session_id).next_attempt_mode is None


def test_monitor_stops_attempt_after_tool_selection(make_service, make_task, backend):
    monitor = SwitchMonitor((Trigger(TriggerType.ERROR_RATE, 0.4, SwitchAction.ESCALATE_AND_RETRY),))
    service = make_service(backend, tools=_tools(), monitor=monitor)
    task = make_task(required_tools=("lookup",), optional_tools=("flaky",))
    result = service.submit_task(task, THINKING)

    assert result.status == SessionStatus.COMPLETED
    assert result.attempts == 2
    assert [c.model for c in backend.calls_of("reasoning")] == ["claude-3.5-sonnet"]
    first_attempt = [s.type for s in service.get_reasoning_trace(result.session_id) if s.attempt == 1]
    assert first_attempt == [StepType.ANALYSIS, StepType.PLANNING, StepType.TOOL_SELECTION]


def test_thinking_confidence_is_the_answer_confidence(make_service, make_task):
    backend = FakeBackend({"reflection": '{"confidence": 0.5}'})
    result = make_service(backend).submit_task(make_task(), THINKING)

    assert result.low_confidence
    assert result.confidence == pytest.approx(0.5)


def test_unexpected_handler_error_fails_session(make_service, make_task, backend):
    class BrokenTools(LocalToolBackend):
        def execute(self, tool_id, parameters):
            raise KeyError(tool_id)

    tools = BrokenTools()
    tools.register(ToolSpec("lookup", category=ToolCategory.ANALYSIS), lambda params: {})
    service = make_service(backend, tools=tools)
    result = service.submit_task(make_task(required_tools=("lookup",)), THINKING)

    assert result.status == SessionStatus.FAILED
    assert result.error.type == "reasoning"
    assert "KeyError" in result.error.message
    assert service.get_session(result.session_id).status == SessionStatus.FAILED
    assert [s.type for s in service.get_reasoning_trace(result.session_id)] == [StepType.ANALYSIS, StepType.PLANNING]


# Hybrid


def test_hybrid_escalates_on_low_quick_confidence(make_service, make_task):
    backend = FakeBackend({"direct": '{"answer": "short", "confidence": 0.5}', "reasoning": "A thorough answer."})
    result = make_service(backend).submit_task(make_task(), SubmitOptions(mode=ModeCategory.HYBRID))

    assert result.status == SessionStatus.COMPLETED
    assert result.mode == ModeCategory.THINKING
    assert result.content == "A thorough answer."
    assert len(result.transitions) == 1
    transition = result.transitions[0]
    assert transition.from_mode == ModeCategory.HYBRID
    assert transition.to_mode == ModeCategory.THINKING
    assert "quality threshold" in transition.reason
    assert transition.confidence == pytest.approx(0.5)


def test_hybrid_keeps_confident_quick_answer(make_service, make_task):
    backend = FakeBackend({"direct": '{"answer": "ok", "confidence": 0.95}'})
    result = make_service(backend).submit_task(make_task(), SubmitOptions(mode=ModeCategory.HYBRID))

    assert result.mode == ModeCategory.NON_THINKING
    assert result.transitions == []
    assert backend.calls_of("reasoning") == []


def test_hybrid_without_auto_switch_never_escalates(make_service, make_task, config):
    config.hybrid.auto_switch = False
    backend = FakeBackend({"direct": '{"answer": "short", "confidence": 0.4}'})
    result = make_service(backend).submit_task(make_task(), SubmitOptions(mode=ModeCategory.HYBRID))

    assert result.mode == ModeCategory.NON_THINKING
    assert result.transitions == []


# Ensemble


def test_ensemble_answer_is_synthesized(make_service, make_task):
    backend = FakeBackend({
        "reasoning": '{"answer": "x", "confidence": 0.85}',
        "synthesis": "Merged answer.",
    })
    service = make_service(backend, snapshots=_ensemble_snapshots())
    result = service.submit_task(make_task())

    assert result.status == SessionStatus.COMPLETED
    assert result.content == "Merged answer."
    assert sorted(result.contributors) == ["claude-3.5-sonnet", "gemini-pro", "gpt-4o"]
    assert result.consensus == 1.0
    assert not result.partial


def test_malformed_secondary_reply_is_excluded(make_service, make_task):
    def reasoning(model):
        if model == "gemini-pro":
            return json.loads("<html>502 Bad Gateway</html>")
        return '{"answer": "x", "confidence": 0.85}'

    backend = FakeBackend({"reasoning": reasoning, "synthesis": "Merged answer."})
    service = make_service(backend, snapshots=_ensemble_snapshots())
    result = service.submit_task(make_task(), THINKING)

    assert result.status == SessionStatus.COMPLETED
    assert result.content == "Merged answer."
    assert sorted(result.contributors) == ["claude-3.5-sonnet", "gpt-4o"]
    reasoning_step = next(s for s in service.get_reasoning_trace(result.session_id) if s.output and "failed" in s.output)
    assert reasoning_step.output["failed"] == ["gemini-pro"]


def test_budget_exhaustion_returns_partial_result(make_service, make_task):
    release = threading.Event()
    backend = FakeBackend({"reasoning": '{"answer": "partial", "confidence": 0.7}'}, block={"gpt-4o": release})
    service = make_service(backend, snapshots=_ensemble_snapshots())

    try:
        result = service.submit_task(make_task(), SubmitOptions(session_budget_seconds=0.3))
    finally:
        release.set()

    assert result.status == SessionStatus.FAILED
    assert result.error.type == "timeout"
    assert result.partial
    assert sorted(result.contributors) == ["claude-3.5-sonnet", "gemini-pro"]
    assert "partial" in result.content


# Service boundary


def test_malformed_task_rejected_before_model_call(make_service, make_task, backend):
    service = make_service(backend)

    with pytest.raises(ValidationError):
        service.submit_task(make_task(name="", description=""))
    with pytest.raises(ValidationError):
        service.submit_task(make_task(expected_output={"type": "xml"}))
    with pytest.raises(ValidationError):
        service.submit_task(make_task(required_tools=("lookup",)))
    assert backend.calls == []


def test_duplicate_session_id_rejected(make_service, make_task, backend):
    service = make_service(backend)
    options = SubmitOptions(session_id="ses-fixed")
    service.submit_task(make_task(), options)

    with pytest.raises(ValidationError):
        service.submit_task(make_task(id="task-2"), options)


def test_cancel_running_session(make_service, make_task):
    release = threading.Event()
    backend = FakeBackend(block={"glm-45-air": release})
    service = make_service(backend)
    results = []

    worker = threading.Thread(
        target=lambda: results.append(
            service.submit_task(make_task(), SubmitOptions(mode=ModeCategory.THINKING, session_id="ses-cancel"))
        )
    )
    worker.start()
    deadline = time.monotonic() + 5
    while not backend.calls and time.monotonic() < deadline:
        time.sleep(0.01)

    assert service.cancel("ses-cancel")
    release.set()
    worker.join(timeout=5)

    assert results[0].status == SessionStatus.FAILED
    assert results[0].error.type == "cancelled"
    assert not service.cancel("ses-cancel")


def test_unknown_session_trace_raises(make_service, backend):
    with pytest.raises(KeyError):
        make_service(backend).get_reasoning_trace("ses-missing")


def test_sessions_are_persisted(make_service, make_task, backend, config, tmp_path):
    config.execution.sessions_dir = str(tmp_path)
    result = make_service(backend).submit_task(make_task())

    assert (tmp_path / f"{result.session_id}.json").exists()
    steps = make_service(backend).get_reasoning_trace(result.session_id)
    assert steps[-1].content == "A direct answer."


def test_dry_run_routing_makes_no_calls(make_service, make_task, backend):
    service = make_service(backend)
    decision = service.get_routing_decision(make_task())

    assert decision.model == "glm-45-air"
    assert service.explain_routing(make_task())["rule_id"] == "low-complexity-non-thinking"
    assert {m.category for m in service.available_modes()} == set(ModeCategory)
    assert backend.calls == []
