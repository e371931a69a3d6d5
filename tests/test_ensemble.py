"""Tests for ensemble fan-out and result synthesis."""

import threading
import time

import pytest

from ensemble import EnsembleOrchestrator, ModelResult, ResultSynthesizer, consensus_score
from orchestrator import CancellationToken
from pipeline.errors import ExecutionTimeoutError, ProviderError, SessionCancelledError

from conftest import FakeBackend

ANSWER = '{"answer": "42", "confidence": 0.8}'


def _ensemble(**overrides) -> EnsembleOrchestrator:
    settings = {"max_fan_out": 3, "call_timeout": 5.0, "aggregation_window": 5.0, "poll_interval": 0.01}
    settings.update(overrides)
    return EnsembleOrchestrator(**settings)


def test_slow_secondary_is_excluded_after_window(make_task, make_ctx):
    release = threading.Event()
    backend = FakeBackend({"other": ANSWER, "synthesis": "Unified: 42"}, block={"gemini-pro": release})
    ctx = make_ctx(backend, make_task())

    try:
        outcome = _ensemble(aggregation_window=0.3).run(
            ctx, "What is the answer?", "gpt-4o", ("claude-3.5-sonnet", "gemini-pro")
        )
    finally:
        release.set()

    assert outcome.timed_out == ["gemini-pro"]
    assert sorted(outcome.contributors) == ["claude-3.5-sonnet", "gpt-4o"]
    assert outcome.primary.model == "gpt-4o"
    assert outcome.partial

    synthesis = ResultSynthesizer().synthesize(ctx, outcome.results, partial=outcome.partial)
    assert sorted(synthesis.contributors) == ["claude-3.5-sonnet", "gpt-4o"]
    assert synthesis.method == "model"
    assert synthesis.model == "glm-45-flagship"
    assert synthesis.consensus == 1.0
    assert synthesis.content == "Unified: 42"
    assert synthesis.partial


def test_failed_secondary_is_excluded(make_task, make_ctx):
    backend = FakeBackend({"other": ANSWER}, fail={"gemini-pro"})
    ctx = make_ctx(backend, make_task())

    outcome = _ensemble().run(ctx, "prompt", "gpt-4o", ("claude-3.5-sonnet", "gemini-pro"))

    assert [r.model for r in outcome.failed] == ["gemini-pro"]
    assert sorted(outcome.contributors) == ["claude-3.5-sonnet", "gpt-4o"]
    assert ctx.machine.session.failed_calls == 1
    assert ctx.machine.session.total_tokens == 60


def test_primary_failure_fails_ensemble(make_task, make_ctx):
    backend = FakeBackend({"other": ANSWER}, fail={"gpt-4o"})
    ctx = make_ctx(backend, make_task())

    with pytest.raises(ProviderError) as excinfo:
        _ensemble().run(ctx, "prompt", "gpt-4o", ("claude-3.5-sonnet",))
    assert excinfo.value.model_id == "gpt-4o"


def test_primary_timeout_is_a_provider_error(make_task, make_ctx):
    release = threading.Event()
    backend = FakeBackend({"other": ANSWER}, block={"gpt-4o": release})
    ctx = make_ctx(backend, make_task())

    try:
        with pytest.raises(ProviderError, match="no response"):
            _ensemble(call_timeout=0.2).run(ctx, "prompt", "gpt-4o", ("claude-3.5-sonnet",))
    finally:
        release.set()


def test_fan_out_is_capped(make_task, make_ctx):
    backend = FakeBackend({"other": ANSWER})
    ctx = make_ctx(backend, make_task())

    outcome = _ensemble(max_fan_out=2).run(
        ctx, "prompt", "gpt-4o", ("claude-3.5-sonnet", "gemini-pro", "gpt-4o")
    )
    assert sorted(outcome.contributors) == ["claude-3.5-sonnet", "gpt-4o"]
    assert len(backend.calls) == 2


def test_cancellation_stops_ensemble(make_task, make_ctx):
    release = threading.Event()
    token = CancellationToken()
    backend = FakeBackend({"other": ANSWER}, block={"gpt-4o": release, "gemini-pro": release})
    ctx = make_ctx(backend, make_task(), token=token)

    timer = threading.Timer(0.1, token.cancel)
    timer.start()
    try:
        with pytest.raises(SessionCancelledError):
            _ensemble().run(ctx, "prompt", "gpt-4o", ("gemini-pro",))
    finally:
        release.set()
        timer.cancel()


def test_session_deadline_keeps_partial_results(make_task, make_ctx):
    release = threading.Event()
    backend = FakeBackend({"other": ANSWER}, block={"gpt-4o": release})
    ctx = make_ctx(backend, make_task(), deadline=time.monotonic() + 0.3)

    try:
        with pytest.raises(ExecutionTimeoutError) as excinfo:
            _ensemble().run(ctx, "prompt", "gpt-4o", ("claude-3.5-sonnet", "gemini-pro"))
    finally:
        release.set()

    partial = sorted(r.model for r in excinfo.value.partial_results)
    assert partial == ["claude-3.5-sonnet", "gemini-pro"]


def test_consensus_score():
    assert consensus_score([]) == 1.0
    assert consensus_score([0.3]) == 1.0
    assert consensus_score([0.8, 0.8, 0.8]) == 1.0
    assert consensus_score([0.2, 1.0]) == pytest.approx(0.2)
    assert consensus_score([0.0, 1.0]) == 0.0


def test_single_result_passes_through(make_task, make_ctx, backend):
    ctx = make_ctx(backend, make_task())
    only = ModelResult(model="gpt-4o", success=True, content="just me", confidence=0.7, primary=True)

    synthesis = ResultSynthesizer().synthesize(ctx, [only])

    assert synthesis.method == "passthrough"
    assert synthesis.content == "just me"
    assert synthesis.consensus == 1.0
    assert backend.calls == []


def test_synthesis_falls_back_to_weighted_combination(make_task, make_ctx):
    backend = FakeBackend(fail={"glm-45-flagship"})
    ctx = make_ctx(backend, make_task())
    results = [
        ModelResult(model="gpt-4o", success=True, content="answer A", confidence=0.9, primary=True),
        ModelResult(model="gemini-pro", success=True, content="answer B", confidence=0.5),
    ]

    synthesis = ResultSynthesizer().synthesize(ctx, results)

    assert synthesis.method == "weighted"
    assert synthesis.content == "answer A"
    assert synthesis.confidence == pytest.approx(0.7)
    assert ctx.machine.session.failed_calls == 1


def test_learned_weights_pick_the_winner():
    synthesizer = ResultSynthesizer(weights=lambda models: {"gpt-4o": 1.0, "gemini-pro": 3.0})
    results = [
        ModelResult(model="gpt-4o", success=True, content="answer A", confidence=0.9, primary=True),
        ModelResult(model="gemini-pro", success=True, content="answer B", confidence=0.6),
    ]

    synthesis = synthesizer.combine(results)

    assert synthesis.content == "answer B"
    assert synthesis.confidence == pytest.approx((0.9 + 0.6 * 3) / 4)


def test_nothing_to_synthesize(make_task, make_ctx, backend):
    with pytest.raises(ValueError):
        ResultSynthesizer().synthesize(make_ctx(backend, make_task()), [])
