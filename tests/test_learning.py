"""Tests for the performance store, learner and routing snapshots."""

import pytest

from learning import PerformanceLearner, PerformanceStore, SnapshotStore, recommend_strategy, rule_weight
from pipeline.config import RoutingConfig
from routing import ModelRouter
from schemas.performance import MetricsFilter, PerformanceRecord
from schemas.routing import (
    ConditionField,
    EqualsCondition,
    ModeCategory,
    RoutingAction,
    RoutingRule,
    RoutingStrategy,
    RuleSet,
)


def _record(mode=ModeCategory.THINKING, model="model-x", success=True, accuracy=0.9, cost=0.01, **kwargs):
    return PerformanceRecord(
        mode=mode,
        model=model,
        processing_time_ms=1200,
        cost=cost,
        accuracy=accuracy,
        success=success,
        **kwargs,
    )


def _competing_rules() -> RuleSet:
    general = (EqualsCondition(field=ConditionField.DOMAIN, value="general"),)
    return RuleSet(rules=(
        RoutingRule(id="use-x", priority=1, weight=0.5, conditions=general,
                    action=RoutingAction(mode=ModeCategory.THINKING, model="model-x")),
        RoutingRule(id="use-y", priority=1, weight=0.6, conditions=general,
                    action=RoutingAction(mode=ModeCategory.THINKING, model="model-y")),
        RoutingRule(id="fallback", weight=0.5,
                    action=RoutingAction(mode=ModeCategory.HYBRID, model="model-x")),
    ))


def test_rule_weight_formula():
    assert rule_weight(1.0, 1.0) == 1.0
    assert rule_weight(0.5, 0.9) == pytest.approx(0.66)
    assert rule_weight(0.0, 0.0) == 0.1


def test_learner_reweights_rules_from_outcomes(make_task):
    snapshots = SnapshotStore(rule_set=_competing_rules())
    learner = PerformanceLearner(PerformanceStore(), snapshots, window=100, cadence=10)
    router = ModelRouter(RoutingConfig(), snapshots)
    assert router.decide(make_task()).model == "model-y"

    for i in range(40):
        learner.record(_record(model="model-x", success=i >= 2))
    for i in range(60):
        learner.record(_record(model="model-y", success=i % 2 == 0))

    rules = snapshots.current().rule_set
    assert snapshots.version == 11
    assert rules.get("use-x").weight == pytest.approx(0.6 * 0.95 + 0.4 * 0.9)
    assert rules.get("use-y").weight == pytest.approx(0.6 * 0.5 + 0.4 * 0.9)
    assert rules.get("use-x").weight > rules.get("use-y").weight
    assert rules.get("fallback").weight == 0.5
    assert router.decide(make_task()).model == "model-x"


def test_outcomes_credit_the_matched_rule_after_strategy_rewrite(make_task):
    snapshots = SnapshotStore()
    before = {r.id: r.weight for r in snapshots.current().rule_set.rules}
    router = ModelRouter(RoutingConfig(strategy="quality-optimized"), snapshots)
    decision = router.decide(make_task())
    assert decision.rule_id == "low-complexity-non-thinking"
    assert (decision.mode, decision.model) == (ModeCategory.THINKING, "glm-45-flagship")

    learner = PerformanceLearner(PerformanceStore(), snapshots, cadence=10)
    for _ in range(10):
        learner.record(_record(mode=decision.mode, model=decision.model, success=False,
                               accuracy=0.0, rule_id=decision.rule_id))

    after = {r.id: r.weight for r in snapshots.current().rule_set.rules}
    assert after.pop("low-complexity-non-thinking") == 0.1
    before.pop("low-complexity-non-thinking")
    assert after == before
    assert after["healthcare-strict"] == 1.0


def test_recompute_without_records_keeps_snapshot():
    snapshots = SnapshotStore()
    learner = PerformanceLearner(PerformanceStore(), snapshots)
    assert learner.recompute().version == 1


def test_learned_statistics_reach_registry():
    snapshots = SnapshotStore()
    learner = PerformanceLearner(PerformanceStore(), snapshots, cadence=2)
    learner.record(_record(model="gpt-4o", accuracy=0.6))
    learner.record(_record(model="gpt-4o", accuracy=0.8, success=False))

    stats = snapshots.current().registry.get("gpt-4o").stats
    assert stats.samples == 2
    assert stats.success_rate == 0.5
    assert stats.mean_accuracy == pytest.approx(0.7)
    assert learner.accuracy_weights(["gpt-4o", "gemini-pro"]) == pytest.approx({"gpt-4o": 0.7, "gemini-pro": 1.0})


def test_background_learner_flushes():
    snapshots = SnapshotStore()
    learner = PerformanceLearner(PerformanceStore(), snapshots, cadence=100, background=True)
    try:
        for _ in range(5):
            learner.record(_record(model="gpt-4o"))
        snapshot = learner.flush()
    finally:
        learner.close()

    assert snapshot.version == 2
    assert len(learner.store) == 5


def test_summary_filters_records():
    learner = PerformanceLearner(PerformanceStore(), SnapshotStore())
    learner.record(_record(mode=ModeCategory.THINKING, model="gpt-4o"))
    learner.record(_record(mode=ModeCategory.NON_THINKING, model="gpt-4o-mini", success=False))

    summary = learner.summary()
    assert summary.total_requests == 2
    assert summary.success_rate == 0.5
    assert summary.mode_usage == {"thinking": 1, "non-thinking": 1}

    thinking = learner.summary(MetricsFilter(mode=ModeCategory.THINKING))
    assert thinking.total_requests == 1
    assert [p.model for p in thinking.pairs] == ["gpt-4o"]


def test_recommend_strategy():
    expensive = [_record(cost=0.2) for _ in range(10)]
    cheap_inaccurate = [_record(cost=0.001, accuracy=0.5) for _ in range(10)]

    assert recommend_strategy([]) == RoutingStrategy.BALANCED
    assert recommend_strategy(expensive) == RoutingStrategy.COST_OPTIMIZED
    assert recommend_strategy(cheap_inaccurate) == RoutingStrategy.QUALITY_OPTIMIZED


def test_store_retention_and_reload(tmp_path):
    path = tmp_path / "performance.jsonl"
    store = PerformanceStore(path, retention=3)
    for i in range(10):
        store.append(_record(task_id=f"t{i}"))

    assert len(store) == 3
    assert [r.task_id for r in store.recent(3)] == ["t7", "t8", "t9"]
    assert len(path.read_text().splitlines()) <= 6

    reloaded = PerformanceStore(path, retention=3)
    assert [r.task_id for r in reloaded.all()] == ["t7", "t8", "t9"]


def test_store_skips_corrupt_lines(tmp_path):
    path = tmp_path / "performance.jsonl"
    path.write_text(_record(task_id="ok").model_dump_json() + "\nnot json\n")

    store = PerformanceStore(path)
    assert [r.task_id for r in store.all()] == ["ok"]


def test_snapshot_save_and_load(tmp_path):
    snapshots = SnapshotStore()
    current = snapshots.current()
    snapshots.publish(rule_set=current.rule_set.with_weights({"default-balanced": 0.3}))
    path = tmp_path / "snapshot.json"
    snapshots.save(path)

    loaded = SnapshotStore.load(path)
    assert loaded.version == 2
    assert loaded.current().rule_set.get("default-balanced").weight == 0.3
    assert loaded.current().registry.ids() == current.registry.ids()


def test_published_snapshot_leaves_readers_consistent():
    snapshots = SnapshotStore()
    held = snapshots.current()
    snapshots.publish(rule_set=held.rule_set.with_weights({"default-balanced": 0.2}))

    assert held.rule_set.get("default-balanced").weight == 0.5
    assert snapshots.current().rule_set.get("default-balanced").weight == 0.2
    assert snapshots.current().rule_set.version == held.rule_set.version + 1
