"""Performance learner.

Consumes PerformanceRecords, keeps rolling statistics per (mode, model)
pair over a bounded window, and periodically republishes the routing
snapshot with re-weighted rules and refreshed model statistics.

Weight update for a rule, over the records credited to it:

    weight = clamp(0.1, 1.0, 0.6 * success_rate + 0.4 * mean_accuracy)

A record that names the rule it was routed by is credited to that rule
only, whatever mode and model the strategy or a retry ended up using. A
record without a rule id is credited to every rule whose action selects
its (mode, model) pair. Rules with no credited records keep their weight.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import Counter, defaultdict
from collections.abc import Iterable

import numpy as np

from schemas.performance import MetricsFilter, PairStats, PerformanceRecord, PerformanceSummary
from schemas.routing import ModeCategory, ModelStats, RoutingRule, RoutingStrategy

from .snapshots import RoutingSnapshot, SnapshotStore
from .store import PerformanceStore

logger = logging.getLogger(__name__)

SUCCESS_WEIGHT = 0.6
ACCURACY_WEIGHT = 0.4
MIN_RULE_WEIGHT = 0.1
MAX_RULE_WEIGHT = 1.0


def rule_weight(success_rate: float, mean_accuracy: float) -> float:
    """Rule weight from a pair's success rate and accuracy."""
    raw = SUCCESS_WEIGHT * success_rate + ACCURACY_WEIGHT * mean_accuracy
    return float(max(MIN_RULE_WEIGHT, min(MAX_RULE_WEIGHT, raw)))


def compute_pair_stats(records: list[PerformanceRecord]) -> dict[tuple[str, str], PairStats]:
    """Aggregate records per (mode, model) pair."""
    grouped: dict[tuple[str, str], list[PerformanceRecord]] = defaultdict(list)
    for record in records:
        grouped[record.key].append(record)

    stats = {}
    for key, group in grouped.items():
        success = np.array([r.success for r in group], dtype=np.float64)
        accuracy = np.array([r.accuracy for r in group], dtype=np.float64)
        cost = np.array([r.cost for r in group], dtype=np.float64)
        elapsed = np.array([r.processing_time_ms for r in group], dtype=np.float64)
        stats[key] = PairStats(
            mode=ModeCategory(key[0]),
            model=key[1],
            samples=len(group),
            success_rate=float(success.mean()),
            mean_accuracy=float(accuracy.mean()),
            mean_cost=float(cost.mean()),
            mean_processing_time_ms=float(elapsed.mean()),
        )
    return stats


def compute_rule_weights(records: list[PerformanceRecord], rules: Iterable[RoutingRule]) -> dict[str, float]:
    """Learned weight of every rule that has records credited to it."""
    by_rule: dict[str, list[PerformanceRecord]] = defaultdict(list)
    by_pair: dict[tuple[str, str], list[PerformanceRecord]] = defaultdict(list)
    for record in records:
        if record.rule_id is not None:
            by_rule[record.rule_id].append(record)
        else:
            by_pair[record.key].append(record)

    weights = {}
    for rule in rules:
        credited = by_rule.get(rule.id, []) + by_pair.get((rule.action.mode.value, rule.action.model), [])
        if credited:
            weights[rule.id] = rule_weight(
                float(np.mean([r.success for r in credited])),
                float(np.mean([r.accuracy for r in credited])),
            )
    return weights


def compute_model_stats(records: list[PerformanceRecord]) -> dict[str, ModelStats]:
    """Aggregate records per model across modes."""
    grouped: dict[str, list[PerformanceRecord]] = defaultdict(list)
    for record in records:
        grouped[record.model].append(record)

    return {
        model: ModelStats(
            samples=len(group),
            success_rate=float(np.mean([r.success for r in group])),
            mean_accuracy=float(np.mean([r.accuracy for r in group])),
            mean_cost=float(np.mean([r.cost for r in group])),
            mean_latency_ms=float(np.mean([r.processing_time_ms for r in group])),
        )
        for model, group in grouped.items()
    }


def recommend_strategy(records: list[PerformanceRecord]) -> RoutingStrategy:
    """Recommend a routing strategy from recent outcomes.

    Expensive but reliable routing suggests cost-optimized; cheap but
    inaccurate routing suggests quality-optimized.
    """
    if not records:
        return RoutingStrategy.BALANCED

    mean_cost = float(np.mean([r.cost for r in records]))
    success_rate = float(np.mean([r.success for r in records]))
    accuracy = float(np.mean([r.accuracy for r in records]))

    if mean_cost > 0.05 and success_rate > 0.9:
        return RoutingStrategy.COST_OPTIMIZED
    if accuracy < 0.8 and mean_cost < 0.03:
        return RoutingStrategy.QUALITY_OPTIMIZED
    return RoutingStrategy.BALANCED


class PerformanceLearner:
    """Learns routing weights from execution outcomes.

    Example:
        learner = PerformanceLearner(PerformanceStore(), snapshots, cadence=10)
        learner.record(record)   # recompute every 10 records
        learner.flush()          # drain and recompute now
    """

    def __init__(
        self,
        store: PerformanceStore,
        snapshots: SnapshotStore,
        window: int = 100,
        cadence: int = 10,
        background: bool = False,
    ):
        """Initialize learner.

        Args:
            store: Record store (append-only)
            snapshots: Snapshot store the learner publishes to
            window: Number of newest records each recompute considers
            cadence: Recompute after this many new records
            background: Consume records on a worker thread
        """
        self.store = store
        self.snapshots = snapshots
        self.window = window
        self.cadence = max(1, cadence)
        self._pending = 0
        self._lock = threading.Lock()

        self._queue: queue.Queue[PerformanceRecord | None] | None = None
        self._thread: threading.Thread | None = None
        if background:
            self._queue = queue.Queue()
            self._thread = threading.Thread(target=self._run, name="performance-learner", daemon=True)
            self._thread.start()

    @classmethod
    def from_config(cls, config, snapshots: SnapshotStore) -> "PerformanceLearner":
        """Build from a LearningConfig section."""
        store = PerformanceStore(config.store_path or None, retention=config.retention)
        return cls(
            store,
            snapshots,
            window=config.window,
            cadence=config.cadence,
            background=config.background,
        )

    def record(self, record: PerformanceRecord) -> None:
        """Submit an outcome. Never blocks on a recompute in background mode."""
        if self._queue is not None:
            self._queue.put(record)
        else:
            self._consume(record)

    def _consume(self, record: PerformanceRecord) -> None:
        self.store.append(record)
        with self._lock:
            self._pending += 1
            due = self._pending >= self.cadence
        if due:
            self.recompute()

    def _run(self) -> None:
        while True:
            record = self._queue.get()
            try:
                if record is None:
                    return
                self._consume(record)
            except Exception:
                logger.exception("Learner failed to consume record")
            finally:
                self._queue.task_done()

    def flush(self) -> RoutingSnapshot:
        """Drain queued records and recompute immediately."""
        if self._queue is not None:
            self._queue.join()
        return self.recompute()

    def close(self) -> None:
        """Stop the worker thread after draining the queue."""
        if self._queue is not None and self._thread is not None:
            self._queue.put(None)
            self._thread.join(timeout=5.0)
            self._thread = None

    def recompute(self) -> RoutingSnapshot:
        """Recompute statistics over the window and publish a new snapshot.

        Returns:
            The published snapshot (the current one when there is no data)
        """
        with self._lock:
            self._pending = 0

        records = self.store.recent(self.window)
        if not records:
            return self.snapshots.current()

        pairs = compute_pair_stats(records)
        current = self.snapshots.current()

        weights = compute_rule_weights(records, current.rule_set.rules)

        snapshot = self.snapshots.publish(
            rule_set=current.rule_set.with_weights(weights),
            registry=current.registry.with_stats(compute_model_stats(records)),
        )
        logger.info(
            "Learner recomputed %d pairs over %d records, reweighted %d rules",
            len(pairs), len(records), len(weights),
        )
        return snapshot

    def pair_stats(self) -> list[PairStats]:
        """Rolling statistics for every pair in the current window."""
        pairs = compute_pair_stats(self.store.recent(self.window))
        return sorted(pairs.values(), key=lambda p: (p.mode.value, p.model))

    def accuracy_weights(self, models: list[str]) -> dict[str, float]:
        """Synthesis weights from learned mean accuracy (equal when unknown)."""
        registry = self.snapshots.current().registry
        weights = {}
        for model in models:
            profile = registry.get(model)
            learned = profile.stats.mean_accuracy if profile is not None else None
            weights[model] = learned if learned is not None else 1.0
        if all(w == 1.0 for w in weights.values()):
            return {m: 1.0 for m in models}
        return weights

    def summary(self, filter: MetricsFilter | None = None) -> PerformanceSummary:
        """Aggregate analytics over stored records."""
        records = self.store.query(filter)
        if not records:
            return PerformanceSummary()

        return PerformanceSummary(
            total_requests=len(records),
            success_rate=float(np.mean([r.success for r in records])),
            average_accuracy=float(np.mean([r.accuracy for r in records])),
            average_cost=float(np.mean([r.cost for r in records])),
            average_processing_time_ms=float(np.mean([r.processing_time_ms for r in records])),
            mode_usage=dict(Counter(r.mode.value for r in records)),
            model_usage=dict(Counter(r.model for r in records)),
            pairs=sorted(compute_pair_stats(records).values(), key=lambda p: (p.mode.value, p.model)),
            recommended_strategy=recommend_strategy(records).value,
        )

    def recommend_strategy(self) -> RoutingStrategy:
        return recommend_strategy(self.store.recent(self.window))
