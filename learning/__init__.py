"""Outcome learning for routing.

Records execution outcomes and republishes routing snapshots with
re-weighted rules and learned model statistics.
"""

from .learner import PerformanceLearner, recommend_strategy, rule_weight
from .snapshots import RoutingSnapshot, SnapshotStore
from .store import PerformanceStore

__all__ = [
    "PerformanceLearner",
    "PerformanceStore",
    "RoutingSnapshot",
    "SnapshotStore",
    "recommend_strategy",
    "rule_weight",
]
