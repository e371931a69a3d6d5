"""Task routing to reasoning modes and models.

Characterizes tasks, evaluates routing rules against a versioned
snapshot, and applies the configured cost/quality strategy.
"""

from .characterizer import characterize_task
from .registry import ModelRegistry
from .router import ModelRouter
from .rules import RuleEngine, RuleMatch, evaluate_condition
from .strategy import StrategyPolicy, apply_strategy, estimate_metrics, score_confidence

__all__ = [
    "ModelRouter",
    "ModelRegistry",
    "RuleEngine",
    "RuleMatch",
    "StrategyPolicy",
    "apply_strategy",
    "characterize_task",
    "estimate_metrics",
    "evaluate_condition",
    "score_confidence",
]
