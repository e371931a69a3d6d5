"""Task characterization.

Derives the normalized FeatureVector the rule engine matches against.
Characterization is pure: the deadline bands are measured against the
task's own submission time (or an explicit reference time), never the
wall clock, so the same task always yields the same features.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from schemas.routing import FeatureVector
from schemas.task import Complexity, ExecutionContext, Priority, Task, TaskType

logger = logging.getLogger(__name__)


COMPLEXITY_SCORES: dict[Complexity, float] = {
    Complexity.SIMPLE: 0.2,
    Complexity.MODERATE: 0.5,
    Complexity.COMPLEX: 0.8,
    Complexity.EXPERT: 1.0,
}

# Added on top of the declared complexity
TASK_TYPE_OFFSETS: dict[TaskType, float] = {
    TaskType.ANALYSIS: 0.1,
    TaskType.GENERATION: 0.2,
    TaskType.TRANSFORMATION: 0.15,
    TaskType.VALIDATION: 0.25,
}

PRIORITY_SCORES: dict[Priority, float] = {
    Priority.LOW: 0.2,
    Priority.MEDIUM: 0.5,
    Priority.HIGH: 0.8,
    Priority.CRITICAL: 1.0,
}

# (window, urgency bonus); first matching band wins
DEADLINE_BANDS: list[tuple[timedelta, float]] = [
    (timedelta(hours=1), 0.3),
    (timedelta(days=1), 0.15),
]

DEFAULT_COST_SENSITIVITY = 0.5
QUALITY_BONUS = 0.2


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def _urgency(task: Task, reference: datetime) -> float:
    urgency = PRIORITY_SCORES[task.priority]
    if task.deadline is not None:
        remaining = task.deadline - reference
        for window, bonus in DEADLINE_BANDS:
            if remaining < window:
                urgency += bonus
                break
    return clamp(urgency)


def _cost_sensitivity(budget: float | None, budget_reference: float) -> float:
    if budget is None or budget_reference <= 0:
        return DEFAULT_COST_SENSITIVITY
    return clamp(1.0 - budget / budget_reference)


def characterize_task(
    task: Task,
    context: ExecutionContext | None = None,
    budget_reference: float = 1.0,
) -> FeatureVector:
    """Compute the feature vector for a task.

    Args:
        task: Task to characterize
        context: Optional context (domain override, budget, preference, clock)
        budget_reference: Budget in USD that maps to zero cost sensitivity

    Returns:
        FeatureVector with every numeric feature in [0, 1]
    """
    context = context or ExecutionContext()
    reference = context.reference_time or task.submitted_at

    complexity = clamp(COMPLEXITY_SCORES[task.complexity] + TASK_TYPE_OFFSETS[task.type])

    budget = context.budget if context.budget is not None else task.budget_ceiling
    cost_sensitivity = _cost_sensitivity(budget, budget_reference)

    quality = PRIORITY_SCORES[task.priority]
    if task.type == TaskType.VALIDATION or task.complexity == Complexity.EXPERT:
        quality += QUALITY_BONUS

    features = FeatureVector(
        complexity=complexity,
        urgency=_urgency(task, reference),
        cost_sensitivity=cost_sensitivity,
        quality_required=clamp(quality),
        domain=context.domain_override or task.domain,
        task_type=task.type.value,
        user_preference=context.user_preference or "balanced",
    )

    logger.debug(
        "Characterized task %s: complexity=%.2f urgency=%.2f cost=%.2f quality=%.2f domain=%s",
        task.id,
        features.complexity,
        features.urgency,
        features.cost_sensitivity,
        features.quality_required,
        features.domain,
    )
    return features
