"""Mode-switch monitor.

Evaluates an ordered list of triggers against a session's running
metrics. The monitor is consulted between steps (after the hybrid quick
pass and after each thinking pass); it never interrupts a call that is
already in flight. The first matching trigger wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from schemas.routing import ModeCategory

logger = logging.getLogger(__name__)


class TriggerType(str, Enum):
    """Metric a trigger watches."""

    COMPLEXITY = "complexity"
    COST = "cost"
    TIME = "time"
    CONFIDENCE = "confidence"
    ERROR_RATE = "error_rate"


class SwitchAction(str, Enum):
    """What the executor should do when a trigger fires."""

    ESCALATE = "escalate"                      # Switch to thinking now
    DE_ESCALATE_NEXT = "de_escalate_next"      # Prefer non-thinking next attempt
    ESCALATE_AND_RETRY = "escalate_and_retry"  # Launch a new attempt in thinking mode
    FLAG_REVIEW = "flag_review"                # Hold for external review


@dataclass(frozen=True)
class Trigger:
    """One mode-switch rule.

    Attributes:
        type: Metric watched
        threshold: Comparison value
        action: Action when the trigger fires
        mode: Mode the trigger applies to (None = any mode)
        below: Fire when the metric is below the threshold instead of above
    """

    type: TriggerType
    threshold: float
    action: SwitchAction
    mode: ModeCategory | None = None
    below: bool = False


@dataclass(frozen=True)
class SwitchMetrics:
    """Metrics the monitor evaluates."""

    complexity: float
    cost: float
    elapsed_ms: float
    error_rate: float
    confidence: float | None = None


@dataclass(frozen=True)
class SwitchSignal:
    """A fired trigger."""

    trigger: Trigger
    value: float
    reason: str

    @property
    def action(self) -> SwitchAction:
        return self.trigger.action


DEFAULT_TRIGGERS: tuple[Trigger, ...] = (
    Trigger(TriggerType.COMPLEXITY, 0.7, SwitchAction.ESCALATE, ModeCategory.NON_THINKING),
    Trigger(TriggerType.COST, 0.1, SwitchAction.DE_ESCALATE_NEXT, ModeCategory.THINKING),
    Trigger(TriggerType.TIME, 10000, SwitchAction.DE_ESCALATE_NEXT, ModeCategory.THINKING),
    Trigger(TriggerType.CONFIDENCE, 0.6, SwitchAction.ESCALATE, ModeCategory.NON_THINKING, below=True),
    Trigger(TriggerType.ERROR_RATE, 0.5, SwitchAction.ESCALATE_AND_RETRY),
    Trigger(TriggerType.CONFIDENCE, 0.3, SwitchAction.FLAG_REVIEW, ModeCategory.THINKING, below=True),
)


def _metric(metrics: SwitchMetrics, trigger_type: TriggerType) -> float | None:
    return {
        TriggerType.COMPLEXITY: metrics.complexity,
        TriggerType.COST: metrics.cost,
        TriggerType.TIME: metrics.elapsed_ms,
        TriggerType.CONFIDENCE: metrics.confidence,
        TriggerType.ERROR_RATE: metrics.error_rate,
    }[trigger_type]


class SwitchMonitor:
    """Evaluates mode-switch triggers in order."""

    def __init__(self, triggers: tuple[Trigger, ...] = DEFAULT_TRIGGERS):
        self.triggers = triggers

    def evaluate(self, mode: ModeCategory, metrics: SwitchMetrics) -> SwitchSignal | None:
        """Return the first trigger that fires for a mode, if any."""
        for trigger in self.triggers:
            if trigger.mode is not None and trigger.mode != mode:
                continue
            value = _metric(metrics, trigger.type)
            if value is None:
                continue
            fired = value < trigger.threshold if trigger.below else value > trigger.threshold
            if fired:
                comparison = "<" if trigger.below else ">"
                reason = f"{trigger.type.value} trigger: {value:.2f} {comparison} {trigger.threshold:g}"
                logger.debug("Monitor (%s): %s -> %s", mode.value, reason, trigger.action.value)
                return SwitchSignal(trigger=trigger, value=value, reason=reason)
        return None
