"""Hybrid mode: quick non-thinking pass, escalating to thinking when needed."""

from __future__ import annotations

import logging

from pipeline.config import HybridConfig
from schemas.routing import ModeCategory, RoutingDecision

from .context import RunContext
from .non_thinking import NonThinkingExecutor
from .outcome import ModeOutcome
from .switch_monitor import SwitchAction, SwitchMonitor
from .thinking import ThinkingExecutor

logger = logging.getLogger(__name__)


class HybridExecutor:
    """Runs a quick pass and escalates to thinking on any fired threshold.

    Escalation is checked once, after the quick pass returns. When it
    happens the session records a HYBRID -> THINKING transition whose
    reason lists every threshold that fired.
    """

    def __init__(
        self,
        config: HybridConfig,
        non_thinking: NonThinkingExecutor,
        thinking: ThinkingExecutor,
        monitor: SwitchMonitor | None = None,
    ):
        self.config = config
        self.non_thinking = non_thinking
        self.thinking = thinking
        self.monitor = monitor or SwitchMonitor()

    def execute(self, ctx: RunContext, decision: RoutingDecision) -> ModeOutcome:
        quick = self.non_thinking.execute(ctx, decision)
        quick.mode = ModeCategory.NON_THINKING

        reasons, retry = self.escalation_reasons(ctx, decision, quick.confidence)
        if retry:
            quick.retry_requested = True
        if not reasons:
            logger.info("Task %s: quick pass sufficient (confidence %.2f)", ctx.task.id, quick.confidence)
            return quick

        reason = "; ".join(reasons)
        ctx.machine.record_transition(ModeCategory.THINKING, reason, quick.confidence)
        detailed = self.thinking.execute(ctx, decision)
        detailed.notes = [reason, *detailed.notes]
        detailed.retry_requested = detailed.retry_requested or quick.retry_requested
        return detailed

    def escalation_reasons(
        self,
        ctx: RunContext,
        decision: RoutingDecision,
        confidence: float,
    ) -> tuple[list[str], bool]:
        """Thresholds that fired after the quick pass.

        Returns:
            (reasons for escalating to thinking, whether the monitor asked
            for a new attempt)
        """
        params = decision.parameters
        if not params.get("auto_switch", self.config.auto_switch):
            return [], False

        complexity_threshold = float(params.get("complexity_threshold", self.config.complexity_threshold))
        confidence_threshold = float(params.get("confidence_threshold", self.config.confidence_threshold))
        cost_threshold = float(params.get("cost_threshold", self.config.cost_threshold))

        complexity = decision.features.complexity
        cost = ctx.machine.session.total_cost

        reasons = []
        if complexity >= complexity_threshold:
            reasons.append(f"complexity threshold: {complexity:.2f} >= {complexity_threshold:.2f}")
        if confidence < confidence_threshold:
            reasons.append(f"quality threshold: confidence {confidence:.2f} < {confidence_threshold:.2f}")
        if cost > cost_threshold:
            reasons.append(f"cost threshold: {cost:.4f} > {cost_threshold:.4f}")

        retry = False
        signal = self.monitor.evaluate(ModeCategory.NON_THINKING, ctx.switch_metrics(confidence))
        if signal is not None:
            if signal.action == SwitchAction.ESCALATE:
                reasons.append(signal.reason)
            elif signal.action == SwitchAction.ESCALATE_AND_RETRY:
                retry = True
        return reasons, retry
