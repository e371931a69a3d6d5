"""Thinking mode: multi-step reasoning with tools, reflection and refinement.

Step sequence for one attempt:

    analysis -> planning -> tool selection -> [tool execution]
        -> reasoning -> validation
        -> (refinement: planning -> reasoning -> validation) * up to max_depth
        -> synthesis

Each step is appended to the session trace as it happens. The
mode-switch monitor is consulted after every step.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ensemble import EnsembleOrchestrator, ResultSynthesizer
from pipeline.config import ThinkingConfig
from pipeline.errors import LowConfidenceError, ProviderError
from pipeline.prompts import (
    REASONING_SYSTEM_PROMPT,
    REFLECTION_SYSTEM_PROMPT,
    assess_quality,
    parse_json_object,
    reasoning_prompt,
    reflection_prompt,
)
from schemas.routing import ModeCategory, RoutingDecision
from schemas.session import ReasoningStep, StepType
from tools.catalog import ToolCatalog

from .context import RunContext
from .outcome import ModeOutcome
from .switch_monitor import SwitchAction, SwitchMonitor
from .validation import validate_output

logger = logging.getLogger(__name__)

# Confidence of the locally produced steps
ANALYSIS_CONFIDENCE = 0.9
PLANNING_CONFIDENCE = 0.85
REFINEMENT_CONFIDENCE = 0.8
TOOL_STEP_CONFIDENCE = 0.8

# Confidence used when self-reflection fails or returns nothing usable
REFLECTION_FALLBACK = 0.7

# Cap applied when the output does not match the expected schema
SCHEMA_MISMATCH_CAP = 0.5

BASE_PLAN = [
    "analyze-input",
    "select-approach",
    "execute-tools",
    "validate-results",
    "synthesize-output",
]

# Monitor actions that end the attempt before it spends on another model call
HALTING_ACTIONS = frozenset({SwitchAction.FLAG_REVIEW, SwitchAction.ESCALATE_AND_RETRY})


@dataclass
class _Pass:
    content: str
    confidence: float
    model: str
    contributors: list[str] = field(default_factory=list)
    consensus: float = 1.0
    partial: bool = False
    improvements: list[str] = field(default_factory=list)
    step_id: str = ""


class ThinkingExecutor:
    """Executes the thinking pipeline for one attempt."""

    def __init__(
        self,
        config: ThinkingConfig,
        ensemble: EnsembleOrchestrator,
        synthesizer: ResultSynthesizer,
        catalog: ToolCatalog | None = None,
        monitor: SwitchMonitor | None = None,
        assess: Callable[[str], float] = assess_quality,
    ):
        self.config = config
        self.ensemble = ensemble
        self.synthesizer = synthesizer
        self.catalog = catalog or ToolCatalog()
        self.monitor = monitor or SwitchMonitor()
        self.assess = assess

    def execute(self, ctx: RunContext, decision: RoutingDecision) -> ModeOutcome:
        """Run the thinking pipeline.

        Low confidence never fails the attempt: after max_depth refinement
        retries the best pass is returned flagged low_confidence.

        The monitor is consulted after every step. A review flag or a retry
        request seen before the first reasoning pass ends the attempt
        without a model call; after a pass it ends refinement. A
        de-escalation only ends refinement.

        Raises:
            ProviderError: If the primary model call fails
            ToolError: If a required tool fails
        """
        task = ctx.task
        machine = ctx.machine
        params = decision.parameters
        max_depth = int(params.get("max_depth", self.config.max_depth))
        threshold = float(params.get("confidence_threshold", self.config.confidence_threshold))
        reflect = bool(params.get("self_reflection", self.config.self_reflection))

        outcome = ModeOutcome(content=None, confidence=0.0, mode=ModeCategory.THINKING, model=decision.model)
        fired: set[SwitchAction] = set()

        analysis = machine.append_step(
            StepType.ANALYSIS,
            f"{task.type.value} task in domain '{decision.features.domain}' "
            f"(complexity {decision.features.complexity:.2f}, quality {decision.features.quality_required:.2f})",
            ANALYSIS_CONFIDENCE,
            output=decision.features.model_dump(),
        )
        if self._checkpoint(ctx, outcome, fired) in HALTING_ACTIONS:
            return outcome

        plan = self._plan(params)
        planning = machine.append_step(
            StepType.PLANNING,
            " -> ".join(plan),
            PLANNING_CONFIDENCE,
            dependencies=(analysis.id,),
            output=plan,
        )
        if self._checkpoint(ctx, outcome, fired) in HALTING_ACTIONS:
            return outcome

        tool_results, last_step = self._run_tools(ctx, params, planning)
        if last_step is not planning and self._checkpoint(ctx, outcome, fired) in HALTING_ACTIONS:
            logger.info("Session %s: stopping after tool selection", ctx.session_id)
            return outcome

        best: _Pass | None = None
        improvements: list[str] = []

        for depth in range(max_depth + 1):
            if depth > 0:
                last_step = machine.append_step(
                    StepType.PLANNING,
                    f"Refinement {depth}/{max_depth}: " + ("; ".join(improvements) or "improve the answer"),
                    REFINEMENT_CONFIDENCE,
                    dependencies=(last_step.id,),
                    output=list(improvements),
                )

            current, last_step = self._reason(ctx, decision, plan, tool_results, improvements, last_step)
            action = self._checkpoint(ctx, outcome, fired)
            if action not in HALTING_ACTIONS:
                last_step = self._validate(ctx, decision, current, reflect)
                action = self._checkpoint(ctx, outcome, fired, current.confidence) or action
            improvements = current.improvements

            if best is None or current.confidence > best.confidence:
                best = current

            if action is not None or SwitchAction.DE_ESCALATE_NEXT in fired:
                break

            try:
                self._check_confidence(ctx, current, threshold)
            except LowConfidenceError as e:
                if depth >= max_depth:
                    logger.warning("Task %s: %s after %d refinement(s), keeping best result",
                                   task.id, e.message, max_depth)
                    outcome.low_confidence = True
                    break
                logger.info("Task %s: %s, refining (%d/%d)", task.id, e.message, depth + 1, max_depth)
                continue
            break

        machine.append_step(
            StepType.SYNTHESIS,
            best.content,
            best.confidence,
            dependencies=(best.step_id, last_step.id) if best.step_id != last_step.id else (last_step.id,),
            output={"model": best.model, "contributors": best.contributors, "consensus": best.consensus},
        )

        outcome.content = best.content
        outcome.confidence = best.confidence
        outcome.model = best.model
        outcome.contributors = best.contributors
        outcome.consensus = best.consensus
        outcome.partial = best.partial
        if best.confidence < threshold:
            outcome.low_confidence = True
        return outcome

    def _plan(self, params: dict[str, Any]) -> list[str]:
        plan = list(BASE_PLAN)
        if params.get("step_by_step", self.config.step_by_step):
            plan.insert(2, "step-by-step-reasoning")
        return plan

    def _run_tools(
        self,
        ctx: RunContext,
        params: dict[str, Any],
        planning: ReasoningStep,
    ) -> tuple[dict[str, Any], ReasoningStep]:
        """Select and execute tools; returns tool outputs and the last step."""
        orchestrate = params.get("tool_orchestration", self.config.tool_orchestration)
        max_tools = int(params.get("max_tools", self.config.max_tools))

        selections = self.catalog.select(ctx.task, max_tools=max_tools)
        if not orchestrate:
            selections = [s for s in selections if s.explicit]
        if not selections:
            return {}, planning

        results: dict[str, Any] = {}
        failed: list[str] = []
        for selection in selections:
            result = ctx.run_tool(selection.spec.id, dict(ctx.task.input), required=selection.required)
            if result.success:
                results[selection.spec.id] = result.output
            else:
                failed.append(selection.spec.id)

        selected = [s.spec.id for s in selections]
        step = ctx.machine.append_step(
            StepType.TOOL_SELECTION,
            f"Selected {', '.join(selected)}" + (f"; excluded {', '.join(failed)}" if failed else ""),
            TOOL_STEP_CONFIDENCE,
            dependencies=(planning.id,),
            output={
                "selected": selected,
                "succeeded": list(results),
                "failed": failed,
                "relevance": {s.spec.id: s.relevance for s in selections},
            },
        )
        return results, step

    def _reason(
        self,
        ctx: RunContext,
        decision: RoutingDecision,
        plan: list[str],
        tool_results: dict[str, Any],
        improvements: list[str],
        previous: ReasoningStep,
    ) -> tuple[_Pass, ReasoningStep]:
        params = decision.parameters
        prompt = reasoning_prompt(ctx.task, plan, tool_results, improvements)
        call_params = {
            "system": REASONING_SYSTEM_PROMPT,
            "max_tokens": params.get("max_tokens", self.config.max_tokens),
            "temperature": params.get("temperature", self.config.temperature),
        }

        if decision.secondary_models:
            ensemble = self.ensemble.run(ctx, prompt, decision.model, decision.secondary_models, call_params)
            synthesis = self.synthesizer.synthesize(ctx, ensemble.results, partial=ensemble.partial)
            current = _Pass(
                content=synthesis.content,
                confidence=synthesis.confidence,
                model=decision.model,
                contributors=synthesis.contributors,
                consensus=synthesis.consensus,
                partial=synthesis.partial,
            )
            output = {
                "model": decision.model,
                "contributors": synthesis.contributors,
                "failed": [r.model for r in ensemble.failed],
                "timed_out": ensemble.timed_out,
                "consensus": synthesis.consensus,
                "method": synthesis.method,
            }
        else:
            response = ctx.call_model(prompt, decision.model, call_params)
            current = _Pass(
                content=response.content,
                confidence=self.assess(response.content),
                model=response.model_id,
                contributors=[response.model_id],
            )
            output = {"model": response.model_id, "latency_ms": response.latency_ms}

        step = ctx.machine.append_step(
            StepType.ANALYSIS,
            current.content,
            current.confidence,
            dependencies=(previous.id,),
            output=output,
        )
        current.step_id = step.id
        return current, step

    def _validate(
        self,
        ctx: RunContext,
        decision: RoutingDecision,
        current: _Pass,
        reflect: bool,
    ) -> ReasoningStep:
        """Validate a pass against the output schema and by self-reflection.

        Updates current.confidence and current.improvements in place.
        """
        problems = validate_output(current.content, ctx.task.expected_output)

        if reflect:
            confidence, improvements = self._reflect(ctx, decision, current.content)
        else:
            confidence, improvements = current.confidence, []

        if problems:
            confidence = min(confidence, SCHEMA_MISMATCH_CAP)
            improvements = problems + improvements

        current.confidence = confidence
        current.improvements = improvements
        return ctx.machine.append_step(
            StepType.VALIDATION,
            "Output conforms" if not problems else "; ".join(problems),
            confidence,
            dependencies=(current.step_id,),
            output={"schema_valid": not problems, "problems": problems, "improvements": improvements},
        )

    def _reflect(self, ctx: RunContext, decision: RoutingDecision, answer: str) -> tuple[float, list[str]]:
        model = self.config.reflection_model or decision.model
        try:
            response = ctx.call_model(
                reflection_prompt(ctx.task, answer),
                model,
                {"system": REFLECTION_SYSTEM_PROMPT, "temperature": 0.2, "json_mode": True},
            )
        except ProviderError as e:
            logger.warning("Self-reflection on %s failed, assuming %.2f: %s", model, REFLECTION_FALLBACK, e.message)
            return REFLECTION_FALLBACK, []

        data = parse_json_object(response.content) or {}
        value = data.get("confidence")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning("Self-reflection returned no confidence, assuming %.2f", REFLECTION_FALLBACK)
            confidence = REFLECTION_FALLBACK
        else:
            confidence = max(0.0, min(1.0, float(value)))
        improvements = [str(i) for i in data.get("improvements", []) if i]
        return confidence, improvements

    def _check_confidence(self, ctx: RunContext, current: _Pass, threshold: float) -> None:
        if current.confidence < threshold:
            raise LowConfidenceError(
                f"confidence {current.confidence:.2f} < {threshold:.2f}",
                confidence=current.confidence,
                improvements=current.improvements,
                session_id=ctx.session_id,
            )

    def _checkpoint(
        self,
        ctx: RunContext,
        outcome: ModeOutcome,
        fired: set[SwitchAction],
        confidence: float | None = None,
    ) -> SwitchAction | None:
        """Consult the monitor after a step and apply its verdict once.

        Returns:
            The action the pipeline must honor, or None to carry on
        """
        signal = self.monitor.evaluate(ModeCategory.THINKING, ctx.switch_metrics(confidence))
        if signal is None or signal.action == SwitchAction.ESCALATE:
            return None
        action = signal.action
        if action == SwitchAction.ESCALATE_AND_RETRY and not ctx.can_retry:
            logger.debug("Session %s: %s, no attempts left", ctx.session_id, signal.reason)
            return None
        if action in fired:
            return action

        fired.add(action)
        outcome.notes.append(signal.reason)
        if action == SwitchAction.DE_ESCALATE_NEXT:
            ctx.machine.set_next_attempt_mode(ModeCategory.NON_THINKING)
            logger.info("Session %s: %s, next attempt will prefer non-thinking", ctx.session_id, signal.reason)
        elif action == SwitchAction.FLAG_REVIEW:
            outcome.needs_review = True
            logger.warning("Session %s: %s, flagged for review", ctx.session_id, signal.reason)
        else:
            outcome.retry_requested = True
            logger.warning("Session %s: %s, requesting a new attempt", ctx.session_id, signal.reason)
        return action
