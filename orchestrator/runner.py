"""Mode executor: runs a routed task through its reasoning mode."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ensemble import EnsembleOrchestrator, ResultSynthesizer
from ensemble.synthesizer import equal_weights
from learning import PerformanceLearner
from llm_backend import LLMBackend
from pipeline.config import Config
from pipeline.errors import ExecutionTimeoutError, ReasoningError
from routing import ModelRouter
from schemas.performance import PerformanceRecord
from schemas.routing import ModeCategory, RoutingDecision
from schemas.session import ExecutionResult, SessionStatus
from schemas.task import ExecutionContext, Task
from tools.base import ToolBackend
from tools.catalog import ToolCatalog

from .cache import ResultCache
from .context import CancellationToken, RunContext
from .hybrid import HybridExecutor
from .non_thinking import NonThinkingExecutor
from .outcome import ModeOutcome
from .state_machine import SessionStateMachine
from .switch_monitor import SwitchMonitor
from .thinking import ThinkingExecutor

logger = logging.getLogger(__name__)

# Type alias for mode handlers
ModeHandler = Callable[[RunContext, RoutingDecision], ModeOutcome]


class ModeExecutor:
    """Executes one task per session.

    Uses the session state machine to manage:
    - Routing and decision activation
    - Dispatch to the handler of the decided mode
    - Escalate-and-retry attempts (bounded by max_attempts)
    - Failure with the trace preserved
    - Performance records for the learner
    """

    def __init__(
        self,
        config: Config,
        router: ModelRouter,
        backend: LLMBackend,
        learner: PerformanceLearner | None = None,
        tools: ToolBackend | None = None,
        catalog: ToolCatalog | None = None,
        monitor: SwitchMonitor | None = None,
        cache: ResultCache | None = None,
        ensemble: EnsembleOrchestrator | None = None,
    ) -> None:
        """Initialize mode executor.

        Args:
            config: Application configuration
            router: Router producing decisions (and retry decisions)
            backend: Model backend
            learner: Learner receiving one record per session
            tools: Optional tool backend
            catalog: Tool catalog for relevance-based selection
            monitor: Mode-switch monitor (default triggers if omitted)
            cache: Non-thinking result cache (built from config if omitted)
            ensemble: Ensemble orchestrator (built from config if omitted)
        """
        self.config = config
        self.router = router
        self.backend = backend
        self.learner = learner
        self.tools = tools
        self.monitor = monitor or SwitchMonitor()

        self.ensemble = ensemble or EnsembleOrchestrator.from_config(config.ensemble)
        self.synthesizer = ResultSynthesizer(
            config.ensemble.synthesis_model,
            weights=learner.accuracy_weights if learner is not None else equal_weights,
        )
        self.non_thinking = NonThinkingExecutor(config.non_thinking, cache)
        self.thinking = ThinkingExecutor(
            config.thinking,
            self.ensemble,
            self.synthesizer,
            catalog=catalog,
            monitor=self.monitor,
        )
        self.hybrid = HybridExecutor(config.hybrid, self.non_thinking, self.thinking, self.monitor)

        # Mode handlers registry
        self._handlers: dict[ModeCategory, ModeHandler] = {
            ModeCategory.NON_THINKING: self.non_thinking.execute,
            ModeCategory.THINKING: self.thinking.execute,
            ModeCategory.HYBRID: self.hybrid.execute,
        }

    def run(
        self,
        task: Task,
        machine: SessionStateMachine,
        context: ExecutionContext | None = None,
        token: CancellationToken | None = None,
        budget_seconds: float | None = None,
        mode: ModeCategory | None = None,
    ) -> ExecutionResult:
        """Execute a task.

        Args:
            task: Validated task
            machine: State machine of a pending session
            context: Optional execution context
            token: Cancellation token shared with the caller
            budget_seconds: Session wall-clock budget (default from config)
            mode: Force a mode instead of the routed one

        Returns:
            ExecutionResult; failures are reported in the result, not raised
        """
        budget = budget_seconds if budget_seconds is not None else self.config.execution.session_budget_seconds
        deadline = time.monotonic() + budget if budget else None

        machine.start()
        decision = self.router.decide(task, context)
        if mode is not None and mode != decision.mode:
            logger.info("Task %s: mode forced to %s (routed %s)", task.id, mode.value, decision.mode.value)
            decision = decision.model_copy(update={"mode": mode})
        machine.activate_decision(decision)

        ctx = RunContext(
            task=task,
            machine=machine,
            backend=self.backend,
            registry=self.router.snapshots.current().registry,
            token=token or CancellationToken(),
            deadline=deadline,
            tools=self.tools,
            context=context,
        )

        max_attempts = self.config.execution.max_attempts
        while True:
            handler = self._handlers[decision.mode]
            ctx.can_retry = decision.attempt < max_attempts
            logger.info("Session %s: attempt %d in %s mode with %s",
                        machine.session.id, decision.attempt, decision.mode.value, decision.model)
            try:
                outcome = handler(ctx, decision)
            except ReasoningError as e:
                result = self._fail(ctx, decision, e)
                break
            except Exception as e:
                logger.exception("Session %s: unexpected error in %s mode", machine.session.id, decision.mode.value)
                error = ReasoningError(f"Unexpected {type(e).__name__}: {e}")
                error.__cause__ = e
                result = self._fail(ctx, decision, error)
                break

            if outcome.retry_requested and ctx.can_retry:
                retry = self.router.decide(
                    task,
                    context,
                    attempt=decision.attempt + 1,
                    previous=decision,
                    mode=machine.session.next_attempt_mode,
                )
                machine.begin_attempt(retry, "; ".join(outcome.notes) or "escalate and retry")
                decision = retry
                continue

            result = self._finish(ctx, decision, outcome)
            break

        self._record(ctx, decision, result)
        self.persist(machine)
        return result

    def _finish(self, ctx: RunContext, decision: RoutingDecision, outcome: ModeOutcome) -> ExecutionResult:
        machine = ctx.machine
        if outcome.needs_review:
            machine.pause("; ".join(outcome.notes) or "flagged for review", result=outcome.content)
        else:
            machine.complete(outcome.content)

        logger.info(
            "Session %s %s: %s/%s confidence=%.2f cost=$%.4f",
            machine.session.id,
            machine.session.status.value,
            outcome.mode.value,
            outcome.model,
            outcome.confidence,
            machine.session.total_cost,
        )
        return self._result(ctx, decision, outcome=outcome)

    def _fail(self, ctx: RunContext, decision: RoutingDecision, error: ReasoningError) -> ExecutionResult:
        machine = ctx.machine
        steps = machine.steps()
        error.attach(machine.session.id, steps)
        machine.fail(error, step_id=steps[-1].id if steps else None)
        logger.error("Session %s failed (%s): %s", machine.session.id, error.kind, error.message)

        outcome = None
        if isinstance(error, ExecutionTimeoutError) and error.partial_results:
            synthesis = self.synthesizer.combine(error.partial_results, partial=True)
            outcome = ModeOutcome(
                content=synthesis.content,
                confidence=synthesis.confidence,
                mode=machine.session.current_mode or decision.mode,
                model=synthesis.model or decision.model,
                contributors=synthesis.contributors,
                consensus=synthesis.consensus,
                partial=True,
            )
            logger.warning("Session %s: partial result from %d model(s)",
                           machine.session.id, len(error.partial_results))
        return self._result(ctx, decision, outcome=outcome)

    def _result(
        self,
        ctx: RunContext,
        decision: RoutingDecision,
        outcome: ModeOutcome | None = None,
    ) -> ExecutionResult:
        session = ctx.machine.session
        return ExecutionResult(
            session_id=session.id,
            task_id=session.task_id,
            status=session.status,
            content=outcome.content if outcome else None,
            confidence=outcome.confidence if outcome else 0.0,
            consensus=outcome.consensus if outcome else 1.0,
            low_confidence=outcome.low_confidence if outcome else False,
            partial=outcome.partial if outcome else False,
            needs_review=session.status == SessionStatus.PAUSED,
            from_cache=outcome.from_cache if outcome else False,
            mode=outcome.mode if outcome else session.current_mode,
            model=outcome.model if outcome else decision.model,
            contributors=list(outcome.contributors) if outcome else [],
            transitions=list(session.transitions),
            cost=session.total_cost,
            tokens=session.total_tokens,
            elapsed_ms=session.elapsed_ms,
            attempts=session.attempt,
            decision=decision,
            error=session.error,
        )

    def _record(self, ctx: RunContext, decision: RoutingDecision, result: ExecutionResult) -> None:
        """Feed the outcome to the learner, attributed to the matched rule and its (mode, model)."""
        if self.learner is None or result.from_cache:
            return
        succeeded = result.status != SessionStatus.FAILED
        self.learner.record(PerformanceRecord(
            mode=decision.mode,
            model=decision.model,
            rule_id=decision.rule_id,
            processing_time_ms=result.elapsed_ms,
            cost=result.cost,
            accuracy=result.confidence if succeeded else 0.0,
            token_usage=result.tokens,
            success=succeeded,
            task_id=result.task_id,
            session_id=result.session_id,
        ))

    def persist(self, machine: SessionStateMachine) -> None:
        sessions_dir = self.config.execution.sessions_dir
        if sessions_dir:
            path = machine.save_state(Path(sessions_dir))
            logger.debug("Session saved to %s", path)
