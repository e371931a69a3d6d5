"""Ensemble orchestrator.

Fans one prompt out to a primary model and its secondaries on a bounded
thread pool, then gathers results until:
- every call has returned, or
- the aggregation window closes (pending secondaries are dropped), or
- the session is cancelled or runs out of time.

Worker threads only call the backend; all session accounting happens on
the coordinating thread.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from llm_backend import ModelResponse
from pipeline.errors import ExecutionTimeoutError, ProviderError, SessionCancelledError
from pipeline.prompts import assess_quality

if TYPE_CHECKING:
    from orchestrator.context import RunContext

logger = logging.getLogger(__name__)

# How often the coordinator wakes up to check cancellation and deadlines
POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class ModelResult:
    """Outcome of one ensemble member."""

    model: str
    success: bool
    content: str | None = None
    confidence: float = 0.0
    latency_ms: int = 0
    tokens: int = 0
    error: str | None = None
    primary: bool = False


@dataclass
class EnsembleOutcome:
    """Results gathered from one fan-out."""

    results: list[ModelResult] = field(default_factory=list)
    failed: list[ModelResult] = field(default_factory=list)
    timed_out: list[str] = field(default_factory=list)

    @property
    def primary(self) -> ModelResult | None:
        return next((r for r in self.results if r.primary), None)

    @property
    def partial(self) -> bool:
        return bool(self.failed or self.timed_out)

    @property
    def contributors(self) -> list[str]:
        return [r.model for r in self.results]


class EnsembleOrchestrator:
    """Runs a primary model and its secondaries concurrently.

    Failure semantics:
    - secondary failure or timeout: excluded, logged, ensemble continues
    - primary failure or primary timeout: ProviderError
    - cancellation: SessionCancelledError, pending calls dropped
    - session deadline: ExecutionTimeoutError carrying what already arrived

    Fan-out is bounded by dropping, not queueing: the primary and the first
    max_fan_out - 1 distinct secondaries are called, later secondaries are
    never invoked for that prompt.

    Example:
        ensemble = EnsembleOrchestrator(max_fan_out=3, call_timeout=30)
        outcome = ensemble.run(ctx, prompt, "claude-3.5-sonnet", ("gpt-4o",), params)
    """

    def __init__(
        self,
        max_fan_out: int = 3,
        call_timeout: float = 30.0,
        aggregation_window: float = 10.0,
        assess: Callable[[str], float] = assess_quality,
        poll_interval: float = POLL_INTERVAL,
    ):
        """Initialize orchestrator.

        Args:
            max_fan_out: Maximum ensemble size (primary included); extra
                secondaries are dropped
            call_timeout: Seconds the primary call may take
            aggregation_window: Seconds secondaries have to return
            assess: Confidence function applied to each response
            poll_interval: Coordinator wake-up interval in seconds
        """
        self.max_fan_out = max(1, max_fan_out)
        self.call_timeout = call_timeout
        self.aggregation_window = aggregation_window
        self.assess = assess
        self.poll_interval = poll_interval

    @classmethod
    def from_config(cls, config) -> "EnsembleOrchestrator":
        """Build from an EnsembleConfig section."""
        return cls(
            max_fan_out=config.max_fan_out,
            call_timeout=config.call_timeout_seconds,
            aggregation_window=config.aggregation_window_seconds,
        )

    def members(self, primary: str, secondaries: tuple[str, ...]) -> list[str]:
        """Primary first, duplicates removed, capped at max_fan_out."""
        models = list(dict.fromkeys([primary, *secondaries]))
        dropped = models[self.max_fan_out:]
        if dropped:
            logger.info("Ensemble capped at %d models, dropping %s", self.max_fan_out, ", ".join(dropped))
        return models[: self.max_fan_out]

    def run(
        self,
        ctx: RunContext,
        prompt: str,
        primary: str,
        secondaries: tuple[str, ...] = (),
        params: dict[str, Any] | None = None,
    ) -> EnsembleOutcome:
        """Fan a prompt out and gather results.

        Args:
            ctx: Run context of the session
            prompt: Prompt sent to every member
            primary: Primary model id
            secondaries: Secondary model ids
            params: Call parameters shared by all members

        Returns:
            EnsembleOutcome with successful, failed and timed-out members

        Raises:
            ProviderError: If the primary call fails or times out
            SessionCancelledError: If the session is cancelled
            ExecutionTimeoutError: If the session budget runs out
        """
        ctx.check()
        models = self.members(primary, secondaries)
        outcome = EnsembleOutcome()

        start = time.monotonic()
        primary_deadline = start + self.call_timeout
        secondary_deadline = start + min(self.aggregation_window, self.call_timeout)

        executor = ThreadPoolExecutor(max_workers=len(models), thread_name_prefix="ensemble")
        futures: dict[Future, str] = {
            executor.submit(ctx.backend.invoke, prompt, model, dict(params or {})): model
            for model in models
        }
        logger.debug("Ensemble started: %s", ", ".join(models))

        try:
            pending = set(futures)
            while pending:
                self._check(ctx, outcome, pending, futures)

                now = time.monotonic()
                primary_pending = any(futures[f] == primary for f in pending)
                if primary_pending and now >= primary_deadline:
                    raise ProviderError(
                        f"{primary}: no response within {self.call_timeout:g}s",
                        model_id=primary,
                    )
                if now >= secondary_deadline:
                    for f in [f for f in pending if futures[f] != primary]:
                        f.cancel()
                        pending.discard(f)
                        outcome.timed_out.append(futures[f])
                        logger.warning("Ensemble member %s timed out, excluding it", futures[f])
                    if not pending:
                        break

                done, pending = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    self._collect(ctx, future, futures[future], futures[future] == primary, outcome)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "Ensemble finished: %d succeeded, %d failed, %d timed out",
            len(outcome.results), len(outcome.failed), len(outcome.timed_out),
        )
        return outcome

    def _check(
        self,
        ctx: RunContext,
        outcome: EnsembleOutcome,
        pending: set[Future],
        futures: dict[Future, str],
    ) -> None:
        try:
            ctx.check()
        except SessionCancelledError:
            for f in pending:
                f.cancel()
            logger.info("Ensemble cancelled with %d calls pending", len(pending))
            raise
        except ExecutionTimeoutError as e:
            for f in pending:
                f.cancel()
                outcome.timed_out.append(futures[f])
            e.partial_results = list(outcome.results)
            raise

    def _collect(
        self,
        ctx: RunContext,
        future: Future,
        model: str,
        is_primary: bool,
        outcome: EnsembleOutcome,
    ) -> None:
        try:
            response: ModelResponse = future.result()
        except ProviderError as e:
            ctx.machine.record_call(0.0, 0, success=False)
            if is_primary:
                raise
            logger.warning("Ensemble member %s failed, excluding it: %s", model, e.message)
            outcome.failed.append(ModelResult(model=model, success=False, error=e.message))
            return

        ctx.record_response(response)
        outcome.results.append(ModelResult(
            model=model,
            success=True,
            content=response.content,
            confidence=self.assess(response.content),
            latency_ms=response.latency_ms,
            tokens=response.usage.total_tokens,
            primary=is_primary,
        ))
