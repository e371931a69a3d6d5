"""Result synthesizer.

Reconciles ensemble results into one answer:
- a single result passes through unchanged (consensus 1.0)
- several results go to a reconciliation call on the most capable model
- if that call fails, results are combined using learned per-model
  accuracy weights (equal weights without history)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from pipeline.errors import ProviderError
from pipeline.prompts import SYNTHESIS_SYSTEM_PROMPT, synthesis_prompt

from .orchestrator import ModelResult

if TYPE_CHECKING:
    from orchestrator.context import RunContext

logger = logging.getLogger(__name__)


def consensus_score(confidences: list[float]) -> float:
    """Agreement of confidences: 1 - 2 * stddev, clamped to [0, 1]."""
    if len(confidences) <= 1:
        return 1.0
    score = 1.0 - 2.0 * float(np.std(confidences))
    return max(0.0, min(1.0, score))


def equal_weights(models: list[str]) -> dict[str, float]:
    return {m: 1.0 for m in models}


@dataclass
class SynthesisResult:
    """Reconciled answer of an ensemble."""

    content: str
    confidence: float
    consensus: float
    contributors: list[str] = field(default_factory=list)
    method: str = "passthrough"  # passthrough | model | weighted
    model: str | None = None
    partial: bool = False


class ResultSynthesizer:
    """Turns a list of successful model results into one answer."""

    def __init__(
        self,
        synthesis_model: str | None = None,
        weights: Callable[[list[str]], dict[str, float]] = equal_weights,
    ):
        """Initialize synthesizer.

        Args:
            synthesis_model: Model for the reconciliation call
                (default: most capable model in the registry)
            weights: Per-model weights for the fallback combination
        """
        self.synthesis_model = synthesis_model or None
        self.weights = weights

    def synthesize(
        self,
        ctx: RunContext,
        results: list[ModelResult],
        partial: bool = False,
    ) -> SynthesisResult:
        """Reconcile successful results.

        Args:
            ctx: Run context (used for the reconciliation call)
            results: Successful results only; failed and timed-out members
                never reach the consensus computation
            partial: Whether some ensemble members were missing

        Raises:
            ValueError: If results is empty
        """
        if not results:
            raise ValueError("Nothing to synthesize")

        consensus = consensus_score([r.confidence for r in results])
        if len(results) == 1:
            only = results[0]
            return SynthesisResult(
                content=only.content or "",
                confidence=only.confidence,
                consensus=consensus,
                contributors=[only.model],
                model=only.model,
                partial=partial,
            )

        model = self._reconciliation_model(ctx, results)
        try:
            response = ctx.call_model(
                synthesis_prompt(ctx.task, [(r.model, r.content or "") for r in results]),
                model,
                {"system": SYNTHESIS_SYSTEM_PROMPT, "temperature": 0.3},
            )
        except ProviderError as e:
            logger.warning("Synthesis call to %s failed, combining by weight: %s", model, e.message)
            return self.combine(results, partial=partial)

        weighted = self._weighted_confidence(results)
        return SynthesisResult(
            content=response.content,
            confidence=weighted,
            consensus=consensus,
            contributors=[r.model for r in results],
            method="model",
            model=model,
            partial=partial,
        )

    def combine(self, results: list[ModelResult], partial: bool = False) -> SynthesisResult:
        """Combine results without a model call.

        The content of the result with the highest weighted confidence
        wins; the confidence is the weighted mean.
        """
        if not results:
            raise ValueError("Nothing to combine")
        weights = self.weights([r.model for r in results])
        best = max(results, key=lambda r: (weights.get(r.model, 1.0) * r.confidence, r.primary))
        return SynthesisResult(
            content=best.content or "",
            confidence=self._weighted_confidence(results, weights),
            consensus=consensus_score([r.confidence for r in results]),
            contributors=[r.model for r in results],
            method="weighted" if len(results) > 1 else "passthrough",
            model=best.model,
            partial=partial,
        )

    def _weighted_confidence(
        self,
        results: list[ModelResult],
        weights: dict[str, float] | None = None,
    ) -> float:
        weights = weights or self.weights([r.model for r in results])
        w = np.array([weights.get(r.model, 1.0) for r in results], dtype=float)
        c = np.array([r.confidence for r in results], dtype=float)
        if w.sum() <= 0:
            return float(c.mean())
        return float(np.average(c, weights=w))

    def _reconciliation_model(self, ctx: RunContext, results: list[ModelResult]) -> str:
        if self.synthesis_model:
            return self.synthesis_model
        best = ctx.registry.most_capable()
        if best is not None:
            return best.id
        return next((r.model for r in results if r.primary), results[0].model)
