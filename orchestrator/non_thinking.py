"""Non-thinking mode: one bounded model call, with a result cache."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pipeline.config import NonThinkingConfig
from pipeline.prompts import DIRECT_SYSTEM_PROMPT, assess_quality, task_prompt
from schemas.routing import ModeCategory, RoutingDecision
from schemas.session import StepType

from .cache import ResultCache
from .context import RunContext
from .outcome import ModeOutcome

logger = logging.getLogger(__name__)


class NonThinkingExecutor:
    """Answers a task with a single direct call.

    Results are cached by task content. A result is only cached when the
    call finished within the target latency, so slow answers are always
    recomputed.
    """

    def __init__(
        self,
        config: NonThinkingConfig,
        cache: ResultCache | None = None,
        assess: Callable[[str], float] = assess_quality,
    ):
        self.config = config
        if cache is None and config.cache_enabled:
            cache = ResultCache(max_size=config.cache_size, ttl_seconds=config.cache_ttl_seconds)
        self.cache = cache
        self.assess = assess

    def execute(self, ctx: RunContext, decision: RoutingDecision) -> ModeOutcome:
        key = ctx.task.content_hash()
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                logger.info("Cache hit for task %s (model %s)", ctx.task.id, hit.model)
                ctx.machine.append_step(
                    StepType.SYNTHESIS,
                    hit.content,
                    hit.confidence,
                    output={"model": hit.model, "cached": True},
                )
                return ModeOutcome(
                    content=hit.content,
                    confidence=hit.confidence,
                    mode=ModeCategory.NON_THINKING,
                    model=hit.model,
                    contributors=[hit.model],
                    from_cache=True,
                )

        params = decision.parameters
        response = ctx.call_model(
            task_prompt(ctx.task),
            decision.model,
            {
                "system": DIRECT_SYSTEM_PROMPT,
                "max_tokens": params.get("max_tokens", self.config.max_tokens),
                "temperature": params.get("temperature", self.config.temperature),
            },
        )
        confidence = self.assess(response.content)

        ctx.machine.append_step(
            StepType.SYNTHESIS,
            response.content,
            confidence,
            output={"model": response.model_id, "latency_ms": response.latency_ms},
        )

        if self.cache is not None:
            if response.latency_ms <= self.config.target_latency_ms:
                self.cache.put(key, response.content, confidence, response.model_id, response.latency_ms)
            else:
                logger.debug("Not caching %s: %dms over the %dms target",
                             ctx.task.id, response.latency_ms, self.config.target_latency_ms)

        return ModeOutcome(
            content=response.content,
            confidence=confidence,
            mode=ModeCategory.NON_THINKING,
            model=response.model_id,
            contributors=[response.model_id],
        )
