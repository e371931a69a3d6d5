"""Strategy adjustment and decision scoring.

A strategy rewrites the action chosen by the rule engine (for example
swapping a premium thinking model for a cheap non-thinking one). Every
policy returns a new action and is idempotent: applying it twice gives
the same result as applying it once.

The scoring functions estimate what a decision will cost and how
confident the router is in it. Their constants are defaults; only their
ordering matters (thinking costs more and takes longer than hybrid,
which costs more than non-thinking).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from schemas.routing import (
    EstimatedMetrics,
    FeatureVector,
    ModeCategory,
    ModelProfile,
    ModelTier,
    RoutingAction,
    RoutingStrategy,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyPolicy:
    """Parameters of the strategy adjustment.

    Attributes:
        strategy: Which policy to apply
        cheap_model: Target model of the cost-optimized policy
        premium_model: Target model of the quality-optimized policy
        overrides: Custom policy table, mode -> (mode, model)
    """

    strategy: RoutingStrategy = RoutingStrategy.BALANCED
    cheap_model: str = "gpt-4o-mini"
    premium_model: str = "glm-45-flagship"
    overrides: dict[ModeCategory, tuple[ModeCategory, str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Every override target must map to itself, or repeated
        # application would keep rewriting the action.
        for source, (target_mode, target_model) in self.overrides.items():
            chained = self.overrides.get(target_mode)
            if chained is not None and chained != (target_mode, target_model):
                raise ValueError(
                    f"Custom override {source.value} -> {target_mode.value}/{target_model} "
                    f"is not a fixed point (target maps to {chained[0].value}/{chained[1]})"
                )

    @classmethod
    def from_config(cls, config) -> "StrategyPolicy":
        """Build from a RoutingConfig section."""
        overrides = {
            ModeCategory(mode): (ModeCategory(target[0]), target[1])
            for mode, target in config.custom_overrides.items()
        }
        return cls(
            strategy=RoutingStrategy(config.strategy),
            cheap_model=config.cost_optimized_model,
            premium_model=config.quality_optimized_model,
            overrides=overrides,
        )


def apply_strategy(
    action: RoutingAction,
    policy: StrategyPolicy,
    lookup: Callable[[str], ModelProfile | None] | None = None,
) -> RoutingAction:
    """Adjust a matched action according to the strategy.

    Args:
        action: Action selected by the rule engine
        policy: Strategy and its targets
        lookup: Model id -> profile, used to read the model's cost tier

    Returns:
        A new RoutingAction (equal to the input when nothing changes)
    """
    strategy = policy.strategy

    if strategy == RoutingStrategy.COST_OPTIMIZED:
        if action.mode == ModeCategory.THINKING and not _is_cheap(action.model, lookup):
            logger.debug("Cost-optimized: %s/%s -> non-thinking/%s",
                         action.mode.value, action.model, policy.cheap_model)
            return action.model_copy(update={
                "mode": ModeCategory.NON_THINKING,
                "model": policy.cheap_model,
                "secondary_models": (),
            })

    elif strategy == RoutingStrategy.QUALITY_OPTIMIZED:
        if action.mode == ModeCategory.NON_THINKING:
            logger.debug("Quality-optimized: %s/%s -> thinking/%s",
                         action.mode.value, action.model, policy.premium_model)
            return action.model_copy(update={
                "mode": ModeCategory.THINKING,
                "model": policy.premium_model,
            })

    elif strategy == RoutingStrategy.CUSTOM:
        target = policy.overrides.get(action.mode)
        if target is not None and target != (action.mode, action.model):
            return action.model_copy(update={"mode": target[0], "model": target[1]})

    return action.model_copy()


def _is_cheap(model_id: str, lookup: Callable[[str], ModelProfile | None] | None) -> bool:
    if lookup is None:
        return False
    profile = lookup(model_id)
    return profile is not None and profile.tier == ModelTier.CHEAP


# Estimation multipliers per mode: (time, cost, accuracy, tokens)
MODE_MULTIPLIERS: dict[ModeCategory, tuple[float, float, float, float]] = {
    ModeCategory.NON_THINKING: (1.0, 1.0, 1.0, 1.0),
    ModeCategory.HYBRID: (1.5, 1.3, 1.05, 1.5),
    ModeCategory.THINKING: (2.5, 2.0, 1.1, 2.0),
}

BASE_TOKENS = 1000
UNKNOWN_MODEL_ESTIMATE = EstimatedMetrics(
    processing_time_ms=5000, cost=0.05, accuracy=0.7, token_usage=BASE_TOKENS
)


def estimate_metrics(
    action: RoutingAction,
    features: FeatureVector,
    profile: ModelProfile | None,
) -> EstimatedMetrics:
    """Estimate time, cost, accuracy and tokens for an action."""
    if profile is None:
        return UNKNOWN_MODEL_ESTIMATE

    caps = profile.capabilities
    time_ms = 10000 / max(caps.speed, 0.05)
    cost = caps.cost * 0.1
    accuracy = caps.accuracy
    tokens = float(BASE_TOKENS)

    t_mul, c_mul, a_mul, k_mul = MODE_MULTIPLIERS[action.mode]
    time_ms *= t_mul
    cost *= c_mul
    accuracy *= a_mul
    tokens *= k_mul

    c = features.complexity
    time_ms *= 1 + c * 0.5
    cost *= 1 + c * 0.3
    tokens *= 1 + c * 0.4

    if features.quality_required > 0.8:
        time_ms *= 1.2
        cost *= 1.2
        accuracy *= 1.05

    return EstimatedMetrics(
        processing_time_ms=int(round(time_ms)),
        cost=round(cost, 6),
        accuracy=min(1.0, accuracy),
        token_usage=int(round(tokens)),
    )


def _suitability(features: FeatureVector, profile: ModelProfile) -> float:
    caps = profile.capabilities
    tags = set(profile.best_for)
    score = 0.5
    if features.complexity > 0.7 and "complex-reasoning" in tags:
        score += 0.3
    if features.urgency > 0.7 and "fast-tasks" in tags:
        score += 0.3
    if features.cost_sensitivity > 0.7 and "cost-sensitive" in tags:
        score += 0.2
    if features.quality_required > 0.8 and caps.accuracy > 0.8:
        score += 0.2
    if features.urgency > 0.7 and caps.speed > 0.7:
        score += 0.2
    return min(1.0, score)


def _strategy_aligned(strategy: RoutingStrategy, mode: ModeCategory) -> bool:
    return (
        (strategy == RoutingStrategy.COST_OPTIMIZED and mode == ModeCategory.NON_THINKING)
        or (strategy == RoutingStrategy.QUALITY_OPTIMIZED and mode == ModeCategory.THINKING)
        or (strategy == RoutingStrategy.BALANCED and mode == ModeCategory.HYBRID)
    )


def score_confidence(
    action: RoutingAction,
    features: FeatureVector,
    profile: ModelProfile | None,
    strategy: RoutingStrategy,
    baseline: float = 0.8,
) -> float:
    """Decision confidence, always in [baseline, 1].

    Starts at the baseline, adds a share of the model's suitability for
    the features and a bonus when the strategy agrees with the mode.
    """
    confidence = baseline
    if profile is not None:
        confidence += _suitability(features, profile) * 0.2
    if _strategy_aligned(strategy, action.mode):
        confidence += 0.1
    return max(baseline, min(1.0, confidence))
