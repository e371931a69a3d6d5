"""Model router for task-based reasoning mode and model selection.

Routes tasks to a (mode, model, parameters) decision based on:
1. Task characterization (complexity, urgency, cost, quality, domain)
2. Rule evaluation against the current routing snapshot
3. Strategy adjustment (cost-optimized, quality-optimized, custom)
4. Retry escalation (thinking mode, upgraded model tier)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from schemas.routing import (
    TIER_ORDER,
    FeatureVector,
    ModeCategory,
    ModelTier,
    RoutingAction,
    RoutingDecision,
    RoutingStrategy,
    RuleSet,
)
from schemas.task import ExecutionContext, Task

from .characterizer import characterize_task
from .registry import ModelRegistry
from .rules import RuleEngine, RuleMatch
from .strategy import StrategyPolicy, apply_strategy, estimate_metrics, score_confidence

if TYPE_CHECKING:
    from learning.snapshots import SnapshotStore
    from pipeline.config import RoutingConfig

logger = logging.getLogger(__name__)


class ModelRouter:
    """Routes tasks to reasoning modes and models.

    Every decision reads exactly one routing snapshot, so a concurrent
    snapshot publication never mixes old rules with new model statistics.

    Example:
        router = ModelRouter(config.routing, snapshots)
        decision = router.decide(task)
        retry = router.decide(task, attempt=2, previous=decision)
    """

    def __init__(
        self,
        config: RoutingConfig,
        snapshots: SnapshotStore,
        engine: RuleEngine | None = None,
        policy: StrategyPolicy | None = None,
    ):
        """Initialize router.

        Args:
            config: Routing configuration (strategy, baseline, budget reference)
            snapshots: Source of versioned rule set + registry snapshots
            engine: Rule engine (default: RuleEngine())
            policy: Strategy policy (default: built from config)
        """
        self.config = config
        self.snapshots = snapshots
        self.engine = engine or RuleEngine()
        self.policy = policy or StrategyPolicy.from_config(config)

    def decide(
        self,
        task: Task,
        context: ExecutionContext | None = None,
        attempt: int = 1,
        previous: RoutingDecision | None = None,
        mode: ModeCategory | None = None,
    ) -> RoutingDecision:
        """Produce a routing decision for a task.

        Routing logic:
        1. Characterize the task
        2. Evaluate rules against one snapshot (fallback if nothing matches)
        3. Apply the strategy policy
        4. On retry, force thinking mode and upgrade the model tier, unless
           a lighter mode was requested for the retry

        Args:
            task: Task to route
            context: Optional execution context
            attempt: Attempt number (1 = first attempt)
            previous: Decision of the previous attempt, if any
            mode: Mode requested for a retry (None = thinking, one tier up)

        Returns:
            Frozen RoutingDecision
        """
        snapshot = self.snapshots.current()
        registry = snapshot.registry

        features = characterize_task(task, context, budget_reference=self.config.budget_reference)
        match = self._match(features, snapshot.rule_set)
        action = apply_strategy(match.rule.action, self.policy, registry.get)

        if attempt > 1 and mode is not None and mode != ModeCategory.THINKING:
            # De-escalated retry keeps the previous model
            base_model = previous.model if previous is not None else action.model
            action = action.model_copy(update={"mode": mode, "model": base_model})
            logger.info("Retry %d: de-escalating to %s with %s", attempt - 1, mode.value, base_model)
        elif attempt > 1:
            # One tier up from the previous attempt, or from the routed model
            if previous is not None:
                action = self._escalate_for_retry(previous.model, action, registry, 1)
            else:
                action = self._escalate_for_retry(action.model, action, registry, attempt - 1)

        profile = registry.get(action.model)
        decision = RoutingDecision(
            task_id=task.id,
            attempt=attempt,
            mode=action.mode,
            model=action.model,
            secondary_models=action.secondary_models,
            parameters=dict(action.parameters),
            confidence=score_confidence(
                action, features, profile, self.policy.strategy, self.config.confidence_baseline
            ),
            features=features,
            estimated=estimate_metrics(action, features, profile),
            rule_id=match.rule.id,
            strategy=self.policy.strategy,
            snapshot_version=snapshot.version,
        )

        logger.info(
            "Route: task=%s attempt=%d rule=%s → %s/%s (confidence=%.2f, snapshot=v%d)",
            task.id,
            attempt,
            match.rule.id,
            decision.mode.value,
            decision.model,
            decision.confidence,
            snapshot.version,
        )
        return decision

    def _match(self, features: FeatureVector, rule_set: RuleSet) -> RuleMatch:
        if not self.config.enabled:
            return RuleMatch(rule=rule_set.fallback, rule_set_version=rule_set.version)
        return self.engine.evaluate(features, rule_set)

    def _escalate_for_retry(
        self,
        base_model: str,
        action: RoutingAction,
        registry: ModelRegistry,
        retry_count: int,
    ) -> RoutingAction:
        """Move an action to thinking mode with an upgraded model tier."""
        profile = registry.get(base_model)
        model = base_model
        if profile is not None:
            tier = self._upgrade_tier(profile.tier, retry_count)
            if tier != profile.tier:
                model = self.get_model(tier, registry) or base_model
                logger.info(
                    "Retry %d: escalating from %s (%s) to %s (%s)",
                    retry_count, base_model, profile.tier.value, model, tier.value,
                )

        return action.model_copy(update={"mode": ModeCategory.THINKING, "model": model})

    def get_model(self, tier: ModelTier, registry: ModelRegistry | None = None) -> str | None:
        """Get the strongest model in a tier.

        Args:
            tier: Model tier
            registry: Registry to search (default: current snapshot's)

        Returns:
            Model id, or None if the tier is empty
        """
        registry = registry or self.snapshots.current().registry
        candidates = registry.by_tier(tier)
        if not candidates:
            return None
        best = min(
            candidates,
            key=lambda p: (-(p.capabilities.reasoning + p.capabilities.accuracy), p.id),
        )
        return best.id

    def _upgrade_tier(self, tier: ModelTier, retry_count: int) -> ModelTier:
        """Upgrade tier based on retry count.

        Args:
            tier: Current tier
            retry_count: Number of retries

        Returns:
            Upgraded tier (capped at premium)
        """
        idx = TIER_ORDER.index(tier)
        new_idx = min(idx + retry_count, len(TIER_ORDER) - 1)
        return TIER_ORDER[new_idx]

    def explain_routing(
        self,
        task: Task,
        context: ExecutionContext | None = None,
    ) -> dict:
        """Explain a routing decision for debugging/CLI.

        Args:
            task: Task to route
            context: Optional execution context

        Returns:
            Dict with features, per-rule evaluation and the final decision
        """
        snapshot = self.snapshots.current()
        features = characterize_task(task, context, budget_reference=self.config.budget_reference)
        rows = self.engine.explain(features, snapshot.rule_set)
        match = self._match(features, snapshot.rule_set)
        adjusted = apply_strategy(match.rule.action, self.policy, snapshot.registry.get)

        reasons = [f"Rule '{match.rule.id}' matched: {match.rule.action.mode.value} / {match.rule.action.model}"]
        if adjusted != match.rule.action:
            reasons.append(
                f"Strategy '{self.policy.strategy.value}': "
                f"{adjusted.mode.value} / {adjusted.model}"
            )

        decision = self.decide(task, context)
        return {
            "task_id": task.id,
            "features": features.model_dump(),
            "rules": rows,
            "rule_id": match.rule.id,
            "strategy": self.policy.strategy.value,
            "snapshot_version": snapshot.version,
            "mode": decision.mode.value,
            "model": decision.model,
            "confidence": decision.confidence,
            "estimated": decision.estimated.model_dump(),
            "reasons": reasons,
        }

    @property
    def strategy(self) -> RoutingStrategy:
        return self.policy.strategy
