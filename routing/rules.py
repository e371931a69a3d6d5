"""Routing rule engine.

Rules are evaluated in (priority desc, weight desc, id asc) order and the
first rule whose conditions all hold wins. Every valid RuleSet carries a
zero-condition fallback, so evaluation always yields a rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from schemas.routing import (
    Condition,
    ContainsCondition,
    EqualsCondition,
    FeatureVector,
    GreaterThanCondition,
    LessThanCondition,
    MatchesCondition,
    RoutingRule,
    RuleSet,
)

logger = logging.getLogger(__name__)


def evaluate_condition(condition: Condition, features: FeatureVector) -> bool:
    """Evaluate one condition against a feature vector.

    Numeric operators against categorical features are false.

    Raises:
        TypeError: If the condition is not one of the known variants
    """
    actual = features.value_for(condition.field)

    if isinstance(condition, EqualsCondition):
        if isinstance(actual, str) or isinstance(condition.value, str):
            return str(actual) == str(condition.value)
        return actual == condition.value

    if isinstance(condition, GreaterThanCondition):
        return not isinstance(actual, str) and actual > condition.value

    if isinstance(condition, LessThanCondition):
        return not isinstance(actual, str) and actual < condition.value

    if isinstance(condition, ContainsCondition):
        return condition.value in str(actual)

    if isinstance(condition, MatchesCondition):
        return re.search(condition.value, str(actual)) is not None

    raise TypeError(f"Unknown condition variant: {type(condition).__name__}")


def rule_order(rule: RoutingRule) -> tuple[int, float, str]:
    """Sort key: priority desc, weight desc, id asc."""
    return (-rule.priority, -rule.weight, rule.id)


@dataclass
class RuleMatch:
    """Result of evaluating a rule set."""

    rule: RoutingRule
    rule_set_version: int
    evaluated: list[str] = field(default_factory=list)  # Rule ids tried, in order

    @property
    def is_fallback(self) -> bool:
        return self.rule.is_fallback


class RuleEngine:
    """Evaluates routing rules against task features."""

    def evaluate(self, features: FeatureVector, rule_set: RuleSet) -> RuleMatch:
        """Return the first matching rule.

        Args:
            features: Characterized task features
            rule_set: Rule set snapshot to evaluate

        Returns:
            RuleMatch for the winning rule (the fallback when nothing else holds)
        """
        evaluated: list[str] = []
        for rule in sorted(rule_set.rules, key=rule_order):
            evaluated.append(rule.id)
            if all(evaluate_condition(c, features) for c in rule.conditions):
                logger.debug(
                    "Rule %s matched (priority=%d, weight=%.2f, version=%d)",
                    rule.id,
                    rule.priority,
                    rule.weight,
                    rule_set.version,
                )
                return RuleMatch(rule=rule, rule_set_version=rule_set.version, evaluated=evaluated)

        # Unreachable for a validated RuleSet
        fallback = rule_set.fallback
        return RuleMatch(rule=fallback, rule_set_version=rule_set.version, evaluated=evaluated)

    def explain(self, features: FeatureVector, rule_set: RuleSet) -> list[dict]:
        """Explain how each rule fared against the features.

        Args:
            features: Characterized task features
            rule_set: Rule set to explain

        Returns:
            One dict per rule in evaluation order, with the failed
            condition (if any) and whether the rule was selected.
        """
        rows = []
        selected: str | None = None
        for rule in sorted(rule_set.rules, key=rule_order):
            failed = next(
                (c for c in rule.conditions if not evaluate_condition(c, features)),
                None,
            )
            matched = failed is None
            is_selected = matched and selected is None
            if is_selected:
                selected = rule.id
            rows.append({
                "rule_id": rule.id,
                "priority": rule.priority,
                "weight": rule.weight,
                "matched": matched,
                "selected": is_selected,
                "failed_condition": (
                    f"{failed.field.value} {failed.operator} {failed.value!r} "
                    f"(actual {features.value_for(failed.field)!r})"
                    if failed is not None
                    else None
                ),
                "action": f"{rule.action.mode.value} / {rule.action.model}",
            })
        return rows
