"""Routing schemas.

Structured models for:
- Reasoning modes (static catalog entries)
- Model capability profiles and their learned statistics
- Routing rules (closed set of condition variants + action)
- Rule sets (versioned, with exactly one fallback rule)
- Feature vectors and routing decisions
"""

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ModeCategory(str, Enum):
    """Execution strategy family."""

    NON_THINKING = "non-thinking"
    THINKING = "thinking"
    HYBRID = "hybrid"


class RoutingStrategy(str, Enum):
    """Post-hoc adjustment policy applied to the rule engine's action."""

    COST_OPTIMIZED = "cost-optimized"
    QUALITY_OPTIMIZED = "quality-optimized"
    BALANCED = "balanced"
    CUSTOM = "custom"


class ModelTier(str, Enum):
    """Model cost tier."""

    CHEAP = "cheap"      # Fast, low-cost
    MEDIUM = "medium"    # Balanced
    PREMIUM = "premium"  # High-capability


# Tier ordering for upgrades
TIER_ORDER = [ModelTier.CHEAP, ModelTier.MEDIUM, ModelTier.PREMIUM]


class ModeCharacteristics(BaseModel):
    """Characteristic vector of a reasoning mode, each in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    depth: float = Field(..., ge=0, le=1)
    speed: float = Field(..., ge=0, le=1)
    cost: float = Field(..., ge=0, le=1)
    accuracy: float = Field(..., ge=0, le=1)
    creativity: float = Field(..., ge=0, le=1)


class ReasoningMode(BaseModel):
    """Static catalog entry describing one reasoning mode."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    category: ModeCategory
    characteristics: ModeCharacteristics
    suitable_for: tuple[str, ...] = ()
    models: tuple[str, ...] = ()


class CapabilityVector(BaseModel):
    """Model capability vector, each in [0, 1] (cost: higher is pricier)."""

    model_config = ConfigDict(frozen=True)

    reasoning: float = Field(..., ge=0, le=1)
    speed: float = Field(..., ge=0, le=1)
    cost: float = Field(..., ge=0, le=1)
    accuracy: float = Field(..., ge=0, le=1)
    creativity: float = Field(..., ge=0, le=1)


class ModelStats(BaseModel):
    """Rolling statistics written only by the performance learner."""

    model_config = ConfigDict(frozen=True)

    samples: int = 0
    success_rate: float | None = None
    mean_accuracy: float | None = None
    mean_cost: float | None = None
    mean_latency_ms: float | None = None


class ModelProfile(BaseModel):
    """Capability, cost and speed profile of one backend model."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: str = "default"
    capabilities: CapabilityVector
    multimodal: bool = False
    max_context: int = 4096
    best_for: tuple[str, ...] = ()
    stats: ModelStats = Field(default_factory=ModelStats)

    @property
    def tier(self) -> ModelTier:
        cost = self.capabilities.cost
        if cost < 0.35:
            return ModelTier.CHEAP
        if cost < 0.7:
            return ModelTier.MEDIUM
        return ModelTier.PREMIUM


class ConditionField(str, Enum):
    """Feature vector fields a rule condition may test."""

    COMPLEXITY = "complexity"
    URGENCY = "urgency"
    COST = "cost"
    QUALITY = "quality"
    DOMAIN = "domain"
    TASK_TYPE = "task_type"
    USER_PREFERENCE = "user_preference"


class _ConditionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: ConditionField


class EqualsCondition(_ConditionBase):
    operator: Literal["equals"] = "equals"
    value: Union[bool, float, str]


class GreaterThanCondition(_ConditionBase):
    operator: Literal["greater_than"] = "greater_than"
    value: float


class LessThanCondition(_ConditionBase):
    operator: Literal["less_than"] = "less_than"
    value: float


class ContainsCondition(_ConditionBase):
    operator: Literal["contains"] = "contains"
    value: str


class MatchesCondition(_ConditionBase):
    operator: Literal["matches"] = "matches"
    value: str

    @field_validator("value")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid pattern {value!r}: {e}") from e
        return value


Condition = Annotated[
    Union[
        EqualsCondition,
        GreaterThanCondition,
        LessThanCondition,
        ContainsCondition,
        MatchesCondition,
    ],
    Field(discriminator="operator"),
]


class RoutingAction(BaseModel):
    """What a matched rule selects: mode, model and call parameters."""

    model_config = ConfigDict(frozen=True)

    mode: ModeCategory
    model: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    secondary_models: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Ensemble members consulted alongside the primary model",
    )


class RoutingRule(BaseModel):
    """Ordered rule: all conditions must hold for the action to apply."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    priority: int = 0
    weight: float = Field(0.5, ge=0.1, le=1.0)
    conditions: tuple[Condition, ...] = ()
    action: RoutingAction

    @field_validator("conditions", mode="before")
    @classmethod
    def _normalize_operators(cls, value: Any) -> Any:
        # Accept "greater-than" style operator names from hand-written files
        if isinstance(value, (list, tuple)):
            normalized = []
            for item in value:
                if isinstance(item, dict) and isinstance(item.get("operator"), str):
                    item = {**item, "operator": item["operator"].replace("-", "_")}
                normalized.append(item)
            return normalized
        return value

    @property
    def is_fallback(self) -> bool:
        return not self.conditions


class RuleSet(BaseModel):
    """Versioned, immutable collection of routing rules."""

    model_config = ConfigDict(frozen=True)

    version: int = 1
    rules: tuple[RoutingRule, ...]

    @model_validator(mode="after")
    def _check_rules(self) -> "RuleSet":
        fallbacks = [r.id for r in self.rules if r.is_fallback]
        if len(fallbacks) != 1:
            raise ValueError(
                f"Rule set must contain exactly one zero-condition fallback rule, found {len(fallbacks)}"
            )
        ids = [r.id for r in self.rules]
        if len(ids) != len(set(ids)):
            raise ValueError("Rule ids must be unique")
        return self

    @property
    def fallback(self) -> RoutingRule:
        return next(r for r in self.rules if r.is_fallback)

    def get(self, rule_id: str) -> RoutingRule | None:
        return next((r for r in self.rules if r.id == rule_id), None)

    def with_weights(self, weights: dict[str, float]) -> "RuleSet":
        """Return the next version with the given rule weights replaced."""
        rules = tuple(
            r.model_copy(update={"weight": weights[r.id]}) if r.id in weights else r
            for r in self.rules
        )
        return RuleSet(version=self.version + 1, rules=rules)


class FeatureVector(BaseModel):
    """Normalized decision features derived from a task."""

    model_config = ConfigDict(frozen=True)

    complexity: float = Field(..., ge=0, le=1)
    urgency: float = Field(..., ge=0, le=1)
    cost_sensitivity: float = Field(..., ge=0, le=1)
    quality_required: float = Field(..., ge=0, le=1)
    domain: str
    task_type: str
    user_preference: str = "balanced"

    def value_for(self, field: ConditionField) -> float | str:
        return {
            ConditionField.COMPLEXITY: self.complexity,
            ConditionField.URGENCY: self.urgency,
            ConditionField.COST: self.cost_sensitivity,
            ConditionField.QUALITY: self.quality_required,
            ConditionField.DOMAIN: self.domain,
            ConditionField.TASK_TYPE: self.task_type,
            ConditionField.USER_PREFERENCE: self.user_preference,
        }[field]


class EstimatedMetrics(BaseModel):
    """Pre-execution estimate for a routing decision."""

    model_config = ConfigDict(frozen=True)

    processing_time_ms: int
    cost: float
    accuracy: float = Field(..., ge=0, le=1)
    token_usage: int


class RoutingDecision(BaseModel):
    """The (mode, model, parameters) chosen for one execution attempt."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"dec-{uuid.uuid4().hex[:12]}")
    task_id: str
    attempt: int = 1
    mode: ModeCategory
    model: str
    secondary_models: tuple[str, ...] = ()
    parameters: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0, le=1)
    features: FeatureVector
    estimated: EstimatedMetrics
    rule_id: str
    strategy: RoutingStrategy = RoutingStrategy.BALANCED
    snapshot_version: int = 1
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_ensemble(self) -> bool:
        return bool(self.secondary_models)
