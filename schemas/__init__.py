"""Schemas module for structured routing and execution data.

Provides Pydantic models for:
- Tasks and execution context
- Reasoning modes, model profiles, routing rules and decisions
- Execution sessions, reasoning steps and mode transitions
- Performance records and analytics
"""

from .performance import (
    MetricsFilter,
    PairStats,
    PerformanceRecord,
    PerformanceSummary,
)
from .routing import (
    TIER_ORDER,
    CapabilityVector,
    Condition,
    ConditionField,
    ContainsCondition,
    EqualsCondition,
    EstimatedMetrics,
    FeatureVector,
    GreaterThanCondition,
    LessThanCondition,
    MatchesCondition,
    ModeCategory,
    ModeCharacteristics,
    ModelProfile,
    ModelStats,
    ModelTier,
    ReasoningMode,
    RoutingAction,
    RoutingDecision,
    RoutingRule,
    RoutingStrategy,
    RuleSet,
)
from .session import (
    TERMINAL_STATUSES,
    ErrorInfo,
    ExecutionResult,
    ExecutionSession,
    ModeTransition,
    ReasoningStep,
    SessionStatus,
    StepType,
)
from .task import Complexity, ExecutionContext, Priority, SubmitOptions, Task, TaskType

__all__ = [
    # Task
    "Task",
    "TaskType",
    "Complexity",
    "Priority",
    "ExecutionContext",
    "SubmitOptions",
    # Routing
    "ModeCategory",
    "RoutingStrategy",
    "ModelTier",
    "TIER_ORDER",
    "ModeCharacteristics",
    "ReasoningMode",
    "CapabilityVector",
    "ModelStats",
    "ModelProfile",
    "ConditionField",
    "Condition",
    "EqualsCondition",
    "GreaterThanCondition",
    "LessThanCondition",
    "ContainsCondition",
    "MatchesCondition",
    "RoutingAction",
    "RoutingRule",
    "RuleSet",
    "FeatureVector",
    "EstimatedMetrics",
    "RoutingDecision",
    # Session
    "SessionStatus",
    "TERMINAL_STATUSES",
    "StepType",
    "ReasoningStep",
    "ModeTransition",
    "ErrorInfo",
    "ExecutionSession",
    "ExecutionResult",
    # Performance
    "PerformanceRecord",
    "PairStats",
    "MetricsFilter",
    "PerformanceSummary",
]
