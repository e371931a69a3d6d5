"""Default routing catalog.

Built-in reasoning modes, model capability profiles and the default rule
set. Deployments can replace any of these through a routing snapshot file.
"""

from schemas.routing import (
    CapabilityVector,
    EqualsCondition,
    GreaterThanCondition,
    LessThanCondition,
    ModeCategory,
    ModeCharacteristics,
    ModelProfile,
    ReasoningMode,
    RoutingAction,
    RoutingRule,
    RuleSet,
)
from schemas.routing import ConditionField as F

REASONING_MODES: tuple[ReasoningMode, ...] = (
    ReasoningMode(
        id="thinking-deep",
        name="Deep Thinking Mode",
        description="Comprehensive reasoning with self-reflection and tool orchestration",
        category=ModeCategory.THINKING,
        characteristics=ModeCharacteristics(depth=0.95, speed=0.3, cost=0.9, accuracy=0.95, creativity=0.85),
        suitable_for=("complex-analysis", "strategic-planning", "creative-problem-solving", "research"),
        models=("glm-45-flagship", "glm-45-auto-think", "gpt-4o", "claude-3.5-sonnet"),
    ),
    ReasoningMode(
        id="thinking-balanced",
        name="Balanced Thinking Mode",
        description="Step-by-step reasoning with moderate depth",
        category=ModeCategory.THINKING,
        characteristics=ModeCharacteristics(depth=0.75, speed=0.6, cost=0.6, accuracy=0.85, creativity=0.7),
        suitable_for=("standard-analysis", "decision-making", "content-generation"),
        models=("glm-45-auto-think", "glm-45-full-stack", "claude-3.5-sonnet", "gpt-4o-mini"),
    ),
    ReasoningMode(
        id="non-thinking-fast",
        name="Fast Non-Thinking Mode",
        description="Single direct response optimized for latency",
        category=ModeCategory.NON_THINKING,
        characteristics=ModeCharacteristics(depth=0.3, speed=0.95, cost=0.2, accuracy=0.7, creativity=0.4),
        suitable_for=("quick-responses", "simple-queries", "data-retrieval", "basic-classification"),
        models=("glm-45-air", "gpt-4o-mini", "claude-3.5-haiku", "gemini-flash"),
    ),
    ReasoningMode(
        id="non-thinking-balanced",
        name="Balanced Non-Thinking Mode",
        description="Single direct response from a stronger model",
        category=ModeCategory.NON_THINKING,
        characteristics=ModeCharacteristics(depth=0.5, speed=0.8, cost=0.4, accuracy=0.8, creativity=0.6),
        suitable_for=("customer-service", "content-summarization", "basic-analysis"),
        models=("glm-45-full-stack", "gpt-4o", "claude-3.5-sonnet", "gemini-pro"),
    ),
    ReasoningMode(
        id="hybrid-adaptive",
        name="Adaptive Hybrid Mode",
        description="Quick pass first, escalating to thinking when the result falls short",
        category=ModeCategory.HYBRID,
        characteristics=ModeCharacteristics(depth=0.7, speed=0.7, cost=0.5, accuracy=0.85, creativity=0.75),
        suitable_for=("mixed-workflows", "uncertain-complexity", "cost-sensitive-tasks"),
        models=("glm-45-flagship", "glm-45-auto-think", "gpt-4o", "openrouter-auto"),
    ),
)


def _profile(
    model_id: str,
    provider: str,
    reasoning: float,
    speed: float,
    cost: float,
    accuracy: float,
    creativity: float,
    multimodal: bool,
    max_context: int,
    best_for: tuple[str, ...],
) -> ModelProfile:
    return ModelProfile(
        id=model_id,
        provider=provider,
        capabilities=CapabilityVector(
            reasoning=reasoning, speed=speed, cost=cost, accuracy=accuracy, creativity=creativity
        ),
        multimodal=multimodal,
        max_context=max_context,
        best_for=best_for,
    )


DEFAULT_PROFILES: tuple[ModelProfile, ...] = (
    _profile("glm-45-flagship", "zhipu", 0.95, 0.4, 0.9, 0.95, 0.85, True, 8192,
             ("complex-reasoning", "creative-tasks", "multimodal-analysis")),
    _profile("glm-45-auto-think", "zhipu", 0.9, 0.6, 0.7, 0.9, 0.8, False, 4096,
             ("step-by-step-reasoning", "self-reflection", "logical-analysis")),
    _profile("glm-45v", "zhipu", 0.85, 0.5, 0.8, 0.9, 0.75, True, 4096,
             ("visual-analysis", "image-understanding", "multimodal-tasks")),
    _profile("glm-45-air", "zhipu", 0.7, 0.9, 0.3, 0.8, 0.6, False, 2048,
             ("fast-responses", "simple-queries", "cost-sensitive")),
    _profile("glm-45-full-stack", "zhipu", 0.8, 0.7, 0.6, 0.85, 0.75, True, 4096,
             ("balanced-tasks", "full-stack-analysis", "multi-domain")),
    _profile("gpt-4o", "openai", 0.9, 0.7, 0.8, 0.9, 0.85, True, 4096,
             ("general-purpose", "multimodal", "balanced-performance")),
    _profile("gpt-4o-mini", "openai", 0.7, 0.95, 0.2, 0.8, 0.6, True, 4096,
             ("fast-tasks", "cost-sensitive", "high-volume")),
    _profile("claude-3.5-sonnet", "anthropic", 0.85, 0.8, 0.6, 0.9, 0.9, False, 8192,
             ("creative-writing", "analysis", "long-context")),
    _profile("claude-3.5-haiku", "anthropic", 0.6, 0.95, 0.1, 0.75, 0.7, False, 4096,
             ("quick-responses", "chat", "simple-tasks")),
    _profile("gemini-pro", "google", 0.8, 0.7, 0.4, 0.85, 0.7, True, 8192,
             ("general-analysis", "multimodal", "cost-effective")),
    _profile("gemini-flash", "google", 0.6, 0.9, 0.15, 0.75, 0.5, True, 4096,
             ("fast-tasks", "simple-queries", "high-volume")),
    _profile("openrouter-auto", "openrouter", 0.8, 0.7, 0.5, 0.85, 0.75, False, 8192,
             ("general-purpose", "adaptive-routing")),
)


DEFAULT_RULES: tuple[RoutingRule, ...] = (
    RoutingRule(
        id="high-complexity-thinking",
        name="High complexity tasks use thinking mode",
        priority=1,
        weight=0.9,
        conditions=(GreaterThanCondition(field=F.COMPLEXITY, value=0.7),),
        action=RoutingAction(
            mode=ModeCategory.THINKING,
            model="glm-45-flagship",
            parameters={"max_depth": 5, "self_reflection": True},
        ),
    ),
    RoutingRule(
        id="low-complexity-non-thinking",
        name="Low complexity tasks use non-thinking mode",
        priority=1,
        weight=0.8,
        # 0.45 so that simple analysis tasks (0.2 + 0.1 offset) clear the bar
        conditions=(LessThanCondition(field=F.COMPLEXITY, value=0.45),),
        action=RoutingAction(
            mode=ModeCategory.NON_THINKING,
            model="glm-45-air",
            parameters={"max_tokens": 500, "temperature": 0.7},
        ),
    ),
    RoutingRule(
        id="urgent-fast-mode",
        name="Urgent tasks use fast mode",
        priority=2,
        weight=0.85,
        conditions=(GreaterThanCondition(field=F.URGENCY, value=0.8),),
        action=RoutingAction(
            mode=ModeCategory.NON_THINKING,
            model="gpt-4o-mini",
            parameters={"max_tokens": 300, "temperature": 0.5},
        ),
    ),
    RoutingRule(
        id="cost-sensitive-cheap",
        name="Cost sensitive tasks use cheap models",
        priority=1,
        weight=0.7,
        conditions=(GreaterThanCondition(field=F.COST, value=0.8),),
        action=RoutingAction(
            mode=ModeCategory.NON_THINKING,
            model="gpt-4o-mini",
            parameters={"max_tokens": 250, "temperature": 0.3},
        ),
    ),
    RoutingRule(
        id="quality-critical-thinking",
        name="Quality critical tasks use thinking mode",
        priority=2,
        weight=0.95,
        conditions=(GreaterThanCondition(field=F.QUALITY, value=0.8),),
        action=RoutingAction(
            mode=ModeCategory.THINKING,
            model="glm-45-flagship",
            parameters={"max_depth": 3, "self_reflection": True},
        ),
    ),
    RoutingRule(
        id="healthcare-strict",
        name="Healthcare domain uses strict thinking mode",
        priority=3,
        weight=1.0,
        conditions=(EqualsCondition(field=F.DOMAIN, value="healthcare"),),
        action=RoutingAction(
            mode=ModeCategory.THINKING,
            model="glm-45-flagship",
            parameters={"max_depth": 4, "self_reflection": True, "compliance": "strict"},
        ),
    ),
    RoutingRule(
        id="legal-detailed",
        name="Legal domain uses detailed analysis",
        priority=3,
        weight=0.9,
        conditions=(EqualsCondition(field=F.DOMAIN, value="legal"),),
        action=RoutingAction(
            mode=ModeCategory.THINKING,
            model="glm-45-auto-think",
            parameters={"max_depth": 3, "self_reflection": True, "jurisdiction": "auto"},
        ),
    ),
    RoutingRule(
        id="customer-service-fast",
        name="Customer service uses fast response",
        priority=2,
        weight=0.8,
        conditions=(EqualsCondition(field=F.DOMAIN, value="customer-service"),),
        action=RoutingAction(
            mode=ModeCategory.NON_THINKING,
            model="gpt-4o",
            parameters={"max_tokens": 400, "temperature": 0.6},
        ),
    ),
    RoutingRule(
        id="default-balanced",
        name="Default balanced approach",
        priority=0,
        weight=0.5,
        conditions=(),
        action=RoutingAction(
            mode=ModeCategory.HYBRID,
            model="openrouter-auto",
            parameters={"auto_switch": True, "complexity_threshold": 0.6},
        ),
    ),
)


def default_rule_set() -> RuleSet:
    """Build the version-1 rule set from the built-in rules."""
    return RuleSet(version=1, rules=DEFAULT_RULES)


def get_mode(mode_id: str) -> ReasoningMode | None:
    """Look up a built-in reasoning mode by id."""
    return next((m for m in REASONING_MODES if m.id == mode_id), None)
