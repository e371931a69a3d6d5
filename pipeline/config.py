"""Configuration management for the hybrid reasoning router.

Loads configuration from:
1. config.toml (defaults)
2. Environment variables (overrides)
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class LLMConfig:
    """Model backend configuration."""

    backend: str = "auto"  # "auto", "ollama", "openai", "openrouter", "anthropic", "lmstudio"
    base_url: str = ""  # Empty = backend default
    timeout: int = 120

    # Provider name (from model profiles) -> backend kind, for mixed pools
    providers: dict[str, str] = field(default_factory=dict)


@dataclass
class RoutingConfig:
    """Rule-based routing configuration.

    Strategy adjusts the rule engine's action after matching:
    cost-optimized, quality-optimized, balanced or custom.
    """

    enabled: bool = True
    strategy: str = "balanced"
    confidence_baseline: float = 0.8
    budget_reference: float = 1.0  # Budget (USD) that maps to zero cost sensitivity

    # Strategy targets
    cost_optimized_model: str = "gpt-4o-mini"
    quality_optimized_model: str = "glm-45-flagship"

    # Custom strategy: mode -> [mode, model]
    custom_overrides: dict[str, list[str]] = field(default_factory=dict)

    # Optional JSON snapshot with rules and model profiles
    snapshot_file: str = ""


@dataclass
class ThinkingConfig:
    """Thinking-mode pipeline configuration."""

    max_depth: int = 3  # Max refinement retries after the first pass
    confidence_threshold: float = 0.8
    self_reflection: bool = True
    step_by_step: bool = True
    tool_orchestration: bool = True
    max_tools: int = 3
    reflection_model: str = ""  # Empty = the decision's primary model
    max_tokens: int = 2000
    temperature: float = 0.4


@dataclass
class NonThinkingConfig:
    """Non-thinking (single call) configuration."""

    max_tokens: int = 1000
    temperature: float = 0.7
    target_latency_ms: int = 2000  # Only results faster than this are cached
    cache_enabled: bool = True
    cache_size: int = 256
    cache_ttl_seconds: int = 3600


@dataclass
class HybridConfig:
    """Hybrid escalation thresholds."""

    auto_switch: bool = True
    complexity_threshold: float = 0.6
    confidence_threshold: float = 0.7
    cost_threshold: float = 0.05


@dataclass
class EnsembleConfig:
    """Ensemble fan-out configuration."""

    max_fan_out: int = 3
    call_timeout_seconds: float = 30.0
    aggregation_window_seconds: float = 10.0
    synthesis_model: str = ""  # Empty = most capable registered model


@dataclass
class LearningConfig:
    """Performance learner configuration."""

    enabled: bool = True
    window: int = 100  # Records considered per recompute
    cadence: int = 10  # Recompute every N new records
    retention: int = 1000  # Records kept before rotation
    store_path: str = ""  # JSONL log; empty = in-memory only
    background: bool = False  # Consume records on a worker thread


@dataclass
class ExecutionConfig:
    """Session execution configuration."""

    session_budget_seconds: float = 120.0
    max_attempts: int = 2
    sessions_dir: str = ""  # Empty = sessions are not persisted
    log_level: str = "INFO"


@dataclass
class Config:
    """Main configuration container."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    thinking: ThinkingConfig = field(default_factory=ThinkingConfig)
    non_thinking: NonThinkingConfig = field(default_factory=NonThinkingConfig)
    hybrid: HybridConfig = field(default_factory=HybridConfig)
    ensemble: EnsembleConfig = field(default_factory=EnsembleConfig)
    learning: LearningConfig = field(default_factory=LearningConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            llm=LLMConfig(**data.get("llm", {})),
            routing=RoutingConfig(**data.get("routing", {})),
            thinking=ThinkingConfig(**data.get("thinking", {})),
            non_thinking=NonThinkingConfig(**data.get("non_thinking", {})),
            hybrid=HybridConfig(**data.get("hybrid", {})),
            ensemble=EnsembleConfig(**data.get("ensemble", {})),
            learning=LearningConfig(**data.get("learning", {})),
            execution=ExecutionConfig(**data.get("execution", {})),
        )


def find_config_file() -> Path | None:
    """Find config.toml in current or parent directories.

    Returns:
        Path to config.toml or None if not found.
    """
    current = Path.cwd()

    for directory in [current, *current.parents]:
        config_path = directory / "config.toml"
        if config_path.exists():
            return config_path

    return None


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to config.toml

    Returns:
        Config object with merged settings.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "rb") as f:
                config_data = tomllib.load(f)

    # Apply environment variable overrides
    env_overrides = {
        "llm": {
            "backend": os.getenv("LLM_BACKEND"),
            "base_url": os.getenv("LLM_BASE_URL"),
            "timeout": _int_or_none(os.getenv("LLM_TIMEOUT")),
        },
        "routing": {
            "strategy": os.getenv("ROUTING_STRATEGY"),
        },
        "learning": {
            "store_path": os.getenv("HROUTE_PERFORMANCE_LOG"),
        },
        "execution": {
            "sessions_dir": os.getenv("HROUTE_SESSIONS_DIR"),
            "log_level": os.getenv("LOG_LEVEL"),
        },
    }

    # Merge env overrides (only non-None values)
    for section, values in env_overrides.items():
        if section not in config_data:
            config_data[section] = {}
        for key, value in values.items():
            if value is not None:
                config_data[section][key] = value

    return Config.from_dict(config_data)


def _int_or_none(value: str | None) -> int | None:
    """Convert string to int, or return None."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


# Global config instance (lazy loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config object (loaded once, cached).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Force reload of configuration.

    Returns:
        Fresh Config object.
    """
    global _config
    _config = load_config()
    return _config
