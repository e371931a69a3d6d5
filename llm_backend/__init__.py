"""Model backend abstraction layer.

Provides a unified interface for different model providers.
Supports auto-detection based on available API keys.

Priority order for "auto" mode:
1. Anthropic (if ANTHROPIC_API_KEY set)
2. OpenAI (if OPENAI_API_KEY set)
3. OpenRouter (if OPENROUTER_API_KEY set)
4. LM Studio (if running on localhost:1234)
5. Ollama (local fallback)
"""

from __future__ import annotations

import logging
import os
import socket
from collections.abc import Callable
from typing import TYPE_CHECKING

from .base import Completion, LLMBackend, ModelResponse, TokenUsage
from .ollama_backend import OllamaBackend
from .pool import BackendPool

if TYPE_CHECKING:
    from pipeline.config import LLMConfig

logger = logging.getLogger(__name__)

__all__ = [
    "BackendPool",
    "Completion",
    "LLMBackend",
    "ModelResponse",
    "OllamaBackend",
    "TokenUsage",
    "build_backend",
    "detect_backend",
    "get_backend",
]

LM_STUDIO_DEFAULT_URL = "http://localhost:1234/v1"
BACKEND_KINDS = ("auto", "ollama", "openai", "openrouter", "anthropic", "lmstudio")


def _get_openai_backend():
    """Lazy import OpenAI backend."""
    from .openai_backend import OpenAIBackend
    return OpenAIBackend


def _get_anthropic_backend():
    """Lazy import Anthropic backend."""
    from .anthropic_backend import AnthropicBackend
    return AnthropicBackend


def _check_lmstudio_running() -> bool:
    """Check if LM Studio server is running on default port."""
    try:
        with socket.create_connection(("localhost", 1234), timeout=1):
            return True
    except OSError:
        return False


def detect_backend() -> str:
    """Auto-detect the best available backend based on API keys.

    Returns:
        Backend name: "anthropic", "openai", "openrouter", "lmstudio", or "ollama"
    """
    if os.environ.get("ANTHROPIC_API_KEY"):
        logger.info("Auto-detected: Anthropic API key found")
        return "anthropic"

    if os.environ.get("OPENAI_API_KEY"):
        logger.info("Auto-detected: OpenAI API key found")
        return "openai"

    if os.environ.get("OPENROUTER_API_KEY"):
        logger.info("Auto-detected: OpenRouter API key found")
        return "openrouter"

    if _check_lmstudio_running():
        logger.info("Auto-detected: LM Studio running on localhost:1234")
        return "lmstudio"

    logger.info("Auto-detected: No API keys found, using Ollama (local)")
    return "ollama"


def get_backend(kind: str, **kwargs) -> LLMBackend:
    """Factory function to get a backend instance.

    Args:
        kind: Backend type (see BACKEND_KINDS); "auto" detects from
              available API keys/services
        **kwargs: Backend-specific configuration

    Returns:
        LLMBackend instance

    Raises:
        ValueError: If backend type is unknown
        ImportError: If required package not installed
    """
    if kind == "auto":
        kind = detect_backend()
        logger.info("Auto-selected backend: %s", kind)

    if not kwargs.get("base_url"):
        kwargs.pop("base_url", None)

    if kind == "ollama":
        return OllamaBackend(**kwargs)
    elif kind == "openai":
        return _get_openai_backend()(**kwargs)
    elif kind == "openrouter":
        from .openai_backend import OPENROUTER_URL

        kwargs.setdefault("base_url", OPENROUTER_URL)
        kwargs.setdefault("api_key_env", "OPENROUTER_API_KEY")
        kwargs.setdefault("model", "openrouter/auto")
        kwargs.setdefault("aliases", {"openrouter-auto": "openrouter/auto"})
        return _get_openai_backend()(**kwargs)
    elif kind == "anthropic":
        return _get_anthropic_backend()(**kwargs)
    elif kind == "lmstudio":
        kwargs.setdefault("base_url", LM_STUDIO_DEFAULT_URL)
        kwargs.setdefault("model", "local-model")
        kwargs.setdefault("api_key", "lm-studio")  # LM Studio ignores the key
        return _get_openai_backend()(**kwargs)
    else:
        raise ValueError(f"Unknown LLM backend: {kind}. Available: {', '.join(BACKEND_KINDS)}")


def build_backend(config: LLMConfig, provider_of: Callable[[str], str | None]) -> LLMBackend:
    """Build the backend described by an LLMConfig section.

    With no provider mapping a single backend serves every model;
    otherwise a BackendPool dispatches by the model's provider and the
    configured backend serves the remaining providers.
    """
    default = get_backend(config.backend, base_url=config.base_url, timeout=config.timeout)
    if not config.providers:
        return default

    backends = {
        provider: get_backend(kind, timeout=config.timeout)
        for provider, kind in config.providers.items()
    }
    return BackendPool(backends, provider_of=provider_of, default=default)
