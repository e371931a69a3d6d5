"""Abstract base class for LLM backends."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from pipeline.errors import ProviderError


@dataclass
class TokenUsage:
    """Token accounting for one call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


@dataclass
class Completion:
    """Raw completion returned by a backend."""

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class ModelResponse:
    """Result of invoking one model."""

    model_id: str
    content: str
    usage: TokenUsage
    latency_ms: int


class LLMBackend(ABC):
    """Abstract interface for LLM providers.

    All LLM backends must implement this interface to ensure
    consistent behavior across different providers.
    """

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> Completion:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
                     Roles: "system", "user", "assistant"
            model: Optional model override (uses default if not specified)
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response
            **kwargs: Provider-specific parameters

        Returns:
            Completion with the assistant's content and token usage.

        Raises:
            ConnectionError: If unable to connect to the backend
            TimeoutError: If the request times out
            RuntimeError: If the backend returns an error
        """
        ...

    @abstractmethod
    def list_models(self) -> list[str]:
        """List available models.

        Returns:
            List of model names/identifiers.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the backend is available and responding.

        Returns:
            True if backend is reachable and ready.
        """
        ...

    def chat(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> str:
        """Send a chat completion request and return only the content."""
        return self.complete(messages, model, temperature, max_tokens, **kwargs).content

    def invoke(
        self,
        prompt: str,
        model_id: str,
        params: dict[str, Any] | None = None,
    ) -> ModelResponse:
        """Invoke a model with a single prompt.

        Args:
            prompt: User prompt
            model_id: Model to call
            params: Call parameters; recognized keys are `system`,
                `temperature` and `max_tokens`, the rest is passed through

        Returns:
            ModelResponse with content, usage and measured latency

        Raises:
            ProviderError: If the backend fails for any reason
        """
        params = dict(params or {})
        system = params.pop("system", None)
        temperature = params.pop("temperature", 0.7)
        max_tokens = params.pop("max_tokens", None)

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        start = time.monotonic()
        try:
            completion = self.complete(
                messages,
                model=model_id,
                temperature=temperature,
                max_tokens=max_tokens,
                **params,
            )
        except ProviderError:
            raise
        except Exception as e:
            # Malformed provider bodies surface as ValueError / KeyError
            raise ProviderError(f"{model_id}: {type(e).__name__}: {e}", model_id=model_id) from e

        return ModelResponse(
            model_id=model_id,
            content=completion.content,
            usage=completion.usage,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
