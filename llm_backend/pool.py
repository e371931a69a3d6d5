"""Backend pool: dispatch model ids to provider backends."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .base import Completion, LLMBackend

logger = logging.getLogger(__name__)


class BackendPool(LLMBackend):
    """Routes each call to the backend of the model's provider.

    Example:
        pool = BackendPool(
            {"openai": OpenAIBackend(), "anthropic": AnthropicBackend()},
            provider_of=lambda m: registry.get(m).provider,
            default=OllamaBackend(),
        )
        pool.invoke("Summarize...", "gpt-4o-mini")
    """

    def __init__(
        self,
        backends: dict[str, LLMBackend],
        provider_of: Callable[[str], str | None],
        default: LLMBackend | None = None,
    ):
        """Initialize pool.

        Args:
            backends: Provider name -> backend
            provider_of: Model id -> provider name (None if unknown)
            default: Backend for providers without an entry
        """
        self.backends = dict(backends)
        self.provider_of = provider_of
        self.default = default

    def resolve(self, model_id: str | None) -> LLMBackend:
        """Backend that serves a model.

        Raises:
            RuntimeError: If no backend serves the model's provider
        """
        provider = self.provider_of(model_id) if model_id else None
        backend = self.backends.get(provider) if provider else None
        if backend is None:
            backend = self.default
        if backend is None:
            raise RuntimeError(f"No backend configured for model {model_id!r} (provider {provider!r})")
        return backend

    def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> Completion:
        backend = self.resolve(model)
        logger.debug("Dispatching %s to %r", model, backend)
        return backend.complete(messages, model, temperature, max_tokens, **kwargs)

    def list_models(self) -> list[str]:
        models: list[str] = []
        for backend in self._all():
            try:
                models.extend(backend.list_models())
            except ConnectionError as e:
                logger.warning("Could not list models for %r: %s", backend, e)
        return sorted(set(models))

    def is_available(self) -> bool:
        return any(backend.is_available() for backend in self._all())

    def _all(self) -> list[LLMBackend]:
        backends = list(self.backends.values())
        if self.default is not None and self.default not in backends:
            backends.append(self.default)
        return backends

    def __repr__(self) -> str:
        return f"BackendPool(providers={sorted(self.backends)!r}, default={self.default!r})"
