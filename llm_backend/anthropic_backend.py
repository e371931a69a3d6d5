"""Anthropic backend implementation for Claude models."""

import os
from typing import Any

from .base import Completion, LLMBackend, TokenUsage

# Routing catalog ids -> Anthropic API model names
DEFAULT_ALIASES = {
    "claude-3.5-sonnet": "claude-3-5-sonnet-latest",
    "claude-3.5-haiku": "claude-3-5-haiku-latest",
}


class AnthropicBackend(LLMBackend):
    """Anthropic backend for Claude model inference.

    Requires ANTHROPIC_API_KEY environment variable.
    See: https://docs.anthropic.com/en/api/getting-started
    """

    def __init__(
        self,
        model: str = "claude-3-5-haiku-latest",
        api_key: str | None = None,
        timeout: int = 120,
        max_tokens: int = 4096,
        aliases: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Anthropic backend.

        Args:
            model: Default model to use
            api_key: API key (defaults to ANTHROPIC_API_KEY env var)
            timeout: Request timeout in seconds
            max_tokens: Default max tokens for responses
            aliases: Routing model id -> Anthropic model name
        """
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError("Anthropic package not installed. Run: pip install anthropic")

        self.model = model
        self.timeout = timeout
        self.default_max_tokens = max_tokens
        self.aliases = {**DEFAULT_ALIASES, **(aliases or {})}

        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise ValueError(
                "Anthropic API key not found. Set ANTHROPIC_API_KEY environment variable "
                "or pass api_key parameter."
            )

        self._client = Anthropic(api_key=self._api_key, timeout=timeout)

    def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> Completion:
        """Send a messages request to Anthropic.

        Raises:
            ConnectionError: If unable to connect to Anthropic
            TimeoutError: If the request times out
            RuntimeError: If Anthropic returns an error
        """
        from anthropic import APIConnectionError, APIError, APITimeoutError

        # System prompt is a separate field in the Anthropic API
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        chat_messages = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m["role"] != "system"
        ]
        if chat_messages and chat_messages[0]["role"] != "user":
            chat_messages.insert(0, {"role": "user", "content": "Please assist me."})

        model_name = model or self.model
        request_kwargs: dict[str, Any] = {
            "model": self.aliases.get(model_name, model_name),
            "messages": chat_messages,
            "max_tokens": max_tokens or self.default_max_tokens,
            "temperature": min(temperature, 1.0),
        }
        if system_parts:
            request_kwargs["system"] = "\n\n".join(system_parts)

        for key in ["top_p", "top_k", "stop_sequences"]:
            if key in kwargs:
                request_kwargs[key] = kwargs[key]

        try:
            response = self._client.messages.create(**request_kwargs)
        except APITimeoutError as e:
            raise TimeoutError(f"Anthropic request timed out: {e}") from e
        except APIConnectionError as e:
            raise ConnectionError(f"Failed to connect to Anthropic API: {e}") from e
        except APIError as e:
            raise RuntimeError(f"Anthropic API error: {e}") from e

        text = [block.text for block in response.content if hasattr(block, "text")]
        if not text:
            raise RuntimeError("Anthropic returned no text content")

        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )
        return Completion(content="\n".join(text), usage=usage)

    def list_models(self) -> list[str]:
        # No listing needed for routing; report the mapped catalog models
        return sorted(set(self.aliases.values()))

    def is_available(self) -> bool:
        return bool(self._api_key)

    @staticmethod
    def has_api_key() -> bool:
        return bool(os.environ.get("ANTHROPIC_API_KEY"))

    def __repr__(self) -> str:
        return f"AnthropicBackend(model={self.model!r})"
