"""OpenAI-compatible backend (OpenAI, OpenRouter, LM Studio)."""

import os
from typing import Any

from .base import Completion, LLMBackend, TokenUsage

OPENROUTER_URL = "https://openrouter.ai/api/v1"


class OpenAIBackend(LLMBackend):
    """Backend for any server speaking the OpenAI chat completions API.

    Requires OPENAI_API_KEY (or an explicit api_key).
    See: https://platform.openai.com/docs/api-reference
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: int = 120,
        aliases: dict[str, str] | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        **kwargs: Any,
    ) -> None:
        """Initialize OpenAI backend.

        Args:
            model: Default model to use (gpt-4o, gpt-4o-mini, etc.)
            api_key: API key (defaults to the `api_key_env` variable)
            base_url: Optional base URL override (OpenRouter, LM Studio, proxies)
            timeout: Request timeout in seconds
            aliases: Routing model id -> provider model name
            api_key_env: Environment variable holding the API key
        """
        try:
            from openai import OpenAI
        except ImportError:
            raise ImportError("OpenAI package not installed. Run: pip install openai")

        self.model = model
        self.timeout = timeout
        self.aliases = dict(aliases or {})

        self._api_key = api_key or os.environ.get(api_key_env)
        if not self._api_key:
            raise ValueError(
                f"API key not found. Set {api_key_env} environment variable "
                "or pass api_key parameter."
            )

        client_kwargs: dict[str, Any] = {
            "api_key": self._api_key,
            "timeout": timeout,
        }
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = OpenAI(**client_kwargs)

    def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> Completion:
        """Send a chat completion request.

        Raises:
            ConnectionError: If unable to connect to the API
            TimeoutError: If the request times out
            RuntimeError: If the API returns an error
        """
        from openai import APIConnectionError, APIError, APITimeoutError

        model_name = model or self.model
        request_kwargs: dict[str, Any] = {
            "model": self.aliases.get(model_name, model_name),
            "messages": messages,
            "temperature": temperature,
        }

        if max_tokens is not None:
            request_kwargs["max_tokens"] = max_tokens
        if kwargs.get("json_mode"):
            request_kwargs["response_format"] = {"type": "json_object"}

        for key in ["top_p", "presence_penalty", "frequency_penalty", "stop"]:
            if key in kwargs:
                request_kwargs[key] = kwargs[key]

        # APITimeoutError subclasses APIConnectionError, so it goes first
        try:
            response = self._client.chat.completions.create(**request_kwargs)
        except APITimeoutError as e:
            raise TimeoutError(f"Request timed out: {e}") from e
        except APIConnectionError as e:
            raise ConnectionError(f"Failed to connect to API: {e}") from e
        except APIError as e:
            raise RuntimeError(f"API error: {e}") from e

        if not response.choices:
            raise RuntimeError("API returned empty response")

        content = response.choices[0].message.content
        if content is None:
            raise RuntimeError("API returned null content")

        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )
        return Completion(content=content, usage=usage)

    def list_models(self) -> list[str]:
        try:
            return sorted(m.id for m in self._client.models.list().data)
        except Exception as e:
            raise ConnectionError(f"Failed to list models: {e}") from e

    def is_available(self) -> bool:
        try:
            self._client.models.list()
            return True
        except Exception:
            return False

    @staticmethod
    def has_api_key() -> bool:
        return bool(os.environ.get("OPENAI_API_KEY"))

    def __repr__(self) -> str:
        return f"OpenAIBackend(model={self.model!r})"
