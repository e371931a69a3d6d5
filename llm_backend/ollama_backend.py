"""Ollama backend implementation for local model inference."""

from typing import Any

import requests

from .base import Completion, LLMBackend, TokenUsage


class OllamaBackend(LLMBackend):
    """Ollama backend for locally served models.

    Model ids that are not pulled locally can be mapped to local
    models with `aliases` (e.g. {"glm-45-air": "qwen2.5:7b"}).
    See: https://ollama.ai/
    """

    def __init__(
        self,
        model: str = "llama3.1:8b",
        base_url: str = "http://localhost:11434",
        timeout: int = 120,
        aliases: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Ollama backend.

        Args:
            model: Default model to use for requests
            base_url: Ollama server URL
            timeout: Request timeout in seconds
            aliases: Routing model id -> local Ollama model name
        """
        self.model = model
        self.base_url = (base_url or "http://localhost:11434").rstrip("/")
        self.timeout = timeout
        self.aliases = dict(aliases or {})

    def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> Completion:
        """Send a chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content' keys
            model: Model override (uses instance default if not specified)
            temperature: Sampling temperature
            max_tokens: Maximum tokens (mapped to num_predict in Ollama)
            **kwargs: `json_mode` requests JSON output; `options` are merged
                into the Ollama options

        Returns:
            Completion with content and token counts.

        Raises:
            ConnectionError: If unable to connect to Ollama
            TimeoutError: If the request times out
            RuntimeError: If Ollama returns an error
        """
        url = f"{self.base_url}/api/chat"
        model_name = model or self.model

        payload: dict[str, Any] = {
            "model": self.aliases.get(model_name, model_name),
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
            },
        }

        if max_tokens is not None:
            payload["options"]["num_predict"] = max_tokens
        if kwargs.get("json_mode"):
            payload["format"] = "json"

        payload["options"].update(kwargs.get("options", {}))

        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to Ollama at {self.base_url}. "
                "Is Ollama running? Try: ollama serve"
            ) from e
        except requests.exceptions.Timeout as e:
            raise TimeoutError(f"Ollama request timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            raise RuntimeError(f"Ollama returned an error: {e}") from e

        data = response.json()

        # {"message": {"role": "assistant", "content": "..."}, "eval_count": ...}
        if "message" not in data or "content" not in data["message"]:
            raise RuntimeError(f"Unexpected Ollama response format: {data}")

        usage = TokenUsage(
            prompt_tokens=int(data.get("prompt_eval_count", 0)),
            completion_tokens=int(data.get("eval_count", 0)),
        )
        return Completion(content=data["message"]["content"], usage=usage)

    def list_models(self) -> list[str]:
        """List models pulled into the Ollama server."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=10)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ConnectionError(f"Failed to list Ollama models: {e}") from e

        return [m["name"] for m in response.json().get("models", [])]

    def is_available(self) -> bool:
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def __repr__(self) -> str:
        return f"OllamaBackend(model={self.model!r}, base_url={self.base_url!r})"
