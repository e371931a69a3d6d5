"""HTTP tool backend: executes tools hosted on a remote tool server."""

import logging
import time
from typing import Any

import requests

from .base import ToolBackend, ToolCategory, ToolResult, ToolSpec, ToolStatus

logger = logging.getLogger(__name__)


class HttpToolBackend(ToolBackend):
    """Tool backend that calls a tool server over HTTP.

    Protocol:
    - GET  {base_url}/tools            -> [{"id", "name", "category", "description", "domains"}]
    - POST {base_url}/tools/{tool_id}  -> {"success": bool, "result": ..., "error": str | null}
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize HTTP tool backend.

        Args:
            base_url: Tool server base URL
            timeout: Per-call timeout in seconds
            headers: Default headers for all requests (e.g. auth)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_headers = headers or {}

    def execute(self, tool_id: str, parameters: dict[str, Any]) -> ToolResult:
        """Execute a tool on the server.

        Returns:
            ToolResult; transport failures are reported as FAILURE/TIMEOUT
        """
        url = f"{self.base_url}/tools/{tool_id}"
        start = time.monotonic()

        try:
            response = requests.post(
                url,
                json=parameters,
                headers=self.default_headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            return ToolResult(
                tool_id=tool_id,
                status=ToolStatus.TIMEOUT,
                error=f"Tool {tool_id} timed out after {self.timeout}s",
                latency_ms=_elapsed_ms(start),
            )
        except requests.exceptions.RequestException as e:
            return ToolResult(
                tool_id=tool_id,
                status=ToolStatus.FAILURE,
                error=f"Connection error: {e}",
                latency_ms=_elapsed_ms(start),
            )

        latency_ms = _elapsed_ms(start)

        if not response.ok:
            return ToolResult(
                tool_id=tool_id,
                status=ToolStatus.FAILURE,
                error=f"HTTP {response.status_code}: {response.reason}",
                latency_ms=latency_ms,
            )

        try:
            body = response.json()
        except ValueError:
            return ToolResult(
                tool_id=tool_id,
                status=ToolStatus.FAILURE,
                error="Tool server returned a non-JSON body",
                latency_ms=latency_ms,
            )

        success = bool(body.get("success", False))
        return ToolResult(
            tool_id=tool_id,
            status=ToolStatus.SUCCESS if success else ToolStatus.FAILURE,
            output=body.get("result"),
            error=None if success else body.get("error") or "Tool reported failure",
            latency_ms=latency_ms,
        )

    def available_tools(self) -> list[ToolSpec]:
        """List tools exposed by the server.

        Raises:
            ConnectionError: If the server cannot be reached
        """
        try:
            response = requests.get(
                f"{self.base_url}/tools",
                headers=self.default_headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ConnectionError(f"Failed to list tools at {self.base_url}: {e}") from e

        specs = []
        for item in response.json():
            try:
                category = ToolCategory(item.get("category", "system"))
            except ValueError:
                logger.debug("Tool %s has unknown category %r", item.get("id"), item.get("category"))
                category = ToolCategory.SYSTEM
            specs.append(ToolSpec(
                id=item["id"],
                name=item.get("name", item["id"]),
                category=category,
                description=item.get("description", ""),
                domains=tuple(item.get("domains", ())),
            ))
        return specs

    def __repr__(self) -> str:
        return f"HttpToolBackend(base_url={self.base_url!r})"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
