"""In-process tool backend backed by plain Python callables."""

import logging
import time
from collections.abc import Callable
from typing import Any

from .base import ToolBackend, ToolResult, ToolSpec, ToolStatus

logger = logging.getLogger(__name__)

ToolFunction = Callable[[dict[str, Any]], Any]


class LocalToolBackend(ToolBackend):
    """Runs registered functions as tools.

    A function returns the tool output; raising any exception marks the
    call as failed.

    Example:
        backend = LocalToolBackend()
        backend.register(ToolSpec("word-count", category=ToolCategory.ANALYSIS),
                         lambda p: len(str(p["input"]).split()))
    """

    def __init__(self) -> None:
        self._tools: dict[str, tuple[ToolSpec, ToolFunction]] = {}

    def register(self, spec: ToolSpec, fn: ToolFunction) -> None:
        self._tools[spec.id] = (spec, fn)

    def execute(self, tool_id: str, parameters: dict[str, Any]) -> ToolResult:
        if tool_id not in self._tools:
            return ToolResult(
                tool_id=tool_id,
                status=ToolStatus.FAILURE,
                error=f"Unknown tool: {tool_id}. Available: {sorted(self._tools)}",
            )

        _, fn = self._tools[tool_id]
        start = time.monotonic()
        try:
            output = fn(parameters)
        except Exception as e:
            logger.debug("Tool %s raised %s", tool_id, e)
            return ToolResult(
                tool_id=tool_id,
                status=ToolStatus.FAILURE,
                error=str(e),
                latency_ms=int((time.monotonic() - start) * 1000),
            )

        return ToolResult(
            tool_id=tool_id,
            status=ToolStatus.SUCCESS,
            output=output,
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    def available_tools(self) -> list[ToolSpec]:
        return [spec for spec, _ in self._tools.values()]
