"""Tool backends used by thinking-mode execution.

Provides:
- ToolBackend interface and results
- HTTP backend for remote tool servers
- Local backend for in-process callables
- Tool catalog with relevance-based selection
"""

from .base import ToolBackend, ToolCategory, ToolResult, ToolSpec, ToolStatus
from .catalog import ToolCatalog, ToolSelection, tool_relevance
from .http_tool import HttpToolBackend
from .local_tool import LocalToolBackend

__all__ = [
    "HttpToolBackend",
    "LocalToolBackend",
    "ToolBackend",
    "ToolCatalog",
    "ToolCategory",
    "ToolResult",
    "ToolSelection",
    "ToolSpec",
    "ToolStatus",
    "tool_relevance",
]
