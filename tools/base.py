"""Base tool backend interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ToolStatus(Enum):
    """Status of a tool execution."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


class ToolCategory(str, Enum):
    """Coarse tool category used for relevance scoring."""

    ANALYSIS = "analysis"
    SEARCH = "search"
    DOMAIN = "domain"
    SYSTEM = "system"
    COMPLIANCE = "compliance"


@dataclass(frozen=True)
class ToolSpec:
    """Description of a tool a backend can execute."""

    id: str
    name: str = ""
    category: ToolCategory = ToolCategory.SYSTEM
    description: str = ""
    domains: tuple[str, ...] = ()


@dataclass
class ToolResult:
    """Result of a tool execution."""

    tool_id: str
    status: ToolStatus
    output: Any = None
    error: str | None = None
    latency_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == ToolStatus.SUCCESS

    def __bool__(self) -> bool:
        return self.success


class ToolBackend(ABC):
    """Abstract interface for tool execution backends.

    Backends report failures through ToolResult rather than raising, so
    the caller decides whether a failure is fatal (required tool) or
    can be skipped (optional tool).
    """

    @abstractmethod
    def execute(self, tool_id: str, parameters: dict[str, Any]) -> ToolResult:
        """Execute a tool.

        Args:
            tool_id: Tool to run
            parameters: Tool parameters

        Returns:
            ToolResult with status and output
        """
        ...

    @abstractmethod
    def available_tools(self) -> list[ToolSpec]:
        """Tools this backend can execute."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
