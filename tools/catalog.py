"""Tool catalog and relevance-based tool selection."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from schemas.task import Complexity, Task, TaskType

from .base import ToolCategory, ToolSpec

# Categories that fit each task type
RELEVANCE_MAP: dict[TaskType, tuple[ToolCategory, ...]] = {
    TaskType.ANALYSIS: (ToolCategory.ANALYSIS, ToolCategory.SEARCH, ToolCategory.DOMAIN),
    TaskType.GENERATION: (ToolCategory.SYSTEM, ToolCategory.ANALYSIS),
    TaskType.TRANSFORMATION: (ToolCategory.SYSTEM, ToolCategory.ANALYSIS),
    TaskType.VALIDATION: (ToolCategory.COMPLIANCE, ToolCategory.ANALYSIS),
}

BASE_RELEVANCE = 0.5
CATEGORY_BONUS = 0.3
EXPERT_DOMAIN_BONUS = 0.2
MIN_RELEVANCE = 0.5


@dataclass(frozen=True)
class ToolSelection:
    """A selected tool and why."""

    spec: ToolSpec
    relevance: float
    required: bool = False
    explicit: bool = False


def tool_relevance(spec: ToolSpec, task: Task) -> float:
    """Relevance of a tool to a task, in [0.5, 1]."""
    relevance = BASE_RELEVANCE
    if spec.category in RELEVANCE_MAP[task.type]:
        relevance += CATEGORY_BONUS
    if task.complexity == Complexity.EXPERT and spec.category == ToolCategory.DOMAIN:
        relevance += EXPERT_DOMAIN_BONUS
    return min(relevance, 1.0)


class ToolCatalog:
    """Known tools, and selection of the ones relevant to a task."""

    def __init__(self, specs: Iterable[ToolSpec] = ()):
        self._specs: dict[str, ToolSpec] = {s.id: s for s in specs}

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, tool_id: str) -> ToolSpec | None:
        return self._specs.get(tool_id)

    def select(self, task: Task, max_tools: int = 3) -> list[ToolSelection]:
        """Choose tools for a task.

        Tools the task names explicitly (required first, then optional)
        are always included, even if the catalog does not know them.
        The remaining slots go to the most relevant catalog tools whose
        relevance exceeds the minimum and whose domains (if any) include
        the task's domain.

        Args:
            task: Task being executed
            max_tools: Maximum number of relevance-selected tools

        Returns:
            Selected tools, explicit ones first
        """
        selected: list[ToolSelection] = []
        seen: set[str] = set()

        for tool_id in task.required_tools:
            spec = self._specs.get(tool_id) or ToolSpec(id=tool_id)
            selected.append(ToolSelection(spec, tool_relevance(spec, task), required=True, explicit=True))
            seen.add(tool_id)

        for tool_id in task.optional_tools:
            if tool_id in seen:
                continue
            spec = self._specs.get(tool_id) or ToolSpec(id=tool_id)
            selected.append(ToolSelection(spec, tool_relevance(spec, task), explicit=True))
            seen.add(tool_id)

        ranked = sorted(
            (
                (tool_relevance(spec, task), spec)
                for spec in self._specs.values()
                if spec.id not in seen and (not spec.domains or task.domain in spec.domains)
            ),
            key=lambda item: (-item[0], item[1].id),
        )
        for relevance, spec in ranked[:max_tools]:
            if relevance > MIN_RELEVANCE:
                selected.append(ToolSelection(spec, relevance))

        return selected
