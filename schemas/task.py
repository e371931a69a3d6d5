"""Task schema.

A Task is the unit of work submitted for routing. It is immutable once
submitted; everything the router derives from it is computed from these
fields alone.
"""

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .routing import ModeCategory


class TaskType(str, Enum):
    """Kind of work a task asks for."""

    ANALYSIS = "analysis"
    GENERATION = "generation"
    TRANSFORMATION = "transformation"
    VALIDATION = "validation"


class Complexity(str, Enum):
    """Declared task complexity."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    EXPERT = "expert"


class Priority(str, Enum):
    """Declared task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Task(BaseModel):
    """A unit of work to route and execute."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique task ID")
    name: str = Field("", description="Short task title")
    description: str = Field("", description="What the task asks for")

    # Classification
    domain: str = Field("general", description="Business domain (e.g. healthcare, legal)")
    type: TaskType = Field(TaskType.ANALYSIS, description="Kind of work")
    complexity: Complexity = Field(Complexity.MODERATE, description="Declared complexity")
    priority: Priority = Field(Priority.MEDIUM, description="Declared priority")

    # Timing
    deadline: datetime | None = Field(None, description="Optional completion deadline")
    submitted_at: datetime = Field(
        default_factory=datetime.now,
        description="Submission time; reference clock for deadline bands",
    )

    # Payload
    input: dict[str, Any] = Field(default_factory=dict, description="Input payload")
    expected_output: dict[str, Any] = Field(
        default_factory=dict,
        description="Expected output schema: {'type': ..., 'required': [...]}",
    )

    # Constraints
    budget_ceiling: float | None = Field(None, ge=0, description="Max spend in USD")
    required_tools: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Tools whose failure is fatal to the task",
    )
    optional_tools: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Tools requested explicitly but allowed to fail",
    )

    def content_hash(self) -> str:
        """Stable hash of the task content (identity and timestamps excluded)."""
        payload = {
            "name": self.name,
            "description": self.description,
            "domain": self.domain,
            "type": self.type.value,
            "complexity": self.complexity.value,
            "input": self.input,
            "expected_output": self.expected_output,
        }
        encoded = json.dumps(payload, sort_keys=True, default=str).encode()
        return hashlib.sha256(encoded).hexdigest()


class ExecutionContext(BaseModel):
    """Optional per-submission context that refines characterization."""

    model_config = ConfigDict(frozen=True)

    domain_override: str | None = Field(None, description="Replaces task.domain for routing")
    budget: float | None = Field(None, ge=0, description="Budget in USD (overrides budget_ceiling)")
    user_preference: str | None = Field(None, description="Caller preference label")
    reference_time: datetime | None = Field(
        None,
        description="Clock used for deadline bands (defaults to task.submitted_at)",
    )


class SubmitOptions(BaseModel):
    """Per-call options for submitting a task."""

    context: ExecutionContext | None = Field(None, description="Execution context")
    session_budget_seconds: float | None = Field(
        None,
        gt=0,
        description="Wall-clock budget (defaults to execution.session_budget_seconds)",
    )
    mode: ModeCategory | None = Field(None, description="Force a reasoning mode instead of the routed one")
    session_id: str | None = Field(None, description="Use this id for the new session")
