"""Performance schemas for outcome learning.

Defines:
- PerformanceRecord (append-only outcome of one execution)
- PairStats (rolling statistics for one (mode, model) pair)
- MetricsFilter / PerformanceSummary (analytics queries)
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .routing import ModeCategory


class PerformanceRecord(BaseModel):
    """Outcome of one execution, fed to the performance learner."""

    model_config = ConfigDict(frozen=True)

    mode: ModeCategory
    model: str
    processing_time_ms: float = Field(..., ge=0)
    cost: float = Field(0.0, ge=0)
    accuracy: float = Field(..., ge=0, le=1)
    token_usage: int = 0
    success: bool
    timestamp: datetime = Field(default_factory=datetime.now)
    task_id: str | None = None
    session_id: str | None = None
    rule_id: str | None = Field(None, description="Rule that matched when the task was routed")

    @property
    def key(self) -> tuple[str, str]:
        return (self.mode.value, self.model)


class PairStats(BaseModel):
    """Rolling statistics for one (mode, model) pair."""

    model_config = ConfigDict(frozen=True)

    mode: ModeCategory
    model: str
    samples: int
    success_rate: float
    mean_accuracy: float
    mean_cost: float
    mean_processing_time_ms: float


class MetricsFilter(BaseModel):
    """Filter for performance analytics."""

    mode: ModeCategory | None = None
    model: str | None = None
    since: datetime | None = None
    success: bool | None = None


class PerformanceSummary(BaseModel):
    """Aggregated statistics over a filtered slice of the record stream."""

    total_requests: int = 0
    success_rate: float = 0.0
    average_accuracy: float = 0.0
    average_cost: float = 0.0
    average_processing_time_ms: float = 0.0
    mode_usage: dict[str, int] = Field(default_factory=dict)
    model_usage: dict[str, int] = Field(default_factory=dict)
    pairs: list[PairStats] = Field(default_factory=list)
    recommended_strategy: str | None = None
