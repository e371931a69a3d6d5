"""Outcome returned by a mode handler for one attempt."""

from dataclasses import dataclass, field
from typing import Any

from schemas.routing import ModeCategory


@dataclass
class ModeOutcome:
    """What a mode handler produced.

    Attributes:
        content: Final answer
        confidence: Result confidence in [0, 1]
        mode: Mode that produced the answer
        model: Primary model
        contributors: Models whose results were used
        consensus: Agreement among contributors (1.0 for a single model)
        low_confidence: Confidence stayed below threshold after all retries
        partial: Some ensemble members were missing
        from_cache: Served from the non-thinking cache
        needs_review: Monitor flagged the result for external review
        retry_requested: Monitor asked for a new attempt in thinking mode
        notes: Free-form reasons (review notes, retry reasons)
    """

    content: Any
    confidence: float
    mode: ModeCategory
    model: str
    contributors: list[str] = field(default_factory=list)
    consensus: float = 1.0
    low_confidence: bool = False
    partial: bool = False
    from_cache: bool = False
    needs_review: bool = False
    retry_requested: bool = False
    notes: list[str] = field(default_factory=list)
