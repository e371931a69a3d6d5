"""Model capability registry.

An immutable mapping from model id to ModelProfile. Learned statistics
are applied by building a new registry with `with_stats`, never by
mutating profiles in place.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from schemas.routing import ModelProfile, ModelStats, ModelTier


class ModelRegistry:
    """Read-only lookup of model capability profiles."""

    def __init__(self, profiles: Iterable[ModelProfile]):
        self._profiles: dict[str, ModelProfile] = {p.id: p for p in profiles}

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._profiles

    def __iter__(self) -> Iterator[ModelProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    def get(self, model_id: str) -> ModelProfile | None:
        return self._profiles.get(model_id)

    def ids(self) -> list[str]:
        return list(self._profiles)

    def by_tier(self, tier: ModelTier) -> list[ModelProfile]:
        """Profiles in a cost tier, cheapest first."""
        return sorted(
            (p for p in self._profiles.values() if p.tier == tier),
            key=lambda p: (p.capabilities.cost, p.id),
        )

    def cheapest(self) -> ModelProfile | None:
        """Lowest-cost profile (ties broken by id)."""
        if not self._profiles:
            return None
        return min(self._profiles.values(), key=lambda p: (p.capabilities.cost, p.id))

    def most_capable(self) -> ModelProfile | None:
        """Highest reasoning + accuracy profile (ties broken by id)."""
        if not self._profiles:
            return None
        return min(
            self._profiles.values(),
            key=lambda p: (-(p.capabilities.reasoning + p.capabilities.accuracy), p.id),
        )

    def with_stats(self, stats: dict[str, ModelStats]) -> "ModelRegistry":
        """Return a new registry with learned statistics applied.

        Args:
            stats: Model id -> statistics; unknown ids are ignored

        Returns:
            New ModelRegistry; this one is left unchanged
        """
        return ModelRegistry(
            p.model_copy(update={"stats": stats[p.id]}) if p.id in stats else p
            for p in self._profiles.values()
        )
