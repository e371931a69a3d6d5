"""Versioned routing snapshots.

A RoutingSnapshot bundles the rule set and the model registry that one
routing decision reads. The learner publishes a new snapshot instead of
editing the current one; readers that already hold a snapshot keep a
consistent view until they ask for the next.
"""

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from routing.catalog import DEFAULT_PROFILES, default_rule_set
from routing.registry import ModelRegistry
from schemas.routing import ModelProfile, RuleSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutingSnapshot:
    """Immutable (rule set, registry) pair tagged with a version."""

    version: int
    rule_set: RuleSet
    registry: ModelRegistry


class SnapshotStore:
    """Holds the current routing snapshot.

    Readers call `current()` without locking; `publish()` builds the next
    snapshot and swaps a single reference under a writer lock.
    """

    def __init__(self, rule_set: RuleSet | None = None, registry: ModelRegistry | None = None):
        self._lock = threading.Lock()
        self._snapshot = RoutingSnapshot(
            version=1,
            rule_set=rule_set or default_rule_set(),
            registry=registry or ModelRegistry(DEFAULT_PROFILES),
        )

    def current(self) -> RoutingSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def publish(
        self,
        rule_set: RuleSet | None = None,
        registry: ModelRegistry | None = None,
    ) -> RoutingSnapshot:
        """Publish a new snapshot.

        Args:
            rule_set: Replacement rule set (default: keep current)
            registry: Replacement registry (default: keep current)

        Returns:
            The newly published snapshot
        """
        with self._lock:
            previous = self._snapshot
            snapshot = RoutingSnapshot(
                version=previous.version + 1,
                rule_set=rule_set or previous.rule_set,
                registry=registry or previous.registry,
            )
            self._snapshot = snapshot

        logger.info("Published routing snapshot v%d", snapshot.version)
        return snapshot

    def save(self, path: Path | str) -> None:
        """Write the current snapshot to a JSON file."""
        snapshot = self._snapshot
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": snapshot.version,
            "rule_set": snapshot.rule_set.model_dump(mode="json"),
            "profiles": [p.model_dump(mode="json") for p in snapshot.registry],
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

        logger.debug("Saved routing snapshot v%d to %s", snapshot.version, path)

    @classmethod
    def load(cls, path: Path | str) -> "SnapshotStore":
        """Create a store from a JSON snapshot file.

        Missing sections fall back to the built-in catalog.

        Raises:
            FileNotFoundError: If the file does not exist
            pydantic.ValidationError: If the rules or profiles are malformed
        """
        with open(Path(path), encoding="utf-8") as f:
            data = json.load(f)

        rule_set = RuleSet(**data["rule_set"]) if "rule_set" in data else None
        registry = (
            ModelRegistry(ModelProfile(**p) for p in data["profiles"])
            if "profiles" in data
            else None
        )
        store = cls(rule_set=rule_set, registry=registry)
        store._snapshot = RoutingSnapshot(
            version=int(data.get("version", 1)),
            rule_set=store._snapshot.rule_set,
            registry=store._snapshot.registry,
        )
        return store
