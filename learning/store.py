"""Append-only performance record store.

Keeps records in memory (newest last) and optionally mirrors them to a
JSONL file. Once the retention cap is reached the oldest records are
dropped; the file is rewritten when it grows past twice the cap.
"""

import json
import logging
import threading
from collections import deque
from pathlib import Path

from schemas.performance import MetricsFilter, PerformanceRecord

logger = logging.getLogger(__name__)


class PerformanceStore:
    """Retention-capped store of PerformanceRecords."""

    def __init__(self, path: Path | str | None = None, retention: int = 1000):
        """Initialize store.

        Args:
            path: Optional JSONL file to append records to (loaded if it exists)
            retention: Maximum number of records kept
        """
        self.path = Path(path) if path else None
        self.retention = retention
        self._records: deque[PerformanceRecord] = deque(maxlen=retention)
        self._lock = threading.Lock()
        self._lines_on_disk = 0

        if self.path is not None and self.path.exists():
            self.load()

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: PerformanceRecord) -> None:
        with self._lock:
            self._records.append(record)
            if self.path is not None:
                self._append_line(record)

    def _append_line(self, record: PerformanceRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")
        self._lines_on_disk += 1

        if self._lines_on_disk > 2 * self.retention:
            self._rewrite()

    def _rewrite(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            for record in self._records:
                f.write(record.model_dump_json() + "\n")
        self._lines_on_disk = len(self._records)
        logger.debug("Rotated performance log %s to %d records", self.path, self._lines_on_disk)

    def recent(self, n: int) -> list[PerformanceRecord]:
        """Return the newest `n` records, oldest first."""
        with self._lock:
            records = list(self._records)
        return records[-n:] if n > 0 else []

    def all(self) -> list[PerformanceRecord]:
        with self._lock:
            return list(self._records)

    def query(self, filter: MetricsFilter | None = None) -> list[PerformanceRecord]:
        """Return records matching a filter."""
        records = self.all()
        if filter is None:
            return records
        return [
            r for r in records
            if (filter.mode is None or r.mode == filter.mode)
            and (filter.model is None or r.model == filter.model)
            and (filter.since is None or r.timestamp >= filter.since)
            and (filter.success is None or r.success == filter.success)
        ]

    def load(self) -> None:
        """Load records from the JSONL file, skipping corrupt lines."""
        loaded = 0
        with open(self.path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    self._records.append(PerformanceRecord(**json.loads(line)))
                    loaded += 1
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning("Skipping corrupt record %s:%d: %s", self.path, line_no, e)
        self._lines_on_disk = loaded
        logger.debug("Loaded %d performance records from %s", len(self._records), self.path)
