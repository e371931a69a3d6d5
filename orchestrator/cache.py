"""LRU + TTL cache for non-thinking results."""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CachedResult:
    """A cached non-thinking response."""

    content: str
    confidence: float
    model: str
    latency_ms: int
    stored_at: float


class ResultCache:
    """Thread-safe LRU cache whose entries expire after a TTL.

    Example:
        cache = ResultCache(max_size=256, ttl_seconds=3600)
        cache.put(task.content_hash(), result)
        hit = cache.get(task.content_hash())
    """

    def __init__(
        self,
        max_size: int = 256,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CachedResult] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> CachedResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._clock() - entry.stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry

    def put(self, key: str, content: str, confidence: float, model: str, latency_ms: int) -> None:
        with self._lock:
            self._entries[key] = CachedResult(
                content=content,
                confidence=confidence,
                model=model,
                latency_ms=latency_ms,
                stored_at=self._clock(),
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}
