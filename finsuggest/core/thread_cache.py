"""
Result cache for conversation-level AI analysis.

Keyed by a content hash of the thread, so a thread that gained a new message
gets a new key. TTL and the minimum confidence threshold move together
through a single optimization level.
"""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

from .models import AnalysisResult, EmailThread

logger = logging.getLogger(__name__)

# level -> (ttl seconds, min confidence 0-100)
OPTIMIZATION_LEVELS: Dict[str, tuple] = {
    "high": (60 * 60, 70),
    "medium": (30 * 60, 60),
    "low": (15 * 60, 50),
}


def thread_key(thread: EmailThread) -> str:
    """SHA-256 over (id, sender, subject, timestamp) of every message, in order."""
    content = json.dumps(
        [[m.id, m.sender, m.subject, int(m.date.timestamp() * 1000)] for m in thread.messages]
    )
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """A cached analysis result."""
    key: str
    payload: AnalysisResult
    computed_at: float


class ThreadAnalysisCache:
    """
    In-memory, last-write-wins cache of AnalysisResult.

    An entry older than the TTL is treated as absent. Expired entries are
    only dropped on access or by evict_expired(), which an external
    scheduler calls periodically.

    Usage:
        cache = ThreadAnalysisCache("medium")
        result = cache.get(key)
        if result is None:
            result = analyze(...)
            cache.put(key, result)
    """

    def __init__(self, optimization_level: str = "high", clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "stores": 0, "evictions": 0}
        self.set_optimization_level(optimization_level)

    def set_optimization_level(self, level: str) -> None:
        """
        Trade recall for API cost.

        Args:
            level: "high" (1h TTL, 70), "medium" (30min, 60) or "low" (15min, 50)
        """
        if level not in OPTIMIZATION_LEVELS:
            raise ValueError(f"Unknown optimization level: {level!r}")
        self.optimization_level = level
        self.ttl, self.min_confidence = OPTIMIZATION_LEVELS[level]
        logger.info(f"Thread cache level={level} ttl={self.ttl}s min_confidence={self.min_confidence}")

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.computed_at < self.ttl

    def get(self, key: str) -> Optional[AnalysisResult]:
        """Cached result marked used_cache=True, or None when absent/expired."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or not self._is_fresh(entry, now):
                if entry is not None:
                    del self._entries[key]
                    self._stats["evictions"] += 1
                self._stats["misses"] += 1
                return None

            self._stats["hits"] += 1
            age_min = (now - entry.computed_at) / 60
            logger.debug(f"Thread cache HIT {key[:12]} ({age_min:.1f} min old)")
            return replace(entry.payload, used_cache=True)

    def put(self, key: str, result: AnalysisResult) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, payload=result, computed_at=self._clock())
            self._stats["stores"] += 1

    def evict_expired(self) -> int:
        """
        Drop entries older than the TTL.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
            for k in stale:
                del self._entries[k]
            self._stats["evictions"] += len(stale)

        if stale:
            logger.info(f"Evicted {len(stale)} expired thread analyses")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> Dict:
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            return {
                **self._stats,
                "size": len(self._entries),
                "hit_rate": self._stats["hits"] / total if total else 0.0,
                "optimization_level": self.optimization_level,
                "ttl_seconds": self.ttl,
                "min_confidence": self.min_confidence,
            }
