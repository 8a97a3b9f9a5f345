from __future__ import annotations

from collections import Counter, defaultdict
from threading import Lock
from typing import Dict


class MetricsTracker:
    """Thread-safe counters of answered questions by intent and answer source."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._per_intent: Dict[str, Counter] = defaultdict(Counter)
        self._per_source: Counter = Counter()

    def record(self, intent: str, source: str) -> None:
        intent_key = intent.strip().upper()
        source_key = source.strip().lower()
        with self._lock:
            counts = self._per_intent[intent_key]
            counts["total"] += 1
            counts[f"source:{source_key}"] += 1
            self._per_source[source_key] += 1

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "grand_total": sum(self._per_source.values()),
                "per_intent": {intent: dict(counts) for intent, counts in self._per_intent.items()},
                "per_source": dict(self._per_source),
            }

    def reset(self) -> None:
        with self._lock:
            self._per_intent.clear()
            self._per_source.clear()
