"""Counters for the planning pipeline.

The planner never keeps counters of its own; it reports to whichever
collector it was given. NullMetrics discards everything.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Protocol

REQUESTS_TOTAL = "requests_total"
INVALID_REQUESTS = "invalid_requests"
MODEL_CALLS = "model_calls"
RETRY_ATTEMPTS = "retry_attempts"
MODEL_UNAVAILABLE = "model_unavailable"
MALFORMED_PAYLOAD = "malformed_payload"
SCHEMA_VIOLATIONS = "schema_violations"
HEURISTIC_REPAIRS = "heuristic_repairs"
FALLBACKS = "fallbacks"
MODEL_RESULTS = "model_results"


class MetricsCollector(Protocol):
    def increment(self, name: str, value: int = 1) -> None:
        ...


class NullMetrics:
    def increment(self, name: str, value: int = 1) -> None:
        pass


class InMemoryMetrics:
    """Thread-safe counters, shared by concurrent planning requests."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counts[name] += value

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> dict:
        with self._lock:
            counts = dict(self._counts)
        total = counts.get(REQUESTS_TOTAL, 0)

        def rate(name: str) -> str:
            return f"{counts.get(name, 0) / total * 100:.2f}%" if total else "0%"

        return {
            **counts,
            "model_success_rate": rate(MODEL_RESULTS),
            "fallback_rate": rate(FALLBACKS),
            "malformed_payload_rate": rate(MALFORMED_PAYLOAD),
        }
