"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class MetricSnapshot:
    total_responses: int
    outcomes: Dict[str, int]
    tool_calls: Dict[str, int]
    step_limit_hits: int


class MetricsCollector:
    """Thread-safe counter storage for basic service metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_responses = 0
        self._outcomes: Counter[str] = Counter()
        self._tool_calls: Counter[str] = Counter()
        self._step_limit_hits = 0

    def record_response(self, kind: str) -> None:
        with self._lock:
            self._total_responses += 1
            self._outcomes[kind] += 1

    def record_tool_call(self, name: str) -> None:
        with self._lock:
            self._tool_calls[name] += 1

    def record_step_limit(self) -> None:
        with self._lock:
            self._step_limit_hits += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_responses=self._total_responses,
                outcomes=dict(self._outcomes),
                tool_calls=dict(self._tool_calls),
                step_limit_hits=self._step_limit_hits,
            )
