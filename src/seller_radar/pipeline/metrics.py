"""
In-memory pipeline metrics.

A bounded buffer of counters, timings and gauges. One registry is created at
process start and passed to the services that record into it.
"""
from __future__ import annotations

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterator, Optional

MAX_METRICS = 1000


@dataclass
class Metric:
    name: str
    value: float
    timestamp: float
    tags: Dict[str, str] = field(default_factory=dict)


class MetricsRegistry:
    """Keeps the most recent ``max_metrics`` data points."""

    def __init__(self, max_metrics: int = MAX_METRICS):
        self._metrics: Deque[Metric] = deque(maxlen=max_metrics)

    def record(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        self._metrics.append(Metric(name=name, value=value, timestamp=time.time(), tags=dict(tags or {})))

    def increment_counter(self, name: str, tags: Optional[Dict[str, str]] = None) -> None:
        self.record(name, 1, tags)

    def record_timing(self, name: str, duration_ms: float, tags: Optional[Dict[str, str]] = None) -> None:
        self.record(name, duration_ms, {**(tags or {}), "unit": "ms"})

    def record_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        self.record(name, value, {**(tags or {}), "type": "gauge"})

    @contextmanager
    def timer(self, name: str, tags: Optional[Dict[str, str]] = None) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(name, (time.perf_counter() - start) * 1000, tags)

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Count, total and average per metric name."""
        out: Dict[str, Dict[str, float]] = {}
        for metric in self._metrics:
            bucket = out.setdefault(metric.name, {"count": 0, "total": 0.0})
            bucket["count"] += 1
            bucket["total"] += metric.value
        for bucket in out.values():
            bucket["average"] = bucket["total"] / bucket["count"]
        return out

    def __len__(self) -> int:
        return len(self._metrics)

    def clear(self) -> None:
        self._metrics.clear()
