"""
Request de-duplication.

Concurrent lookups for the same key share one in-flight task. Every waiter gets
the same result, and if the task fails every waiter sees the same exception.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from src.seller_radar.pipeline.metrics import MetricsRegistry

T = TypeVar("T")

MAX_PENDING_AGE_SECONDS = 5 * 60


class RequestDeduplicator:
    """Collapses identical concurrent requests into one awaitable."""

    def __init__(
        self,
        metrics: Optional[MetricsRegistry] = None,
        max_pending_age: float = MAX_PENDING_AGE_SECONDS,
    ):
        self._pending: Dict[str, Tuple[asyncio.Task, float]] = {}
        self._metrics = metrics
        self._max_pending_age = max_pending_age

    async def dedupe(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``factory`` once per key while a call for that key is in flight.

        Args:
            key: Cache key identifying the request.
            factory: Zero-argument coroutine factory.
        """
        self._cleanup_stale()

        existing = self._pending.get(key)
        if existing is not None:
            if self._metrics is not None:
                self._metrics.increment_counter("dedup.hit", {"key": key})
            return await asyncio.shield(existing[0])

        task = asyncio.ensure_future(factory())
        self._pending[key] = (task, time.monotonic())
        task.add_done_callback(lambda _t, k=key: self._forget(k, _t))
        if self._metrics is not None:
            self._metrics.increment_counter("dedup.miss", {"key": key})
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        current = self._pending.get(key)
        if current is not None and current[0] is task:
            del self._pending[key]

    def _cleanup_stale(self) -> None:
        now = time.monotonic()
        stale = [k for k, (_, started) in self._pending.items() if now - started > self._max_pending_age]
        for key in stale:
            del self._pending[key]

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        self._pending.clear()


def make_dedup_key(prefix: str, **parts: Any) -> str:
    """Deterministic key from keyword parts; ``None`` values are skipped."""
    body = "|".join(f"{k}={parts[k]}" for k in sorted(parts) if parts[k] is not None)
    return f"{prefix}:{body}"
