"""
Fixed-window rate limiting for API routes.

State lives in the limiter instance, so each limiter is constructed once and
handed to the routes that share its budget.
"""
from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self, now: Optional[float] = None) -> Dict[str, str]:
        now = time.time() if now is None else now
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
            "Retry-After": str(max(0, int(self.reset_at - now + 0.999))),
        }


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Allows ``max_requests`` per client key per ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def check(self, client_key: str) -> RateLimitDecision:
        now = self._clock()

        # Expired windows are swept occasionally rather than on every call
        if random.random() < 0.1:
            self._cleanup(now)

        window = self._windows.get(client_key)
        if window is None or window.reset_at <= now:
            window = _Window(count=1, reset_at=now + self.window_seconds)
            self._windows[client_key] = window
            return RateLimitDecision(True, self.max_requests, self.max_requests - 1, window.reset_at)

        if window.count >= self.max_requests:
            return RateLimitDecision(False, self.max_requests, 0, window.reset_at)

        window.count += 1
        return RateLimitDecision(True, self.max_requests, self.max_requests - window.count, window.reset_at)

    def _cleanup(self, now: float) -> None:
        for key in [k for k, w in self._windows.items() if w.reset_at <= now]:
            del self._windows[key]

    def reset(self) -> None:
        self._windows.clear()


def client_key_from_headers(headers, client_host: Optional[str] = None) -> str:
    """
    Identify the caller: bearer token first, then the first forwarded address,
    then the socket peer.
    """
    authorization = headers.get("authorization") or ""
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    return client_host or "unknown"
