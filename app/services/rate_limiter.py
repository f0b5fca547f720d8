"""
In-memory fixed-window rate limiter.

Each identifier (user id or client IP) gets a counter that resets when its
window expires. Concurrent requests may race on a counter; the worst case
is one extra request admitted per window, which is acceptable here.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable, Dict, Optional

from starlette.requests import Request

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class RateLimitConfig:
    limit: int
    interval: float  # seconds


@dataclasses.dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float  # epoch seconds when the window ends

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset)),
        }


@dataclasses.dataclass
class _Window:
    count: int
    reset: float


class RateLimiter:
    """Fixed-window counters keyed by identifier."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def check(self, identifier: str, limit: int, interval: float) -> RateLimitResult:
        """Count one request for *identifier* and report whether it is allowed."""
        now = self._clock()
        self._cleanup(now)

        window = self._windows.get(identifier)
        if window is None or now >= window.reset:
            window = _Window(count=1, reset=now + interval)
            self._windows[identifier] = window
            return RateLimitResult(True, limit, max(0, limit - 1), window.reset)

        if window.count >= limit:
            return RateLimitResult(False, limit, 0, window.reset)

        window.count += 1
        return RateLimitResult(True, limit, max(0, limit - window.count), window.reset)

    def reset(self, identifier: Optional[str] = None) -> None:
        if identifier is None:
            self._windows.clear()
        else:
            self._windows.pop(identifier, None)

    def _cleanup(self, now: float) -> None:
        expired = [key for key, w in self._windows.items() if now >= w.reset]
        for key in expired:
            del self._windows[key]

    def __len__(self) -> int:
        return len(self._windows)


def get_rate_limit_config(path: str, interval: float = 60.0) -> RateLimitConfig:
    """Per-endpoint limits: expensive LLM routes are the tightest."""
    p = path.lower()
    if "evaluate" in p:
        return RateLimitConfig(limit=20, interval=interval)
    if "generate" in p or "notes" in p:
        return RateLimitConfig(limit=10, interval=interval)
    if "upload" in p or "documents" in p:
        return RateLimitConfig(limit=30, interval=interval)
    return RateLimitConfig(limit=100, interval=interval)


def get_rate_limit_identifier(request: Request) -> str:
    """Authenticated user id, else first forwarded IP, else the peer address."""
    user_id = request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return f"ip:{first}"

    if request.client and request.client.host:
        return f"ip:{request.client.host}"
    return "unknown"


# Process-wide limiter used by the HTTP middleware
rate_limiter = RateLimiter()
