"""Per-client throttle for the manual sweep trigger.

A manual sweep walks every open ticket, so the trigger endpoint gets a small
sliding-window budget per client address.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Deque

from fastapi import Request, Response

from sla_engine.core.config import settings
from sla_engine.core.exceptions import RateLimitExceeded


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class SlidingWindowLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._hits: dict[str, Deque[float]] = defaultdict(deque)
        self._clock = clock
        self._lock = Lock()

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateDecision:
        if limit <= 0:
            return RateDecision(True, 0)
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] >= window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return RateDecision(False, 0, max(1, int(hits[0] + window_seconds - now)))
            hits.append(now)
            return RateDecision(True, limit - len(hits))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_limiter = SlidingWindowLimiter()


def _client_key(request: Request, scope: str) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    address = forwarded.split(",")[0].strip() or (request.client.host if request.client else "unknown")
    return f"{scope}:{address}"


def rate_limit(scope: str = "trigger"):
    def _dependency(request: Request, response: Response) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        limit = settings.RATE_LIMIT_TRIGGER_MAX_REQUESTS
        window = settings.RATE_LIMIT_WINDOW_SECONDS
        decision = _limiter.hit(_client_key(request, scope), limit=limit, window_seconds=window)
        if not decision.allowed:
            raise RateLimitExceeded(retry_after=decision.retry_after, limit=limit, window_seconds=window)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)

    return _dependency
