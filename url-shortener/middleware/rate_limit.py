"""Sliding window rate limiting per client address."""

import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from middleware.custom_logger import Audit, default_audit

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class SlidingWindowRateLimiter:
    """Tracks exact request timestamps in a rolling window.

    Clients idle for a whole window are forgotten, at most once per window.

    Args:
        limit: Maximum number of requests per window
        window: Time window in seconds
    """

    def __init__(self, limit: int, window: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window
        self.clock = clock
        self.requests: Dict[str, List[float]] = {}
        self.lock = threading.Lock()
        self._last_purge = clock()

    def _purge(self, cutoff: float) -> None:
        stale = [key for key, times in self.requests.items() if not times or times[-1] <= cutoff]
        for key in stale:
            del self.requests[key]

    def allow_request(self, key: str) -> bool:
        with self.lock:
            now = self.clock()
            cutoff = now - self.window
            if now - self._last_purge >= self.window:
                self._purge(cutoff)
                self._last_purge = now
            recent = [ts for ts in self.requests.get(key, []) if ts > cutoff]
            if len(recent) < self.limit:
                recent.append(now)
                self.requests[key] = recent
                return True
            self.requests[key] = recent
            return False

    def reset(self, key: str | None = None) -> None:
        with self.lock:
            if key is None:
                self.requests.clear()
            else:
                self.requests.pop(key, None)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, limiter: SlidingWindowRateLimiter,
                 exempt_paths: Iterable[str] = ("/health",), audit: Optional[Audit] = None):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = tuple(exempt_paths)
        self.audit = audit or default_audit

    async def dispatch(self, request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)
        client = getattr(request.client, "host", None) or "unknown"
        if not self.limiter.allow_request(client):
            self.audit.event("rate_limited", level="warn", client=client, path=request.url.path)
            return JSONResponse(status_code=429, content={"error": RATE_LIMIT_MESSAGE})
        return await call_next(request)
