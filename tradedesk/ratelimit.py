"""
In-process fixed-window request counter, keyed by route and client address.
"""
import logging
import threading
import time
from typing import Dict, Tuple

from fastapi import Request

from tradedesk.errors import RateLimited

logger = logging.getLogger("tradedesk.ratelimit")


class RateLimiter:
    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        # key -> (requests in window, window reset time)
        self._counters: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = 0.0

    def check(self, key: str) -> bool:
        """Count one request for `key`; False once the window's quota is used up."""
        now = time.monotonic()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            count, reset_at = self._counters.get(key, (0, 0.0))
            if reset_at <= now:
                self._counters[key] = (1, now + self.window_seconds)
                return True
            if count >= self.limit:
                return False
            self._counters[key] = (count + 1, reset_at)
            return True

    def _sweep(self, now: float):
        # caller holds the lock
        expired = [k for k, (_, reset_at) in self._counters.items() if reset_at <= now]
        for k in expired:
            del self._counters[k]
        self._next_sweep = now + self.window_seconds


def chat_rate_limit(request: Request):
    """Dependency for the message-send route."""
    limiter: RateLimiter = request.app.state.chat_limiter
    client = request.client.host if request.client else "unknown"
    if not limiter.check(f"{request.url.path}:{client}"):
        logger.warning("Rate limit hit on %s by %s", request.url.path, client)
        raise RateLimited()
