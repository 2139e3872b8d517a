"""In-process sliding-window rate limiting for public endpoints."""

import logging
import time
from threading import Lock
from typing import Callable

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Allow at most ``limit`` hits per key within any ``window_seconds`` span."""

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        if limit <= 0 or window_seconds <= 0:
            raise ValueError('limit and window_seconds must be positive.')
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._lock = Lock()
        self._last_cleanup = clock()

    def hit(self, key: str) -> tuple[bool, int]:
        """Record a hit for ``key``; returns (allowed, seconds until the oldest hit expires)."""
        now = self._clock()
        window_start = now - self.window_seconds

        with self._lock:
            self._cleanup(now, window_start)
            recent = [timestamp for timestamp in self._hits.get(key, []) if timestamp > window_start]

            if len(recent) >= self.limit:
                self._hits[key] = recent
                retry_after = int(recent[0] + self.window_seconds - now) + 1
                return False, retry_after

            recent.append(now)
            self._hits[key] = recent
            return True, 0

    def _cleanup(self, now: float, window_start: float) -> None:
        if now - self._last_cleanup < self.window_seconds:
            return
        stale_keys = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in stale_keys:
            del self._hits[key]
        self._last_cleanup = now


def get_client_identifier(request: Request) -> str:
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        first_hop = forwarded.split(',')[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else 'unknown'


def create_rate_limiter(limiter: SlidingWindowRateLimiter, key_prefix: str, detail: str):
    """Build a FastAPI dependency that answers 429 once a client exceeds ``limiter``."""

    async def rate_limiter(request: Request) -> None:
        client_id = get_client_identifier(request)
        allowed, retry_after = limiter.hit(f'{key_prefix}:{client_id}')
        if not allowed:
            logger.warning('Rate limit exceeded for %s from %s', key_prefix, client_id)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=detail,
                headers={'Retry-After': str(retry_after)},
            )

    return rate_limiter
