"""
Attempt rate limiting with a pluggable counter store
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

from fastapi import Depends, Request

from app.config import get_settings
from app.core.exceptions import RateLimited

logger = logging.getLogger(__name__)


class RateLimitStore(ABC):
    """Counter storage behind the rate limiter."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """
        Count one attempt for a key in the current fixed window.

        Returns:
            Tuple of (attempts in the window, seconds until the window resets)
        """

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all attempts for a key."""


class InMemoryRateLimitStore(RateLimitStore):
    """Per-process store, suitable for a single instance deployment."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        now = self._clock()
        async with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)

            # Drop stale windows so the map does not grow without bound
            if len(self._windows) > 10000:
                self._windows = {
                    k: v for k, v in self._windows.items() if now - v[0] < window_seconds
                }

        return count, window_seconds - (now - started)

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._windows.pop(key, None)


class RateLimiter:
    """Fixed-window limiter: at most max_attempts per key per window."""

    def __init__(self, store: RateLimitStore, max_attempts: int, window_seconds: int):
        self.store = store
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds

    async def check(self, key: str) -> None:
        """
        Record an attempt and reject it if the key is over its budget.

        Raises:
            RateLimited: If the attempt exceeds the limit
        """
        count, retry_after = await self.store.hit(key, self.window_seconds)
        if count > self.max_attempts:
            logger.warning(f"Rate limit exceeded for {key} ({count} attempts)")
            raise RateLimited(
                "Too many login attempts. Please try again later.",
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))}
            )


# Global rate limiter instance
_oauth_rate_limiter: Optional[RateLimiter] = None


def get_oauth_rate_limiter() -> RateLimiter:
    """
    Get the OAuth initiation rate limiter (singleton pattern).

    Returns:
        RateLimiter: Limiter configured from settings
    """
    global _oauth_rate_limiter
    if _oauth_rate_limiter is None:
        settings = get_settings()
        _oauth_rate_limiter = RateLimiter(
            InMemoryRateLimitStore(),
            max_attempts=settings.oauth_rate_limit_attempts,
            window_seconds=settings.oauth_rate_limit_window_seconds
        )
    return _oauth_rate_limiter


def client_ip(request: Request) -> str:
    """
    Address used as the rate limit key.

    X-Forwarded-For is only read when trust_proxy_headers is set, and then
    only its last entry, which the proxy itself appended. Earlier entries
    are whatever the client sent.
    """
    if get_settings().trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
            if hops:
                return hops[-1]
    return request.client.host if request.client else "unknown"


async def limit_oauth_attempts(
    request: Request,
    limiter: RateLimiter = Depends(get_oauth_rate_limiter)
) -> None:
    """
    Dependency limiting OAuth initiations per client IP.

    Raises:
        RateLimited: If the client is over its budget
    """
    await limiter.check(f"oauth:{client_ip(request)}")
