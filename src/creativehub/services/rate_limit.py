"""Per-client request throttling using a sliding window.

This guards the auth and OTP endpoints against brute force from one address.
It is independent of the per-email resend cooldown enforced by the OTP flow.
"""

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum

from fastapi import Request

logger = logging.getLogger(__name__)


class RateLimitType(str, Enum):
    """Endpoint categories with their own budgets."""

    AUTH = "auth"
    OTP = "otp"


@dataclass
class RateLimitConfig:
    requests: int
    window_seconds: int


RATE_LIMIT_CONFIG: dict[RateLimitType, RateLimitConfig] = {
    RateLimitType.AUTH: RateLimitConfig(requests=10, window_seconds=60),
    RateLimitType.OTP: RateLimitConfig(requests=10, window_seconds=60),
}

# Checks between sweeps of idle keys
CLEANUP_EVERY = 1000


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp in seconds


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by ``<type>:<identifier>``.

    State lives in process memory, so limits are per instance. Keys whose
    window has fully elapsed are swept every ``cleanup_every`` checks.
    """

    def __init__(self, cleanup_every: int = CLEANUP_EVERY) -> None:
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._cleanup_every = cleanup_every
        self._checks = 0

    async def check(self, identifier: str, limit_type: RateLimitType) -> RateLimitResult:
        """Record a request for ``identifier`` unless its window is full."""
        config = RATE_LIMIT_CONFIG[limit_type]
        key = f"{limit_type.value}:{identifier}"
        now = time.time()
        window_start = now - config.window_seconds

        async with self._lock:
            self._checks += 1
            if self._checks >= self._cleanup_every:
                self._checks = 0
                self._evict_expired(now)

            timestamps = [t for t in self._requests[key] if t > window_start]

            if len(timestamps) >= config.requests:
                self._requests[key] = timestamps
                return RateLimitResult(
                    success=False,
                    limit=config.requests,
                    remaining=0,
                    reset=int(min(timestamps) + config.window_seconds),
                )

            timestamps.append(now)
            self._requests[key] = timestamps
            return RateLimitResult(
                success=True,
                limit=config.requests,
                remaining=config.requests - len(timestamps),
                reset=int(now + config.window_seconds),
            )

    def _evict_expired(self, now: float) -> int:
        """Drop timestamps outside each key's window; callers hold the lock."""
        removed = 0
        for key in list(self._requests):
            limit_type = RateLimitType(key.split(":", 1)[0])
            window_start = now - RATE_LIMIT_CONFIG[limit_type].window_seconds

            valid = [t for t in self._requests[key] if t > window_start]
            if valid:
                self._requests[key] = valid
            else:
                del self._requests[key]
                removed += 1
        return removed

    async def cleanup_old_entries(self) -> int:
        """Remove keys with no requests left in their window.

        Returns:
            Number of keys removed
        """
        async with self._lock:
            removed = self._evict_expired(time.time())
        if removed:
            logger.debug(f"Evicted {removed} idle rate limit keys")
        return removed

    def reset(self) -> None:
        """Forget all recorded requests. Useful for testing."""
        self._requests.clear()
        self._checks = 0


_rate_limiter = InMemoryRateLimiter()


def get_rate_limiter() -> InMemoryRateLimiter:
    return _rate_limiter


def get_client_ip(request: Request) -> str | None:
    """Client address, honouring the usual proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    if request.client:
        return request.client.host
    return None


async def check_rate_limit(request: Request, limit_type: RateLimitType) -> RateLimitResult:
    ip = get_client_ip(request) or "unknown"
    return await get_rate_limiter().check(f"ip:{ip}", limit_type)


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }
    if not result.success:
        headers["Retry-After"] = str(max(0, result.reset - int(time.time())))
    return headers
