"""
Fixed-window rate limiter for the request gate.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .policies import RateLimitPolicy, select_policy
from .stores import CounterStore

RATE_LIMIT_ERROR = "Rate limit exceeded"
RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single rate limit check."""

    allowed: bool
    key: str
    policy: RateLimitPolicy
    count: int
    reset_at: int
    error: Optional[str] = None

    @property
    def limit(self) -> int:
        return self.policy.max_requests

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def retry_after(self) -> int:
        return self.policy.window_seconds

    def headers(self) -> Dict[str, str]:
        """Headers advertised on admitted requests."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }

    def rejection_body(self) -> Dict[str, object]:
        return {
            "error": RATE_LIMIT_ERROR,
            "message": RATE_LIMIT_MESSAGE,
            "retry_after": self.retry_after,
        }


class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows via an injected counter store.

    Windows start at a key's first request and do not slide, so a client may
    burst up to twice the limit across a window boundary.
    """

    def __init__(
        self,
        store: CounterStore,
        *,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("mentorly.rate_limiter")

    async def check(self, identifier: str, path: str) -> RateLimitResult:
        """Record one request for ``identifier`` under the policy for ``path``."""
        return await self.check_policy(identifier, select_policy(path))

    async def check_policy(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        key = policy.key_for(identifier)
        now = int(self.clock())

        try:
            state = await self.store.increment(key, policy.window_seconds, policy.max_requests)
        except Exception as e:
            # Fail open: a broken store must not take the API down.
            self.logger.error("Rate limit check error", key=key, error=str(e))
            return RateLimitResult(
                allowed=True,
                key=key,
                policy=policy,
                count=0,
                reset_at=now + policy.window_seconds,
                error=str(e),
            )

        result = RateLimitResult(
            allowed=state.count <= policy.max_requests,
            key=key,
            policy=policy,
            count=state.count,
            reset_at=now + state.ttl,
        )

        if not result.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                key=key,
                policy=policy.name,
                current_count=state.count,
                limit=policy.max_requests,
            )
            if self.metrics:
                self.metrics.increment_counter("rate_limit_rejections_total", policy=policy.name)

        return result
