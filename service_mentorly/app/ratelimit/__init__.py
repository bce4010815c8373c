"""
Rate limiting package for the Mentorly service.

Holds the fixed-window limiter, its policies, and the counter stores
(Redis, file fallback, and failover) that back it.
"""

from .fixed_window import FixedWindowRateLimiter, RateLimitResult
from .policies import DEFAULT_POLICY, LOGIN_POLICY, RateLimitPolicy, select_policy
from .stores import (
    CounterStore,
    FailoverCounterStore,
    FileCounterStore,
    RedisCounterStore,
    WindowState,
    build_counter_store,
)

__all__ = [
    "CounterStore",
    "DEFAULT_POLICY",
    "FailoverCounterStore",
    "FileCounterStore",
    "FixedWindowRateLimiter",
    "LOGIN_POLICY",
    "RateLimitPolicy",
    "RateLimitResult",
    "RedisCounterStore",
    "WindowState",
    "build_counter_store",
    "select_policy",
]
