"""
Counter stores backing the fixed-window rate limiter.

``RedisCounterStore`` is the preferred, atomic backend. ``FileCounterStore``
is the degraded fallback: it keeps a JSON list of request timestamps per key
and is NOT safe under concurrent access to the same key, because the
read-modify-write of the list is not isolated. Two callers can read the same
stale list and both be admitted near the limit. ``FailoverCounterStore``
routes to the fallback whenever the primary errors or its circuit is open.
"""

import asyncio
import hashlib
import json
import math
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Union

import redis.asyncio as redis

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.config import BaseConfig
from shared.logging import get_logger
from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class WindowState:
    """Counter state after recording one request.

    ``count`` includes the current request; ``ttl`` is the number of seconds
    until the window resets.
    """

    count: int
    ttl: int


class CounterStore(Protocol):
    async def increment(self, key: str, window: int, limit: int) -> WindowState:
        ...


class RedisCounterStore:
    """Distributed fixed-window counter using INCR and EXPIRE."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 6379,
        *,
        timeout: float = 0.5,
        client: Optional[redis.Redis] = None,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.logger = get_logger("mentorly.counter_store.redis")
        self._redis: Optional[redis.Redis] = client

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.Redis(
                host=self.host,
                port=self.port,
                socket_timeout=self.timeout,
                socket_connect_timeout=self.timeout,
            )
        return self._redis

    async def increment(self, key: str, window: int, limit: int) -> WindowState:
        redis_client = await self._get_redis()

        count = int(await redis_client.incr(key))
        if count == 1:
            await redis_client.expire(key, window)

        ttl = await redis_client.ttl(key)
        if ttl is None or ttl < 0:
            # Key lost its expiry (e.g. EXPIRE failed after INCR); restart the window.
            await redis_client.expire(key, window)
            ttl = window

        return WindowState(count=count, ttl=int(ttl))

    async def ping(self) -> bool:
        redis_client = await self._get_redis()
        return bool(await redis_client.ping())

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class FileCounterStore:
    """Timestamp-log counter persisted as one JSON file per key."""

    def __init__(
        self,
        directory: Optional[Union[str, Path]] = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self.clock = clock
        self.logger = get_logger("mentorly.counter_store.file")

    def path_for(self, key: str) -> Path:
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()
        return self.directory / f"rate_limit_{digest}.json"

    async def increment(self, key: str, window: int, limit: int) -> WindowState:
        return await asyncio.to_thread(self.increment_sync, key, window, limit)

    def increment_sync(self, key: str, window: int, limit: int) -> WindowState:
        now = int(self.clock())
        path = self.path_for(key)
        timestamps = self.prune(self.load(path), now, window)
        return self.record(path, timestamps, now, window, limit)

    def load(self, path: Path) -> List[int]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except ValueError:
            self.logger.warning("Discarding unreadable rate limit file", path=str(path))
            return []
        if not isinstance(data, list):
            return []
        return [int(ts) for ts in data if isinstance(ts, (int, float)) and math.isfinite(ts)]

    @staticmethod
    def prune(timestamps: List[int], now: int, window: int) -> List[int]:
        return [ts for ts in timestamps if now - ts < window]

    def record(self, path: Path, timestamps: List[int], now: int, window: int, limit: int) -> WindowState:
        """Admit and persist the current request unless the log is full."""
        count = len(timestamps) + 1
        if len(timestamps) < limit:
            timestamps = timestamps + [now]
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(timestamps), encoding="utf-8")

        oldest = min(timestamps) if timestamps else now
        ttl = max(0, window - (now - oldest))
        return WindowState(count=count, ttl=ttl)


class FailoverCounterStore:
    """Primary store guarded by a circuit breaker, with a fallback store."""

    def __init__(
        self,
        primary: CounterStore,
        fallback: CounterStore,
        *,
        breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=30.0, name="counter_store")
        self.metrics = metrics
        self.logger = get_logger("mentorly.counter_store")

    async def increment(self, key: str, window: int, limit: int) -> WindowState:
        try:
            return await self.breaker.call(self.primary.increment, key, window, limit)
        except Exception as e:
            reason = "circuit_open" if isinstance(e, CircuitBreakerOpenException) else "error"
            self.logger.error(
                "Counter store unavailable, using fallback",
                key=key,
                reason=reason,
                error=str(e),
            )
            if self.metrics:
                self.metrics.increment_counter("counter_store_fallbacks_total", reason=reason)
            return await self.fallback.increment(key, window, limit)

    async def close(self) -> None:
        close = getattr(self.primary, "close", None)
        if close is not None:
            await close()


def build_counter_store(config: BaseConfig, metrics: Optional[MetricsCollector] = None) -> CounterStore:
    """Select the counter store strategy from configuration."""
    file_store = FileCounterStore(config.rate_limit_dir)
    if not config.redis_enabled:
        return file_store

    redis_store = RedisCounterStore(
        config.redis_host,
        config.redis_port,
        timeout=config.redis_timeout_seconds,
    )
    return FailoverCounterStore(redis_store, file_store, metrics=metrics)
