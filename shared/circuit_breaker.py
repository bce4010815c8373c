"""
Circuit breaker guarding calls to the shared counter store.

After ``failure_threshold`` consecutive failures the breaker opens and
rejects calls outright until ``recovery_timeout`` seconds have passed. The
next call is then let through as a probe: success closes the breaker, a
failure reopens it for another timeout.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenException(Exception):
    """Raised instead of calling through while the breaker is open."""


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "default",
        clock: Callable[[], float] = time.time,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self.logger = get_logger(f"mentorly.circuit_breaker.{name}")
        self._clock = clock

        self._state = CircuitBreakerState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._total_rejections = 0

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func(*args, **kwargs)`` unless the breaker is open."""
        if not self._allow_call():
            self._total_rejections += 1
            raise CircuitBreakerOpenException(f"Circuit breaker '{self.name}' is open")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _allow_call(self) -> bool:
        if self._state is not CircuitBreakerState.OPEN:
            return True
        if self._clock() - self._opened_at < self.recovery_timeout:
            return False
        self._transition(CircuitBreakerState.HALF_OPEN)
        return True

    def _on_success(self) -> None:
        self._consecutive_failures = 0
        if self._state is CircuitBreakerState.HALF_OPEN:
            self._transition(CircuitBreakerState.CLOSED)

    def _on_failure(self) -> None:
        self._consecutive_failures += 1
        probe_failed = self._state is CircuitBreakerState.HALF_OPEN
        if probe_failed or self._consecutive_failures >= self.failure_threshold:
            self._opened_at = self._clock()
            self._transition(CircuitBreakerState.OPEN)

    def _transition(self, new_state: CircuitBreakerState) -> None:
        if new_state is self._state:
            return
        log = self.logger.warning if new_state is CircuitBreakerState.OPEN else self.logger.info
        log(
            "Circuit breaker state change",
            previous=self._state.value,
            state=new_state.value,
            consecutive_failures=self._consecutive_failures,
        )
        self._state = new_state

    def get_state(self) -> Dict[str, Any]:
        """Snapshot for health reporting."""
        return {
            "name": self.name,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
            "rejected_calls": self._total_rejections,
        }

    def is_open(self) -> bool:
        return self._state is CircuitBreakerState.OPEN
