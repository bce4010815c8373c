"""
Shared fixtures for Mentorly service tests.
"""

import time
from typing import Any, Dict, Optional

import pytest
from jose import jwt

from shared.metrics import MetricsCollector
from service_mentorly.app.ratelimit import FileCounterStore, FixedWindowRateLimiter
from service_mentorly.app.security import (
    GateRequest,
    RequestGate,
    SecurityEventLogger,
    TokenVerifier,
)

TEST_SECRET = "test-secret"
ALLOWED_ORIGIN = "http://localhost:8080"
FIXED_NOW = 1_700_000_000


def make_token(
    claims: Optional[Dict[str, Any]] = None,
    *,
    secret: str = TEST_SECRET,
    expires_in: Optional[int] = 3600,
) -> str:
    """Encode an HS256 token; ``expires_in`` may be negative for expired tokens."""
    payload = dict(claims or {"sub": "user-1"})
    if expires_in is not None:
        payload["exp"] = int(time.time()) + expires_in
    return jwt.encode(payload, secret, algorithm="HS256")


class FixedClock:
    """Settable clock for window arithmetic."""

    def __init__(self, now: float = FIXED_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def metrics():
    return MetricsCollector("mentorly")


@pytest.fixture
def verifier():
    return TokenVerifier(TEST_SECRET)


@pytest.fixture
def file_store(tmp_path, clock):
    return FileCounterStore(tmp_path, clock=clock)


@pytest.fixture
def event_logger(tmp_path):
    return SecurityEventLogger(tmp_path / "security.log")


@pytest.fixture
def gate_factory(file_store, verifier, event_logger, metrics, clock):
    """Build a ``RequestGate`` over the file store with overridable options."""

    def _factory(**kwargs) -> RequestGate:
        options = {
            "allowed_origins": [ALLOWED_ORIGIN],
            "event_logger": event_logger,
            "metrics": metrics,
        }
        options.update(kwargs)
        limiter = FixedWindowRateLimiter(options.pop("store", file_store), metrics=metrics, clock=clock)
        return RequestGate(limiter, verifier, **options)

    return _factory


@pytest.fixture
def gate(gate_factory):
    return gate_factory()


def gate_request(method: str = "GET", path: str = "/api/mentor/status", **kwargs) -> GateRequest:
    kwargs.setdefault("client_host", "203.0.113.7")
    return GateRequest(method=method, path=path, **kwargs)
