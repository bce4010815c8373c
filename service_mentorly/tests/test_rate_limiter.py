"""
Unit tests for the fixed-window rate limiter.
"""

from unittest.mock import AsyncMock

import pytest

from service_mentorly.app.ratelimit import (
    DEFAULT_POLICY,
    LOGIN_POLICY,
    FixedWindowRateLimiter,
    WindowState,
    select_policy,
)

from conftest import FIXED_NOW


class TestSelectPolicy:
    """Test cases for policy selection."""

    @pytest.mark.parametrize("path", ["/api/mentor/login", "/api/auth/token", "/login", "/auth"])
    def test_login_paths(self, path):
        assert select_policy(path) is LOGIN_POLICY

    @pytest.mark.parametrize("path", ["/api/mentor/status", "/", "/health", "/api/csrf-token"])
    def test_default_paths(self, path):
        assert select_policy(path) is DEFAULT_POLICY

    def test_policy_values(self):
        assert (DEFAULT_POLICY.max_requests, DEFAULT_POLICY.window_seconds) == (100, 60)
        assert (LOGIN_POLICY.max_requests, LOGIN_POLICY.window_seconds) == (5, 900)
        assert LOGIN_POLICY.key_for("ip:1.2.3.4") == "ip:1.2.3.4:login"
        assert DEFAULT_POLICY.key_for("ip:1.2.3.4") == "ip:1.2.3.4"


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def limiter(self, file_store, metrics, clock):
        return FixedWindowRateLimiter(file_store, metrics=metrics, clock=clock)

    @pytest.mark.asyncio
    async def test_admits_up_to_limit(self, limiter):
        results = [await limiter.check("ip:1.2.3.4", "/api/mentor/login") for _ in range(6)]

        assert [r.allowed for r in results] == [True] * 5 + [False]
        assert results[0].key == "ip:1.2.3.4:login"
        assert results[0].remaining == 4
        assert results[4].remaining == 0
        assert results[5].remaining == 0

    @pytest.mark.asyncio
    async def test_headers_and_rejection_body(self, limiter):
        result = await limiter.check("ip:1.2.3.4", "/api/mentor/status")

        assert result.headers() == {
            "X-RateLimit-Limit": "100",
            "X-RateLimit-Remaining": "99",
            "X-RateLimit-Reset": str(FIXED_NOW + 60),
        }
        assert result.rejection_body() == {
            "error": "Rate limit exceeded",
            "message": "Too many requests. Please try again later.",
            "retry_after": 60,
        }

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, limiter):
        for _ in range(5):
            await limiter.check("ip:1.1.1.1", "/login")

        assert (await limiter.check("ip:1.1.1.1", "/login")).allowed is False
        assert (await limiter.check("ip:2.2.2.2", "/login")).allowed is True
        assert (await limiter.check("ip:1.1.1.1", "/api/mentor/status")).allowed is True

    @pytest.mark.asyncio
    async def test_window_resets(self, limiter, clock):
        for _ in range(6):
            await limiter.check("ip:1.1.1.1", "/login")

        clock.advance(900)

        assert (await limiter.check("ip:1.1.1.1", "/login")).allowed is True

    @pytest.mark.asyncio
    async def test_rejection_is_counted(self, limiter, metrics):
        for _ in range(6):
            await limiter.check("ip:1.1.1.1", "/login")

        assert metrics.get_sample_value("rate_limit_rejections_total", {"policy": "login"}) == 1.0

    @pytest.mark.asyncio
    async def test_store_failure_fails_open(self, metrics, clock):
        store = AsyncMock()
        store.increment.side_effect = RuntimeError("disk full")
        limiter = FixedWindowRateLimiter(store, metrics=metrics, clock=clock)

        result = await limiter.check("ip:1.1.1.1", "/login")

        assert result.allowed is True
        assert result.error == "disk full"

    @pytest.mark.asyncio
    async def test_reset_uses_store_ttl(self, metrics, clock):
        store = AsyncMock()
        store.increment.return_value = WindowState(count=3, ttl=17)
        limiter = FixedWindowRateLimiter(store, metrics=metrics, clock=clock)

        result = await limiter.check("user:5", "/api/mentor/status")

        assert result.reset_at == FIXED_NOW + 17
        store.increment.assert_awaited_once_with("user:5", 60, 100)
