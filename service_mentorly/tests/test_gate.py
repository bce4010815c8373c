"""
Unit tests for the request gate.
"""

import json
from unittest.mock import AsyncMock

import pytest

from service_mentorly.app.security.gate import CSRF_ERROR, GateRequest

from conftest import ALLOWED_ORIGIN, make_token, gate_request

SESSION_TOKEN = "a" * 64


def csrf_post(path: str = "/api/mentor/status", **kwargs) -> GateRequest:
    """POST carrying a matching session CSRF token in the header."""
    headers = kwargs.pop("headers", {})
    headers.setdefault("X-CSRF-Token", SESSION_TOKEN)
    return gate_request("POST", path, headers=headers, session_csrf_token=SESSION_TOKEN, **kwargs)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestPreflightAndHeaders:
    """Test cases for header handling and CORS preflight."""

    @pytest.mark.asyncio
    async def test_options_short_circuits(self, gate_factory):
        store = AsyncMock()
        gate = gate_factory(store=store)

        decision = await gate.evaluate(gate_request("OPTIONS", "/api/anything", headers={"Origin": ALLOWED_ORIGIN}))

        assert decision.status_code == 204
        assert decision.body is None
        assert decision.headers["Access-Control-Allow-Origin"] == ALLOWED_ORIGIN
        assert decision.headers["X-Frame-Options"] == "DENY"
        store.increment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_options_without_csrf_token_is_not_rejected(self, gate):
        decision = await gate.evaluate(gate_request("OPTIONS", "/api/mentor/login"))

        assert decision.status_code == 204

    @pytest.mark.asyncio
    async def test_unlisted_origin_gets_no_cors_headers(self, gate):
        decision = await gate.evaluate(gate_request(headers={"Origin": "https://evil.example"}))

        assert decision.allowed is True
        assert not any(name.startswith("Access-Control-") for name in decision.headers)

    @pytest.mark.asyncio
    async def test_allowed_request_carries_rate_headers(self, gate):
        decision = await gate.evaluate(gate_request())

        assert decision.allowed is True
        assert decision.headers["X-RateLimit-Limit"] == "100"
        assert decision.headers["X-RateLimit-Remaining"] == "99"
        assert decision.headers["Cache-Control"].startswith("no-store")

    @pytest.mark.asyncio
    async def test_hsts_flag(self, gate_factory):
        decision = await gate_factory(enable_hsts=True).evaluate(gate_request())

        assert "Strict-Transport-Security" in decision.headers


class TestRateLimiting:
    """Test cases for rate limiting through the gate."""

    @pytest.mark.asyncio
    async def test_sixth_login_attempt_is_rejected(self, gate, tmp_path):
        decisions = [await gate.evaluate(csrf_post("/api/auth/login")) for _ in range(6)]

        assert all(d.allowed for d in decisions[:5])
        rejected = decisions[5]
        assert rejected.status_code == 429
        assert rejected.body["retry_after"] == 900
        assert rejected.body["error"] == "Rate limit exceeded"
        assert rejected.headers["Retry-After"] == "900"
        assert rejected.identifier == "ip:203.0.113.7"

        events = [json.loads(line) for line in (tmp_path / "security.log").read_text().splitlines()]
        assert [e["event"] for e in events] == ["rate_limit_exceeded"]
        assert events[0]["details"]["key"] == "ip:203.0.113.7:login"

    @pytest.mark.asyncio
    async def test_rate_limit_runs_before_csrf(self, gate):
        for _ in range(5):
            await gate.evaluate(csrf_post("/login"))

        decision = await gate.evaluate(gate_request("POST", "/login"))

        assert decision.status_code == 429

    @pytest.mark.asyncio
    async def test_forwarded_ip_is_the_bucket(self, gate):
        decision = await gate.evaluate(gate_request(headers={"X-Forwarded-For": "198.51.100.9, 10.0.0.1"}))

        assert decision.identifier == "ip:198.51.100.9"

    @pytest.mark.asyncio
    async def test_valid_token_subject_is_the_bucket(self, gate):
        decision = await gate.evaluate(gate_request(headers=bearer(make_token({"sub": 42}))))

        assert decision.identifier == "user:42"
        assert decision.token.valid is True


class TestTokenHandling:
    """Test cases for bearer tokens at the gate."""

    @pytest.mark.asyncio
    async def test_garbage_token_needs_csrf_and_uses_ip(self, gate):
        decision = await gate.evaluate(gate_request("POST", headers=bearer("header.payload.badsig")))

        assert decision.status_code == 403
        assert decision.body == {"error": CSRF_ERROR}
        assert decision.identifier == "ip:203.0.113.7"

    @pytest.mark.asyncio
    async def test_forged_token_needs_csrf(self, gate):
        forged = make_token({"sub": "victim"}, secret="attacker")

        decision = await gate.evaluate(gate_request("POST", headers=bearer(forged)))

        assert decision.status_code == 403

    @pytest.mark.asyncio
    async def test_forged_subject_is_trusted_for_bucketing_by_default(self, gate):
        forged = make_token({"sub": "victim"}, secret="attacker")

        decision = await gate.evaluate(gate_request(headers=bearer(forged)))

        assert decision.identifier == "user:victim"

    @pytest.mark.asyncio
    async def test_forged_subject_ignored_when_trust_disabled(self, gate_factory):
        gate = gate_factory(trust_unverified_subject=False)
        forged = make_token({"sub": "victim"}, secret="attacker")

        decision = await gate.evaluate(gate_request(headers=bearer(forged)))

        assert decision.identifier == "ip:203.0.113.7"

    @pytest.mark.asyncio
    async def test_valid_token_bypasses_csrf(self, gate):
        decision = await gate.evaluate(gate_request("POST", headers=bearer(make_token({"sub": "42"}))))

        assert decision.allowed is True
        assert decision.identifier == "user:42"

    @pytest.mark.asyncio
    async def test_valid_token_bypasses_csrf_even_with_wrong_csrf_token(self, gate):
        headers = bearer(make_token({"sub": "42"}))
        headers["X-CSRF-Token"] = "wrong"

        decision = await gate.evaluate(gate_request("POST", headers=headers, session_csrf_token=SESSION_TOKEN))

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_expired_token_loses_csrf_exemption(self, gate):
        expired = make_token({"sub": "42"}, expires_in=-60)

        decision = await gate.evaluate(gate_request("POST", headers=bearer(expired)))

        assert decision.status_code == 403
        assert decision.token.status.value == "expired"

    @pytest.mark.asyncio
    async def test_token_metrics(self, gate, metrics):
        await gate.evaluate(gate_request(headers=bearer(make_token())))
        await gate.evaluate(gate_request(headers=bearer("a.b")))
        await gate.evaluate(gate_request())

        assert metrics.get_sample_value("token_verifications_total", {"status": "valid"}) == 1.0
        assert metrics.get_sample_value("token_verifications_total", {"status": "malformed"}) == 1.0
        assert metrics.get_sample_value("token_verifications_total", {"status": "missing"}) is None


class TestCsrf:
    """Test cases for CSRF enforcement at the gate."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH"])
    async def test_state_changing_without_token_is_rejected(self, gate, tmp_path, method):
        decision = await gate.evaluate(gate_request(method, session_csrf_token=SESSION_TOKEN))

        assert decision.status_code == 403
        event = json.loads((tmp_path / "security.log").read_text().splitlines()[-1])
        assert event["event"] == "csrf_validation_failed"
        assert event["details"]["method"] == method

    @pytest.mark.asyncio
    async def test_header_token_accepted(self, gate):
        decision = await gate.evaluate(csrf_post())

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_form_field_token_accepted(self, gate):
        request = gate_request(
            "POST",
            body={"csrf_token": SESSION_TOKEN, "email": "a@b.c"},
            session_csrf_token=SESSION_TOKEN,
        )

        decision = await gate.evaluate(request)

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_mismatched_token_rejected(self, gate):
        decision = await gate.evaluate(csrf_post(headers={"X-CSRF-Token": "b" * 64}))

        assert decision.status_code == 403

    @pytest.mark.asyncio
    async def test_no_session_token_rejected(self, gate):
        request = gate_request("POST", headers={"X-CSRF-Token": SESSION_TOKEN})

        decision = await gate.evaluate(request)

        assert decision.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "HEAD"])
    async def test_safe_methods_need_no_token(self, gate, method):
        decision = await gate.evaluate(gate_request(method))

        assert decision.allowed is True


class TestSanitization:
    """Test cases for parameter sanitization."""

    @pytest.mark.asyncio
    async def test_parameters_are_sanitized(self, gate):
        request = csrf_post(
            query={"q": " term\x00 "},
            body={"email": "  mentor@example.com\x00", "bio": "<b>hi</b>"},
            cookies={"pref": " dark "},
        )

        decision = await gate.evaluate(request)

        assert decision.allowed is True
        assert request.query == {"q": "term"}
        assert request.body == {"email": "mentor@example.com", "bio": "<b>hi</b>"}
        assert request.cookies == {"pref": "dark"}

    @pytest.mark.asyncio
    async def test_rejected_requests_are_not_sanitized(self, gate):
        request = gate_request("POST", body={"email": " x "})

        await gate.evaluate(request)

        assert request.body == {"email": " x "}

    @pytest.mark.asyncio
    async def test_decisions_are_counted(self, gate, metrics):
        await gate.evaluate(gate_request())
        await gate.evaluate(gate_request("OPTIONS"))
        await gate.evaluate(gate_request("POST"))

        for outcome in ("allowed", "preflight", "csrf_rejected"):
            assert metrics.get_sample_value("gate_decisions_total", {"outcome": outcome}) == 1.0
