"""
Request gate: the security pipeline run in front of every endpoint.

For each request the gate attaches security headers, answers CORS
preflights, enforces the rate limit, validates CSRF for state-changing
requests, and sanitizes the parameter maps. The first terminal condition
(204 preflight, 429, 403) ends the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector

from ..ratelimit import FixedWindowRateLimiter
from .client_ip import resolve_client_ip
from .csrf import FORM_FIELD, HEADER_NAME, requires_csrf, verify_csrf_token
from .events import SecurityEventLogger
from .headers import cors_headers, security_headers
from .sanitize import sanitize_mapping
from .tokens import TokenResult, TokenStatus, TokenVerifier, extract_bearer_token

CSRF_ERROR = "CSRF token validation failed"


@dataclass
class GateRequest:
    """Framework-independent view of an inbound request."""

    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    client_host: Optional[str] = None
    query: Dict[str, Any] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)
    cookies: Dict[str, Any] = field(default_factory=dict)
    session_csrf_token: Optional[str] = None

    def __post_init__(self):
        self.method = self.method.upper()
        self.headers = {name.lower(): value for name, value in self.headers.items()}

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def bearer_token(self) -> Optional[str]:
        return extract_bearer_token(self.headers)

    @property
    def submitted_csrf_token(self) -> Optional[str]:
        token = self.header(HEADER_NAME)
        if token is None:
            token = self.body.get(FORM_FIELD)
        return token


@dataclass
class GateDecision:
    """Headers to attach, plus the terminal response when the gate stops."""

    headers: Dict[str, str] = field(default_factory=dict)
    status_code: Optional[int] = None
    body: Optional[Dict[str, Any]] = None
    identifier: Optional[str] = None
    token: Optional[TokenResult] = None

    @property
    def allowed(self) -> bool:
        return self.status_code is None

    def terminate(self, status_code: int, body: Optional[Dict[str, Any]] = None) -> "GateDecision":
        self.status_code = status_code
        self.body = body
        return self


class RequestGate:
    """Runs the security pipeline for one request at a time.

    The gate holds no per-request state; the counter store behind the rate
    limiter is the only thing shared between requests.
    """

    def __init__(
        self,
        rate_limiter: FixedWindowRateLimiter,
        token_verifier: TokenVerifier,
        *,
        allowed_origins: Iterable[str] = (),
        enable_hsts: bool = False,
        trust_unverified_subject: bool = True,
        event_logger: Optional[SecurityEventLogger] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.rate_limiter = rate_limiter
        self.token_verifier = token_verifier
        self.allowed_origins = frozenset(allowed_origins)
        self.enable_hsts = enable_hsts
        self.trust_unverified_subject = trust_unverified_subject
        self.event_logger = event_logger or SecurityEventLogger()
        self.metrics = metrics
        self.logger = get_logger("mentorly.request_gate")

    async def evaluate(self, request: GateRequest) -> GateDecision:
        decision = GateDecision()

        decision.headers.update(security_headers(request.path, enable_hsts=self.enable_hsts))
        decision.headers.update(cors_headers(request.header("origin"), self.allowed_origins))
        if request.method == "OPTIONS":
            return self._finish(decision.terminate(204), "preflight")

        token = self.token_verifier.inspect(request.bearer_token)
        decision.token = token
        if self.metrics and token.status is not TokenStatus.MISSING:
            self.metrics.increment_counter("token_verifications_total", status=token.status.value)
        if token.valid:
            set_user_context(token.subject)

        decision.identifier = self.client_identifier(request, token)
        rate = await self.rate_limiter.check(decision.identifier, request.path)
        if not rate.allowed:
            self._record_event(request, "rate_limit_exceeded", {
                "key": rate.key,
                "policy": rate.policy.name,
                "count": rate.count,
            })
            decision.headers["Retry-After"] = str(rate.retry_after)
            return self._finish(decision.terminate(429, rate.rejection_body()), "rate_limited")
        decision.headers.update(rate.headers())

        if not self.csrf_satisfied(request, token):
            self._record_event(request, "csrf_validation_failed", {
                "method": request.method,
                "path": request.path,
                "token_status": token.status.value,
            })
            return self._finish(decision.terminate(403, {"error": CSRF_ERROR}), "csrf_rejected")

        self.sanitize(request)
        return self._finish(decision, "allowed")

    def client_identifier(self, request: GateRequest, token: TokenResult) -> str:
        """Rate limit bucket: ``user:<sub>`` for token holders, else ``ip:<addr>``.

        By default the subject is taken from the token even when its
        signature does not verify. Set ``trust_unverified_subject=False`` to
        bucket unverified tokens by IP instead.
        """
        trusted = token.valid or self.trust_unverified_subject
        subject = token.subject if trusted else None
        if subject:
            return f"user:{subject}"
        return f"ip:{resolve_client_ip(request.headers, request.client_host)}"

    def csrf_satisfied(self, request: GateRequest, token: TokenResult) -> bool:
        if not requires_csrf(request.method):
            return True
        # Verified bearer tokens are exempt.
        if token.valid:
            return True
        return verify_csrf_token(request.session_csrf_token, request.submitted_csrf_token)

    @staticmethod
    def sanitize(request: GateRequest) -> None:
        for params in (request.query, request.body, request.cookies):
            sanitize_mapping(params)

    def _record_event(self, request: GateRequest, event: str, details: Mapping[str, Any]) -> None:
        self.event_logger.record(
            event,
            ip=resolve_client_ip(request.headers, request.client_host),
            user_agent=request.header("user-agent"),
            details=dict(details),
        )

    def _finish(self, decision: GateDecision, outcome: str) -> GateDecision:
        if self.metrics:
            self.metrics.increment_counter("gate_decisions_total", outcome=outcome)
        if not decision.allowed:
            self.logger.info("Request stopped by gate", outcome=outcome, status_code=decision.status_code)
        return decision
