"""
Mentorly access service.

Every request passes through the request gate (security headers, CORS,
rate limiting, CSRF, sanitization) before reaching the mentor endpoints.
"""

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import MentorlyException

from .mentors import MentorRepository, MentorService
from .ratelimit import CounterStore, FixedWindowRateLimiter, RedisCounterStore, build_counter_store
from .security import (
    PasswordManager,
    RequestGate,
    SecurityEventLogger,
    SecurityMiddleware,
    TokenVerifier,
)
from .security.csrf import generate_csrf_token

SERVICE_NAME = "mentorly"
DEFAULT_PORT = 8000


class MentorlyService(BaseService):
    """Mentorly service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        counter_store: Optional[CounterStore] = None,
        repository: Optional[MentorRepository] = None,
        password_manager: Optional[PasswordManager] = None,
    ):
        self._counter_store = counter_store
        self._repository = repository
        self._password_manager = password_manager
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config or get_config(SERVICE_NAME, DEFAULT_PORT))

        @self.app.on_event("shutdown")
        async def _shutdown():
            close = getattr(self.counter_store, "close", None)
            if close is not None:
                await close()
            await self.repository.stop()

        self._setup_mentor_routes()

        self.app.state.mentorly_service = self

    def _setup_middleware(self):
        """Build the request gate and mentor service, then install the gate."""
        self.counter_store = self._counter_store or build_counter_store(self.config, metrics=self.metrics)
        self.rate_limiter = FixedWindowRateLimiter(self.counter_store, metrics=self.metrics)
        self.token_verifier = TokenVerifier(self.config.jwt_secret, self.config.jwt_algorithm)
        self.event_logger = SecurityEventLogger(self.config.security_log_file)
        self.gate = RequestGate(
            self.rate_limiter,
            self.token_verifier,
            allowed_origins=self.config.allowed_origins,
            enable_hsts=self.config.enable_hsts,
            trust_unverified_subject=self.config.trust_unverified_token_subject,
            event_logger=self.event_logger,
            metrics=self.metrics,
        )

        self.repository = self._repository or MentorRepository(self.config.postgres_dsn)
        self.passwords = self._password_manager or PasswordManager(self.config.password_scheme)
        self.mentor_service = MentorService(
            self.repository,
            self.passwords,
            event_logger=self.event_logger,
            metrics=self.metrics,
        )

        # Added last so the session is loaded before the gate reads it.
        self.app.add_middleware(SecurityMiddleware, gate=self.gate)
        self.app.add_middleware(SessionMiddleware, secret_key=self.config.session_secret)

    def _setup_mentor_routes(self):
        """Set up CSRF and mentor routes."""

        @self.app.get("/api/csrf-token")
        async def csrf_token(request: Request):
            """Issue (or return) the session's CSRF token."""
            return {"csrf_token": generate_csrf_token(request.session)}

        @self.app.post("/api/mentor/login")
        async def mentor_login(request: Request):
            inputs = request.state.inputs
            try:
                return await self.mentor_service.login(
                    inputs.body,
                    ip=inputs.client_host,
                    user_agent=inputs.header("user-agent"),
                )
            except MentorlyException as e:
                return self._database_failure(e)

        @self.app.post("/api/mentor/status")
        async def mentor_status(request: Request):
            inputs = request.state.inputs
            try:
                return await self.mentor_service.check_status(inputs.body)
            except MentorlyException as e:
                return self._database_failure(e)

    def _database_failure(self, exc: MentorlyException) -> JSONResponse:
        """Generic failure body; the underlying error stays in the logs."""
        self.metrics.record_error(exc.code, service=getattr(exc, "service", None))
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.message},
        )

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Check Redis, the counter store circuit, and PostgreSQL."""
        dependencies: Dict[str, Any] = {}

        primary = getattr(self.counter_store, "primary", self.counter_store)
        if isinstance(primary, RedisCounterStore):
            try:
                dependencies["redis"] = "ok" if await primary.ping() else "error"
            except Exception as e:
                self.logger.warning("Redis health check failed", error=str(e))
                dependencies["redis"] = "error"

        breaker = getattr(self.counter_store, "breaker", None)
        if breaker is not None:
            dependencies["counter_store_circuit"] = breaker.get_state()["state"]

        dependencies["postgres"] = await self.repository.check_health()
        return dependencies


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = MentorlyService(config)
    return service.app


if __name__ == "__main__":
    service = MentorlyService()
    service.run()
