"""
Starlette middleware running the request gate.
"""

import json
from typing import Any, Dict, Iterable, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from shared.logging import get_logger

from .csrf import SESSION_KEY
from .gate import GateDecision, GateRequest, RequestGate

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _to_dict(items: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Collapse multi-valued items; repeated keys become lists."""
    result: Dict[str, Any] = {}
    for key, value in items:
        if key in result:
            existing = result[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[key] = [existing, value]
        else:
            result[key] = value
    return result


class SecurityMiddleware(BaseHTTPMiddleware):
    """Builds a ``GateRequest``, runs the gate, and applies its decision.

    Sanitized parameters are published on ``request.state.inputs`` for
    handlers; the raw body is left untouched.
    """

    def __init__(self, app, gate: RequestGate):
        super().__init__(app)
        self.gate = gate
        self.logger = get_logger("mentorly.security_middleware")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        gate_request = await self.build_gate_request(request)
        decision = await self.gate.evaluate(gate_request)

        if not decision.allowed:
            return self.terminal_response(decision)

        request.state.inputs = gate_request
        request.state.gate_decision = decision

        response = await call_next(request)
        for name, value in decision.headers.items():
            response.headers[name] = value
        return response

    async def build_gate_request(self, request: Request) -> GateRequest:
        session = request.scope.get("session") or {}
        return GateRequest(
            method=request.method,
            path=request.url.path,
            headers=dict(request.headers),
            client_host=request.client.host if request.client else None,
            query=_to_dict(request.query_params.multi_items()),
            body=await self.read_body_params(request),
            cookies=dict(request.cookies),
            session_csrf_token=session.get(SESSION_KEY),
        )

    async def read_body_params(self, request: Request) -> Dict[str, Any]:
        if request.method in ("GET", "HEAD", "OPTIONS"):
            return {}

        content_type = request.headers.get("content-type", "")
        if content_type.startswith(FORM_CONTENT_TYPES):
            # Read the raw body first so it is replayed to the endpoint.
            await request.body()
            form = await request.form()
            return _to_dict(form.multi_items())

        if content_type.startswith("application/json"):
            body = await request.body()
            if not body:
                return {}
            try:
                payload = json.loads(body)
            except ValueError:
                self.logger.debug("Ignoring unparseable JSON body", path=request.url.path)
                return {}
            return payload if isinstance(payload, dict) else {}

        return {}

    @staticmethod
    def terminal_response(decision: GateDecision) -> Response:
        if decision.body is None:
            return Response(status_code=decision.status_code, headers=decision.headers)
        return JSONResponse(decision.body, status_code=decision.status_code, headers=decision.headers)
