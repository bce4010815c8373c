"""
Security helpers for the Mentorly service.

The request gate and its middleware live here together with the pieces
they are built from: token verification, CSRF tokens, security headers,
input sanitization, password hashing and security event logging.
"""

from .events import SecurityEvent, SecurityEventLogger
from .gate import GateDecision, GateRequest, RequestGate
from .middleware import SecurityMiddleware
from .passwords import PasswordManager
from .tokens import TokenResult, TokenStatus, TokenVerifier

__all__ = [
    "GateDecision",
    "GateRequest",
    "PasswordManager",
    "RequestGate",
    "SecurityEvent",
    "SecurityEventLogger",
    "SecurityMiddleware",
    "TokenResult",
    "TokenStatus",
    "TokenVerifier",
]
