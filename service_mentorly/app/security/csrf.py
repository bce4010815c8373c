"""
Session-bound CSRF tokens.
"""

import hmac
import secrets
from typing import MutableMapping, Optional

SESSION_KEY = "csrf_token"
HEADER_NAME = "x-csrf-token"
FORM_FIELD = "csrf_token"

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})


def generate_csrf_token(session: MutableMapping[str, str]) -> str:
    """Return the session's CSRF token, creating it on first use."""
    token = session.get(SESSION_KEY)
    if not token:
        token = secrets.token_hex(32)
        session[SESSION_KEY] = token
    return token


def verify_csrf_token(session_token: Optional[str], submitted: Optional[str]) -> bool:
    """Constant-time comparison against the session-pinned token."""
    if not session_token or submitted is None:
        return False
    if not isinstance(submitted, str):
        return False
    return hmac.compare_digest(session_token.encode("utf-8"), submitted.encode("utf-8"))


def requires_csrf(method: str) -> bool:
    return method.upper() in STATE_CHANGING_METHODS
