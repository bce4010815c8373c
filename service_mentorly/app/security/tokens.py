"""
Bearer token inspection for the request gate.

Tokens are issued elsewhere; this module only verifies them. A single
routine produces a ``TokenResult`` that both rate-limit identification and
CSRF exemption consume, so the two call sites never disagree on how a token
was decoded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from shared.logging import get_logger

_BEARER_PATTERN = re.compile(r"Bearer\s+(.*)$", re.IGNORECASE)

# Only signature and expiry are enforced; other registered claims are advisory.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
    "leeway": 0,
}


class TokenStatus(str, Enum):
    VALID = "valid"
    MISSING = "missing"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenResult:
    """Outcome of inspecting a bearer token.

    ``claims`` holds the decoded payload whenever it could be parsed, even if
    the signature did not verify. Callers that need trust must check
    ``valid``.
    """

    status: TokenStatus
    claims: Optional[Dict[str, Any]] = None
    reason: str = ""
    token: Optional[str] = field(default=None, repr=False)

    @property
    def valid(self) -> bool:
        return self.status is TokenStatus.VALID

    @property
    def subject(self) -> Optional[str]:
        """Subject claim (``sub``, falling back to ``user_id``), unverified."""
        if not self.claims:
            return None
        subject = self.claims.get("sub")
        if subject is None:
            subject = self.claims.get("user_id")
        if subject is None or subject == "":
            return None
        return str(subject)

    @classmethod
    def missing(cls) -> "TokenResult":
        return cls(status=TokenStatus.MISSING, reason="no bearer token")


def extract_bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    authorization = headers.get("authorization")
    if not authorization:
        return None

    match = _BEARER_PATTERN.search(authorization.strip())
    if not match:
        return None

    token = match.group(1).strip()
    return token or None


class TokenVerifier:
    """Verifies HS256 bearer tokens against a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm
        self.logger = get_logger("mentorly.tokens")

    def inspect(self, token: Optional[str]) -> TokenResult:
        """Decode and verify ``token`` without ever raising."""
        if not token:
            return TokenResult.missing()

        if len(token.split(".")) != 3:
            return TokenResult(
                status=TokenStatus.MALFORMED,
                reason="token must have exactly three segments",
                token=token,
            )

        claims = self._unverified_claims(token)

        try:
            jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options=_DECODE_OPTIONS,
            )
        except ExpiredSignatureError:
            return TokenResult(
                status=TokenStatus.EXPIRED,
                claims=claims,
                reason="token has expired",
                token=token,
            )
        except JWTClaimsError as exc:
            # Signature checked out but a registered claim has the wrong type.
            self.logger.debug("Bearer token rejected", status=TokenStatus.MALFORMED.value, error=str(exc))
            return TokenResult(status=TokenStatus.MALFORMED, claims=claims, reason=str(exc), token=token)
        except JWTError as exc:
            status = TokenStatus.INVALID_SIGNATURE if claims is not None else TokenStatus.MALFORMED
            self.logger.debug("Bearer token rejected", status=status.value, error=str(exc))
            return TokenResult(status=status, claims=claims, reason=str(exc), token=token)

        return TokenResult(status=TokenStatus.VALID, claims=claims, token=token)

    def _unverified_claims(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            return None
        return dict(claims)
