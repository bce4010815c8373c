"""
Security and CORS response headers.
"""

from typing import Dict, Iterable, Optional

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline'; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; "
    "font-src 'self' data:; "
    "connect-src 'self'; "
    "frame-ancestors 'none';"
)

SECURITY_HEADERS: Dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

NO_STORE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
}

HSTS_HEADER = ("Strict-Transport-Security", "max-age=31536000; includeSubDomains; preload")

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With"
CORS_MAX_AGE = "86400"

API_PREFIX = "/api/"


def security_headers(path: str, *, enable_hsts: bool = False) -> Dict[str, str]:
    """Headers attached to every response, whatever the gate decides."""
    headers = dict(SECURITY_HEADERS)
    if enable_hsts:
        headers[HSTS_HEADER[0]] = HSTS_HEADER[1]
    if API_PREFIX in path:
        headers.update(NO_STORE_HEADERS)
    return headers


def cors_headers(origin: Optional[str], allowed_origins: Iterable[str]) -> Dict[str, str]:
    """CORS headers for an exactly allow-listed ``origin``, else nothing."""
    if not origin or origin not in set(allowed_origins):
        return {}

    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age": CORS_MAX_AGE,
    }
