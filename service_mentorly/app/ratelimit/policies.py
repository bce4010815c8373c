"""
Rate limit policies.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    max_requests: int
    window_seconds: int
    key_suffix: str = ""

    def key_for(self, identifier: str) -> str:
        return f"{identifier}{self.key_suffix}"


DEFAULT_POLICY = RateLimitPolicy(name="default", max_requests=100, window_seconds=60)
LOGIN_POLICY = RateLimitPolicy(name="login", max_requests=5, window_seconds=900, key_suffix=":login")

LOGIN_PATH_MARKERS = ("/login", "/auth")


def select_policy(path: str) -> RateLimitPolicy:
    """Login and auth endpoints get the stricter policy."""
    if any(marker in path for marker in LOGIN_PATH_MARKERS):
        return LOGIN_POLICY
    return DEFAULT_POLICY
