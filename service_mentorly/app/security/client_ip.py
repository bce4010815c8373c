"""
Client IP resolution for rate-limit bucketing.
"""

import ipaddress
from typing import Mapping, Optional

# Checked in order; the first syntactically valid address wins.
IP_HEADERS = ("cf-connecting-ip", "x-forwarded-for", "x-real-ip")
UNKNOWN_IP = "0.0.0.0"


def _valid_ip(candidate: str) -> bool:
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return False
    return True


def resolve_client_ip(headers: Mapping[str, str], remote_addr: Optional[str]) -> str:
    """Extract the caller IP from proxy headers or the connection address."""
    candidates = [headers.get(name) for name in IP_HEADERS]
    candidates.append(remote_addr)

    for value in candidates:
        if not value:
            continue
        if "," in value:
            value = value.split(",")[0]
        value = value.strip()
        if _valid_ip(value):
            return value

    return UNKNOWN_IP
