"""
Input sanitization helpers.

Only null bytes and surrounding whitespace are removed. HTML is left intact;
escaping belongs to whatever renders the value.
"""

import re
from typing import Any, MutableMapping

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)+$")


def sanitize_string(value: str) -> str:
    return value.replace("\x00", "").strip()


def sanitize_value(value: Any) -> Any:
    """Sanitize strings, recursing into dicts and lists."""
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        sanitize_mapping(value)
        return value
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    return value


def sanitize_mapping(params: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Sanitize every value of ``params`` in place and return it."""
    for key, value in list(params.items()):
        params[key] = sanitize_value(value)
    return params


def validate_email(email: str) -> bool:
    """Loose syntactic email check."""
    if not isinstance(email, str):
        return False
    return bool(EMAIL_REGEX.match(email.strip()))
