"""
Stored-password checks for mentor accounts.

Older accounts may still hold plaintext, MD5 or SHA-256 values. They are
accepted for login but reported so they can be migrated.
"""

import hashlib
import hmac
from enum import Enum
from typing import Optional

from ..security.passwords import PasswordManager, is_password_hash


class PasswordFormat(str, Enum):
    HASHED = "hashed"
    PLAINTEXT = "plaintext"
    MD5 = "md5"
    SHA256 = "sha256"


def _equals(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def match_password(password: str, stored: Optional[str], passwords: PasswordManager) -> Optional[PasswordFormat]:
    """Return the format that matched, or None when the password is wrong."""
    if not stored:
        return None

    if is_password_hash(stored) and passwords.verify(password, stored):
        return PasswordFormat.HASHED
    if _equals(stored, password):
        return PasswordFormat.PLAINTEXT
    if _equals(stored, hashlib.md5(password.encode("utf-8")).hexdigest()):
        return PasswordFormat.MD5
    if _equals(stored, hashlib.sha256(password.encode("utf-8")).hexdigest()):
        return PasswordFormat.SHA256
    return None
