"""
Mentor accounts: PostgreSQL lookups, legacy-aware password checks, and the
login / verification-status flows served under ``/api/mentor``.
"""

from .credentials import PasswordFormat, match_password
from .repository import MentorRepository
from .service import MentorService, has_verified_flag, is_verified

__all__ = [
    "MentorRepository",
    "MentorService",
    "PasswordFormat",
    "has_verified_flag",
    "is_verified",
    "match_password",
]
