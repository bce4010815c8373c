"""
Mentor login and verification-status lookups.

Business outcomes are returned as ``{"status": "error" | "success", ...}``
payloads; infrastructure failures propagate as ``MentorlyException``.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..security.events import SecurityEventLogger
from ..security.passwords import PasswordManager
from ..security.sanitize import validate_email
from .credentials import PasswordFormat, match_password
from .repository import MentorRepository

MSG_CREDENTIALS_REQUIRED = "Email dan password harus diisi"
MSG_EMAIL_NOT_REGISTERED = "Email tidak terdaftar"
MSG_WRONG_PASSWORD = "Password salah"
MSG_LOGIN_SUCCESS = "Login berhasil"
MSG_IDENTIFIER_REQUIRED = "UID or email required"
MSG_MENTOR_NOT_FOUND = "Mentor not found"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _flag_set(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true")


def is_verified(mentor: Mapping[str, Any]) -> bool:
    """Resolve verification from the first status field present on the row."""
    if mentor.get("status_verifikasi") is not None:
        return mentor["status_verifikasi"] == "verified"
    if mentor.get("status") is not None:
        return mentor["status"] == "verified"
    if mentor.get("verified") is not None:
        return _flag_set(mentor["verified"])
    return False


def has_verified_flag(mentor: Mapping[str, Any]) -> bool:
    """True when any of the status fields marks the row as verified."""
    return (
        mentor.get("status_verifikasi") == "verified"
        or mentor.get("status") == "verified"
        or _flag_set(mentor.get("verified"))
    )


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _now() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def _timestamp(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value) if value else _now()


class MentorService:
    def __init__(
        self,
        repository: MentorRepository,
        passwords: PasswordManager,
        *,
        event_logger: Optional[SecurityEventLogger] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.repository = repository
        self.passwords = passwords
        self.event_logger = event_logger or SecurityEventLogger()
        self.metrics = metrics
        self.logger = get_logger("mentorly.mentors")

    async def login(
        self,
        params: Mapping[str, Any],
        *,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        email = _text(params.get("email"))
        password = _text(params.get("password"))
        if not email or not password:
            return self._error(MSG_CREDENTIALS_REQUIRED, "login_rejected")

        # A malformed address cannot belong to a registered mentor.
        mentor = await self.repository.find_by_email(email) if validate_email(email) else None
        if mentor is None:
            return self._error(MSG_EMAIL_NOT_REGISTERED, "login_rejected")

        stored = mentor.get("password")
        # Argon2 verification is CPU bound; keep it off the event loop.
        matched = await asyncio.to_thread(match_password, password, stored, self.passwords)
        if matched is None:
            self.event_logger.record(
                "login_failed",
                ip=ip,
                user_agent=user_agent,
                details={"email": email},
            )
            return self._error(MSG_WRONG_PASSWORD, "login_rejected")

        if matched is not PasswordFormat.HASHED:
            self.event_logger.record(
                "legacy_password_format",
                ip=ip,
                user_agent=user_agent,
                details={"mentor_id": mentor.get("id"), "format": matched.value},
            )
        elif self.passwords.needs_rehash(stored):
            self.logger.info("Stored password hash uses outdated parameters", mentor_id=mentor.get("id"))

        verified = is_verified(mentor)
        self._business_event("login_succeeded")
        self.logger.info("Mentor logged in", mentor_id=mentor.get("id"), verified=verified)
        return {
            "status": "success",
            "message": MSG_LOGIN_SUCCESS,
            "verified": verified,
            "mentor_data": self.login_data(mentor, verified),
        }

    async def check_status(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        uid = _text(params.get("uid"))
        email = _text(params.get("email"))
        if not uid and not email:
            return self._error(MSG_IDENTIFIER_REQUIRED, "status_rejected")

        if uid:
            mentor = await self.repository.find_by_uid(uid)
        else:
            mentor = await self.repository.find_by_email(email)

        if mentor is None:
            self._business_event("status_not_found")
            return {"status": "error", "verified": False, "message": MSG_MENTOR_NOT_FOUND}

        verified = has_verified_flag(mentor)
        self._business_event("status_checked")
        return {
            "status": "success",
            "verified": verified,
            "mentor_data": self.status_data(mentor, uid),
        }

    @staticmethod
    def login_data(mentor: Mapping[str, Any], verified: bool) -> Dict[str, Any]:
        return {
            "id": mentor.get("id"),
            "uid": mentor.get("uid") or mentor.get("firebase_uid"),
            "email": mentor.get("email") or "",
            "nama_lengkap": mentor.get("nama_lengkap") or "",
            "nik": mentor.get("nik") or "",
            "keahlian": mentor.get("keahlian") or "",
            "keahlian_utama": mentor.get("keahlian_utama") or mentor.get("keahlian") or "",
            "keahlian_lain": mentor.get("keahlian_lain") or "",
            "kelamin": mentor.get("kelamin") or "",
            "linkedin": mentor.get("linkedin") or "",
            "deskripsi": mentor.get("deskripsi") or "",
            "status_verifikasi": mentor.get("status_verifikasi") or ("verified" if verified else "pending"),
            "created_at": _timestamp(mentor.get("created_at")),
        }

    @staticmethod
    def status_data(mentor: Mapping[str, Any], requested_uid: str = "") -> Dict[str, Any]:
        return {
            "uid": mentor.get("uid") or mentor.get("firebase_uid") or requested_uid or None,
            "email": mentor.get("email") or "",
            "nama_lengkap": mentor.get("nama_lengkap") or "",
            "nik": mentor.get("nik") or "",
            "keahlian": mentor.get("keahlian") or "",
            "keahlian_lain": mentor.get("keahlian_lain") or "",
            "kelamin": mentor.get("kelamin") or "",
            "linkedin": mentor.get("linkedin") or "",
            "status_verifikasi": mentor.get("status_verifikasi") or "pending",
            "created_at": _timestamp(mentor.get("created_at")),
        }

    def _error(self, message: str, event: str) -> Dict[str, Any]:
        self._business_event(event)
        return {"status": "error", "message": message}

    def _business_event(self, event: str) -> None:
        if self.metrics:
            self.metrics.record_business_event(event)
