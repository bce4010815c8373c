"""
Password hashing.

Argon2id is the default scheme; bcrypt (cost 12) is available as the
configured fallback. Verification dispatches on the stored hash prefix, so
hashes produced by either scheme (including PHP's ``$2y$`` bcrypt variant)
verify regardless of the scheme currently used for new hashes.
"""

from typing import Optional

import bcrypt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from shared.logging import get_logger

ARGON2_MEMORY_COST = 65536  # KiB, 64 MiB
ARGON2_TIME_COST = 4
ARGON2_PARALLELISM = 3
BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_BYTES = 72

SCHEME_ARGON2 = "argon2id"
SCHEME_BCRYPT = "bcrypt"

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def is_password_hash(value: Optional[str]) -> bool:
    """True when ``value`` looks like an Argon2 or bcrypt hash."""
    if not value:
        return False
    return value.startswith("$argon2") or value.startswith(_BCRYPT_PREFIXES)


class PasswordManager:
    """Hashes and verifies passwords with the configured scheme."""

    def __init__(
        self,
        scheme: str = SCHEME_ARGON2,
        *,
        memory_cost: int = ARGON2_MEMORY_COST,
        time_cost: int = ARGON2_TIME_COST,
        parallelism: int = ARGON2_PARALLELISM,
        bcrypt_rounds: int = BCRYPT_ROUNDS,
    ):
        if scheme not in (SCHEME_ARGON2, SCHEME_BCRYPT):
            raise ValueError(f"Unsupported password scheme: {scheme}")
        self.scheme = scheme
        self.bcrypt_rounds = bcrypt_rounds
        self._argon2 = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )
        self.logger = get_logger("mentorly.passwords")

    def hash(self, password: str) -> str:
        if self.scheme == SCHEME_ARGON2:
            return self._argon2.hash(password)
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(self._bcrypt_bytes(password), salt).decode("ascii")

    def verify(self, password: str, hashed: str) -> bool:
        if not hashed:
            return False

        if hashed.startswith("$argon2"):
            try:
                return self._argon2.verify(hashed, password)
            except (VerificationError, InvalidHashError):
                return False

        if hashed.startswith(_BCRYPT_PREFIXES):
            # PHP emits $2y$; the algorithm is identical to $2b$.
            normalized = "$2b$" + hashed[4:] if hashed.startswith("$2y$") else hashed
            try:
                return bcrypt.checkpw(self._bcrypt_bytes(password), normalized.encode("ascii"))
            except ValueError as exc:
                self.logger.warning("Unreadable bcrypt hash", error=str(exc))
                return False

        return False

    def needs_rehash(self, hashed: str) -> bool:
        """True when ``hashed`` was not produced with the current settings."""
        if self.scheme == SCHEME_ARGON2:
            if not hashed.startswith("$argon2"):
                return True
            try:
                return self._argon2.check_needs_rehash(hashed)
            except InvalidHashError:
                return True
        if not hashed.startswith(_BCRYPT_PREFIXES):
            return True
        try:
            rounds = int(hashed.split("$")[2])
        except (IndexError, ValueError):
            return True
        return rounds != self.bcrypt_rounds

    @staticmethod
    def _bcrypt_bytes(password: str) -> bytes:
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]
