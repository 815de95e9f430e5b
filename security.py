"""Helper utilities for hashing and verifying passwords and minting session tokens."""

from __future__ import annotations

import re
import secrets

import bcrypt
from werkzeug.security import check_password_hash

from errors import FormatError, ValidationError

BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
LEGACY_PREFIXES = ("scrypt:", "pbkdf2:")
TOKEN_BYTES = 32
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash the provided password using bcrypt with a per-password salt."""

    if not isinstance(password, str):
        raise TypeError("Password must be a string.")
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ValidationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(encoded, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, stored_hash: str | bytes | None) -> bool:
    """Validate a plaintext password against a stored bcrypt hash.

    A wrong password is simply ``False``. A stored hash that is not a bcrypt
    hash (or a legacy werkzeug hash) raises :class:`FormatError`.
    """

    if not stored_hash:
        raise FormatError("Stored password hash is empty.")

    stored_hash_str = stored_hash.decode("utf-8") if isinstance(stored_hash, bytes) else str(stored_hash)

    if not stored_hash_str.startswith(LEGACY_PREFIXES + BCRYPT_PREFIXES):
        raise FormatError("Stored password hash is malformed.")

    if not password or not isinstance(password, str):
        return False

    if stored_hash_str.startswith(LEGACY_PREFIXES):
        try:
            return check_password_hash(stored_hash_str, password)
        except (ValueError, TypeError) as exc:
            raise FormatError("Stored password hash is malformed.") from exc

    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        # hash_password never accepts these, so nothing stored can match.
        return False

    try:
        return bcrypt.checkpw(encoded, stored_hash_str.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        raise FormatError("Stored password hash is malformed.") from exc


class PasswordHasher:
    """Injectable wrapper so tests can run with a cheaper work factor."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, password: str) -> str:
        return hash_password(password, rounds=self.rounds)

    def verify(self, password: str, stored_hash: str | bytes | None) -> bool:
        return verify_password(password, stored_hash)


def generate_token() -> str:
    """Return an opaque, URL-safe session token."""

    return secrets.token_urlsafe(TOKEN_BYTES)


def is_well_formed_token(token: object) -> bool:
    return isinstance(token, str) and bool(TOKEN_PATTERN.match(token))
