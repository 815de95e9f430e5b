"""Login, registration and role checks on top of the record store."""

from __future__ import annotations

import logging
import re
import threading
from typing import List, Optional, Tuple

from database import RecordStore
from errors import AuthError, ForbiddenError, FormatError, NotFoundError, ValidationError
from models import PublicUser, Role, normalize_email
from security import PasswordHasher
from sessions import SessionManager

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
COMMON_PASSWORDS = {"password", "password1", "letmein", "1234", "12345", "123456", "qwerty"}
INVALID_CREDENTIALS = "Invalid email or password"


def is_valid_email(value: str) -> bool:
    """Basic validation to ensure the string resembles an email address."""
    if not value:
        return False
    return bool(EMAIL_PATTERN.match(value))


def validate_password(email: str, password: str) -> str | None:
    """Return an error message if the password fails validation, otherwise None."""
    lowered = password.lower()
    local_part = normalize_email(email).split("@", 1)[0]

    if len(password) < 8:
        return "Password must be at least eight characters."
    if lowered in COMMON_PASSWORDS:
        return "Please choose a less common password."
    if local_part and lowered == local_part:
        return "Password cannot match the email address."
    if local_part and lowered in {f"{local_part}{d}" for d in ("123", "1", "01")}:
        return "Password is too closely related to the email address."
    if lowered.isdigit():
        return "Password must include letters in addition to numbers."
    if lowered.isalpha():
        return "Password must include at least one number or symbol."
    if re.search(r"(.)\1{2,}", lowered):
        return "Password cannot contain the same character repeated three or more times consecutively."

    return None


class AuthService:
    """Composes the store, the password hasher and the session manager."""

    def __init__(self, store: RecordStore, hasher: PasswordHasher, sessions: SessionManager) -> None:
        self.store = store
        self.hasher = hasher
        self.sessions = sessions
        self._dummy_hash: Optional[str] = None
        self._dummy_lock = threading.Lock()

    def register(self, name: str, email: str, password: str) -> PublicUser:
        """Create a regular user account and return its public profile."""

        name = (name or "").strip()
        normalized = normalize_email(email)
        if not name:
            raise ValidationError("Name is required.")
        if not is_valid_email(normalized):
            raise ValidationError("Enter a valid email address.")
        if not isinstance(password, str) or not password:
            raise ValidationError("Password is required.")
        password_error = validate_password(normalized, password)
        if password_error:
            raise ValidationError(password_error)
        if self.store.get_user_by_email(normalized):
            raise ValidationError("An account with that email already exists.")

        # The store re-checks the email under its lock, so a concurrent
        # registration for the same address still fails here.
        user = self.store.create_user(name, normalized, self.hasher.hash(password), role=Role.USER)
        logger.info("Registered user %s.", user.id)
        return user.public()

    def login(self, email: str, password: str) -> Tuple[str, PublicUser]:
        """Check credentials and open a session; returns ``(token, profile)``."""

        normalized = normalize_email(email if isinstance(email, str) else "")
        user = self.store.get_user_by_email(normalized) if normalized else None
        if user is None:
            # Burn the same bcrypt cost as a real check.
            self.hasher.verify(password if isinstance(password, str) else "", self._get_dummy_hash())
            logger.warning("Rejected a login attempt.")
            raise AuthError(INVALID_CREDENTIALS)

        try:
            password_ok = self.hasher.verify(password, user.password_hash)
        except FormatError:
            logger.exception("Stored password hash for user %s is unreadable.", user.id)
            password_ok = False
        if not password_ok:
            logger.warning("Rejected a login attempt.")
            raise AuthError(INVALID_CREDENTIALS)

        session = self.sessions.create(user.id)
        logger.info("User %s signed in.", user.id)
        return session.id, user.public()

    def logout(self, token: str) -> bool:
        return self.sessions.invalidate(token)

    def current_user(self, token: Optional[str]) -> Optional[PublicUser]:
        """Resolve a session token to a public profile, or ``None``."""

        if not token:
            return None
        try:
            user_id = self.sessions.validate(token)
        except FormatError:
            return None
        if user_id is None:
            return None
        user = self.store.get_user_by_id(user_id)
        if user is None:
            self.sessions.invalidate(token)
            return None
        return user.public()

    def require_role(self, user: Optional[PublicUser], role: Role | str) -> PublicUser:
        try:
            required = Role(role)
        except ValueError as exc:
            raise ValidationError(f"Unknown role: {role!r}") from exc
        if user is None or user.role != required:
            logger.warning("Denied %s access to %s.", user.id if user else "anonymous", required.value)
            raise ForbiddenError("Admin access required" if required == Role.ADMIN else "Access denied")
        return user

    def list_users(self, actor: Optional[PublicUser]) -> List[PublicUser]:
        self.require_role(actor, Role.ADMIN)
        return [user.public() for user in self.store.list_users()]

    def delete_user(self, actor: Optional[PublicUser], user_id: str) -> None:
        """Remove an account and sign it out everywhere. Orders and cart lines stay."""

        admin = self.require_role(actor, Role.ADMIN)
        if admin.id == user_id:
            raise ValidationError("You cannot delete the currently signed-in admin.")
        if not self.store.delete_user(user_id):
            raise NotFoundError("User not found.")
        dropped = self.sessions.invalidate_user(user_id)
        logger.info("Admin %s deleted user %s (%d session(s) closed).", admin.id, user_id, dropped)

    def _get_dummy_hash(self) -> str:
        with self._dummy_lock:
            if self._dummy_hash is None:
                self._dummy_hash = self.hasher.hash("not-a-real-password-0")
            return self._dummy_hash
