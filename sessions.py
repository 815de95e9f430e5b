"""Session tokens bound to user ids, with lazy expiry."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from database import RecordStore
from errors import FormatError
from models import Session
from security import generate_token, is_well_formed_token

logger = logging.getLogger(__name__)

SESSION_LIFETIME = timedelta(days=7)


class SessionManager:
    """Issue, validate and expire session tokens.

    A session is active while ``now < expires_at``. Expiry is observed lazily
    by :meth:`validate`; :meth:`cleanup_expired` only bounds memory and is
    meant to be run on a schedule by whoever hosts the store.
    """

    def __init__(self, store: RecordStore, lifetime: timedelta = SESSION_LIFETIME) -> None:
        if lifetime <= timedelta(0):
            raise ValueError("Session lifetime must be positive.")
        self.store = store
        self.lifetime = lifetime

    @property
    def _sessions(self):
        return self.store.sessions

    def create(self, user_id: str) -> Session:
        now = self.store.clock()
        session = Session(
            id=generate_token(),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.lifetime,
        )
        return self._sessions.create(session)

    def validate(self, token: str) -> Optional[str]:
        """Return the bound user id, or ``None`` for unknown or expired tokens."""

        if not is_well_formed_token(token):
            raise FormatError("Malformed session token.")
        with self._sessions.lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.is_active(self.store.clock()):
                return session.user_id
            self._sessions.delete(token)
        logger.debug("Purged an expired session on access.")
        return None

    def invalidate(self, token: str) -> bool:
        if not isinstance(token, str):
            return False
        return self._sessions.delete(token)

    def invalidate_user(self, user_id: str) -> int:
        """Drop every session bound to ``user_id``."""

        with self._sessions.lock:
            doomed = [session.id for session in self._sessions.filter(lambda s: s.user_id == user_id)]
            for token in doomed:
                self._sessions.delete(token)
        return len(doomed)

    def cleanup_expired(self) -> int:
        """Purge every expired session; returns how many were removed."""

        removed = self._sessions.purge_expired(self.store.clock())
        if removed:
            logger.info("Removed %d expired session(s).", removed)
        return removed

    def active_count(self) -> int:
        return len(self._sessions)
