"""
In-memory session store.

Login sessions are opaque random tokens held server-side, with an expiry.
"""
import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Optional, Dict
from datetime import datetime, timedelta, timezone

from ..utils.secrets import mask_secret

logger = logging.getLogger(__name__)


@dataclass
class Session:
    token: str
    user_id: int
    created_at: datetime
    expires_at: datetime


class SessionDB:
    """Thread-safe store of login sessions keyed by token."""

    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: Dict[str, Session] = {}

    def create_session(self, user_id: int, expires_hours: int = 24) -> str:
        """
        Create a new session for a user.

        Args:
            user_id: ID of user.
            expires_hours: Session expiration in hours (default 24).

        Returns:
            Session token (secure random 64-char hex string).
        """
        session_token = secrets.token_hex(32)
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=expires_hours)

        with self._lock:
            self._sessions[session_token] = Session(
                token=session_token,
                user_id=user_id,
                created_at=now,
                expires_at=expires_at,
            )

        logger.debug(f"Created session {mask_secret(session_token)} for user {user_id}, expires {expires_at}")
        return session_token

    def validate_session(self, session_token: str) -> Optional[int]:
        """
        Validate a session token.

        Returns:
            The owning user ID if the session is active and unexpired, else None.
        """
        now = datetime.now(timezone.utc)

        with self._lock:
            session = self._sessions.get(session_token)
            if session is None:
                return None
            if session.expires_at <= now:
                # Expired sessions are dropped lazily
                del self._sessions[session_token]
                return None
            return session.user_id

    def invalidate_session(self, session_token: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_token, None)

        if session is not None:
            logger.debug(f"Invalidated session {mask_secret(session_token)}")
        return session is not None

    def invalidate_all_sessions(self, user_id: int) -> int:
        """
        Invalidate all sessions for a user.

        Returns:
            Number of sessions invalidated.
        """
        with self._lock:
            tokens = [token for token, s in self._sessions.items() if s.user_id == user_id]
            for token in tokens:
                del self._sessions[token]

        logger.info(f"Invalidated {len(tokens)} sessions for user {user_id}")
        return len(tokens)
