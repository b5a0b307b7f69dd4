"""
In-memory store for single-use action tokens.

Email verification and password reset hand the user an opaque random
token out of band. A token is bound to one user and one purpose, expires,
and is removed the moment it is redeemed.
"""
import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Optional, Dict
from datetime import datetime, timedelta, timezone

from ..utils.secrets import mask_secret

logger = logging.getLogger(__name__)

PURPOSE_VERIFY_EMAIL = "verify_email"
PURPOSE_PASSWORD_RESET = "password_reset"


@dataclass
class ActionToken:
    token: str
    user_id: int
    purpose: str
    created_at: datetime
    expires_at: datetime


class TokenDB:
    """
    Thread-safe store of single-use tokens keyed by token.

    Example usage:
        token_db = TokenDB()

        token = token_db.issue(user.user_id, PURPOSE_VERIFY_EMAIL, expires_minutes=60)
        token_db.consume(token, PURPOSE_VERIFY_EMAIL, user_id=user.user_id)  # -> user.user_id
        token_db.consume(token, PURPOSE_VERIFY_EMAIL, user_id=user.user_id)  # -> None
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tokens: Dict[str, ActionToken] = {}

    def issue(self, user_id: int, purpose: str, expires_minutes: int = 60) -> str:
        """
        Create a token for `user_id`.

        Returns:
            URL-safe random token (256 bits).
        """
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(minutes=expires_minutes)

        with self._lock:
            self._tokens[token] = ActionToken(
                token=token,
                user_id=user_id,
                purpose=purpose,
                created_at=now,
                expires_at=expires_at,
            )

        logger.debug(f"Issued {purpose} token {mask_secret(token)} for user {user_id}, expires {expires_at}")
        return token

    def consume(self, token: str, purpose: str, user_id: Optional[int] = None) -> Optional[int]:
        """
        Redeem a token.

        The token must exist, match `purpose` (and `user_id` when given) and
        be unexpired. A token presented for the wrong purpose or user stays
        valid for its real owner.

        Returns:
            The owning user ID, or None if the token was not accepted.
        """
        now = datetime.now(timezone.utc)

        with self._lock:
            entry = self._tokens.get(token)
            if entry is None or entry.purpose != purpose:
                return None
            if user_id is not None and entry.user_id != user_id:
                return None

            del self._tokens[token]
            if entry.expires_at <= now:
                return None

        logger.debug(f"Redeemed {purpose} token {mask_secret(token)} for user {entry.user_id}")
        return entry.user_id

    def revoke_user(self, user_id: int, purpose: Optional[str] = None) -> int:
        """
        Drop a user's outstanding tokens, optionally only those for `purpose`.

        Returns:
            Number of tokens revoked.
        """
        with self._lock:
            tokens = [
                token for token, entry in self._tokens.items()
                if entry.user_id == user_id and (purpose is None or entry.purpose == purpose)
            ]
            for token in tokens:
                del self._tokens[token]

        if tokens:
            logger.debug(f"Revoked {len(tokens)} tokens for user {user_id}")
        return len(tokens)

    def count_tokens(self) -> int:
        with self._lock:
            return len(self._tokens)
