"""
In-memory User Directory.

This module provides:
- User records with uniqueness on username and email
- Secondary indexes by username and email kept in step with the primary map
- MFA flag management (driven by the MFA device registry)
- Password hashing utilities (bcrypt)

All operations run under a single re-entrant lock, so readers never observe
a partially applied write and index maintenance is atomic.
"""
import os
import logging
import threading
from dataclasses import dataclass, replace
from typing import Optional, Dict, List
from datetime import datetime, timezone

import bcrypt

from ..errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

# Fields that update_user() replaces. MFA state is owned by the device registry.
PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone_number",
    "email_verified",
    "phone_verified",
    "is_active",
)

# bcrypt only reads the first 72 bytes of its input
PASSWORD_MAX_BYTES = 72


@dataclass
class User:
    """A user account. `password_hash` and `mfa_secret` never leave the API layer."""
    user_id: int
    username: str
    email: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    email_verified: bool = False
    phone_verified: bool = False
    mfa_enabled: bool = False
    mfa_secret: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


def normalize_email(email: str) -> str:
    return email.lower().strip()


class UserDB:
    """
    Thread-safe in-memory store for user accounts.

    Example usage:
        user_db = UserDB()

        user = user_db.create_user("alice", "alice@example.com", hash_password("pw"))
        user_db.get_user_by_username_or_email("alice@example.com")
        user_db.update_last_login(user.user_id)
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._by_username: Dict[str, int] = {}
        self._by_email: Dict[str, int] = {}
        self._next_id = 1

    # ==========================================
    # Creation & Lookup
    # ==========================================

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        **profile,
    ) -> User:
        """
        Create a new user account.

        Args:
            username: Unique username.
            email: Unique email address (stored lowercased).
            password_hash: Bcrypt-hashed password.
            **profile: Optional profile fields (see PROFILE_FIELDS).

        Returns:
            Copy of the created user.

        Raises:
            ConflictError: If username or email already exists.
        """
        email = normalize_email(email)
        now = datetime.now(timezone.utc)

        with self._lock:
            if username in self._by_username:
                raise ConflictError(f"Username '{username}' already exists", "Username already exists")
            if email in self._by_email:
                raise ConflictError(f"Email '{email}' already exists", "Email already exists")

            user = User(
                user_id=self._next_id,
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
                **self._profile(profile),
            )
            self._next_id += 1

            self._users[user.user_id] = user
            self._by_username[username] = user.user_id
            self._by_email[email] = user.user_id

        logger.info(f"Created user: {username} (id={user.user_id})")
        return replace(user)

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_username.get(username)
            return self.get_user_by_id(user_id) if user_id is not None else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_email.get(normalize_email(email))
            return self.get_user_by_id(user_id) if user_id is not None else None

    def get_user_by_username_or_email(self, username_or_email: str) -> Optional[User]:
        """Look up by username first, then by email."""
        with self._lock:
            return (
                self.get_user_by_username(username_or_email)
                or self.get_user_by_email(username_or_email)
            )

    def exists_by_username(self, username: str) -> bool:
        with self._lock:
            return username in self._by_username

    def exists_by_email(self, email: str) -> bool:
        with self._lock:
            return normalize_email(email) in self._by_email

    def list_users(self) -> List[User]:
        """All users in ascending ID order."""
        with self._lock:
            return [replace(self._users[user_id]) for user_id in sorted(self._users)]

    def count_users(self) -> int:
        with self._lock:
            return len(self._users)

    # ==========================================
    # Mutation
    # ==========================================

    def update_user(
        self,
        user_id: int,
        username: str,
        email: str,
        password_hash: Optional[str] = None,
        **profile,
    ) -> User:
        """
        Replace the mutable fields of a user and re-index it.

        The ID, creation time and MFA state are preserved. A None
        password_hash keeps the current password.

        Raises:
            NotFoundError: If the user does not exist.
            ConflictError: If the new username or email belongs to another user.
        """
        email = normalize_email(email)

        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                raise NotFoundError(f"User not found with id: {user_id}")

            owner = self._by_username.get(username)
            if owner is not None and owner != user_id:
                raise ConflictError(f"Username '{username}' already exists", "Username already exists")
            owner = self._by_email.get(email)
            if owner is not None and owner != user_id:
                raise ConflictError(f"Email '{email}' already exists", "Email already exists")

            updated = replace(
                existing,
                username=username,
                email=email,
                password_hash=password_hash or existing.password_hash,
                updated_at=datetime.now(timezone.utc),
                **self._profile(profile, keep_none=True),
            )

            del self._by_username[existing.username]
            del self._by_email[existing.email]
            self._users[user_id] = updated
            self._by_username[username] = user_id
            self._by_email[email] = user_id

        logger.info(f"Updated user {user_id}")
        return replace(updated)

    def delete_user(self, user_id: int) -> bool:
        """
        Remove a user from the primary map and both indexes.

        Devices and sessions are not touched here; callers that need the
        cascade go through MfaDeviceDB.remove_user().

        Returns:
            True if a user was removed.
        """
        with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                return False
            del self._by_username[user.username]
            del self._by_email[user.email]

        logger.info(f"Deleted user: {user.username} (id={user_id})")
        return True

    def update_last_login(self, user_id: int) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                now = datetime.now(timezone.utc)
                user.last_login = now
                user.updated_at = now

    def set_password(self, user_id: int, password_hash: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user.password_hash = password_hash
            user.updated_at = datetime.now(timezone.utc)

        logger.info(f"Password changed for user {user_id}")
        return True

    def mark_email_verified(self, user_id: int) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user.email_verified = True
            user.updated_at = datetime.now(timezone.utc)
        return True

    def enable_mfa(self, user_id: int, secret: str) -> None:
        """Mark MFA as enabled, backed by the given device secret."""
        self._set_mfa(user_id, secret)

    def disable_mfa(self, user_id: int) -> None:
        self._set_mfa(user_id, None)

    def _set_mfa(self, user_id: int, secret: Optional[str]) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return
            was_enabled = user.mfa_enabled
            user.mfa_enabled = secret is not None
            user.mfa_secret = secret
            user.updated_at = datetime.now(timezone.utc)

        if was_enabled != (secret is not None):
            logger.info(f"Updated MFA for user {user_id}: enabled={secret is not None}")

    @staticmethod
    def _profile(profile: Dict, keep_none: bool = False) -> Dict:
        unknown = set(profile) - set(PROFILE_FIELDS)
        if unknown:
            raise TypeError(f"Unknown user fields: {sorted(unknown)}")
        if keep_none:
            return dict(profile)
        return {key: value for key, value in profile.items() if value is not None}


# ==========================================
# Password Hashing Utilities
# ==========================================

def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    The cost factor comes from BCRYPT_ROUNDS (default 12).

    Args:
        password: Plain text password.

    Returns:
        Bcrypt hash string.
    """
    salt = bcrypt.gensalt(rounds=int(os.getenv("BCRYPT_ROUNDS", "12")))
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password to verify.
        password_hash: Stored bcrypt hash.

    Returns:
        True if password matches, False otherwise.
    """
    try:
        return bcrypt.checkpw(
            password.encode('utf-8'),
            password_hash.encode('utf-8')
        )
    except ValueError:
        # Over PASSWORD_MAX_BYTES (bcrypt >= 5 refuses) or a malformed hash
        return False
