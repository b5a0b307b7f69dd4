"""
Authentication orchestration.

Decides whether a login attempt succeeds by combining the User Directory,
the MFA Device Registry and the session store. Every failure raises the
same UnauthorizedError message so callers cannot tell a missing user from
a wrong password or a wrong MFA code.
"""
import secrets
import logging
from dataclasses import dataclass
from typing import Optional

from .mfa import is_backup_code_format
from ..database.user_db import User, UserDB, hash_password, verify_password
from ..database.mfa_db import MfaDeviceDB, DEVICE_TYPE_TOTP
from ..database.session_db import SessionDB
from ..database.token_db import TokenDB, PURPOSE_VERIFY_EMAIL, PURPOSE_PASSWORD_RESET
from ..errors import UnauthorizedError, NotFoundError, InvalidInputError

logger = logging.getLogger(__name__)

INVALID_LOGIN_MESSAGE = "Invalid credentials or MFA code"


@dataclass
class LoginResult:
    user: User
    token: str
    expires_in: int


class Authenticator:
    """
    Password + MFA authentication and session lifecycle.

    Example usage:
        authenticator = Authenticator(user_db, mfa_db, session_db)

        result = authenticator.login("alice", "secret-password", mfa_code="123456")
        authenticator.resolve_session(result.token)
    """

    def __init__(
        self,
        user_db: UserDB,
        mfa_db: MfaDeviceDB,
        session_db: SessionDB,
        token_db: Optional[TokenDB] = None,
        session_ttl_hours: int = 24,
        verify_email_ttl_minutes: int = 48 * 60,
        password_reset_ttl_minutes: int = 30,
    ):
        self.users = user_db
        self.devices = mfa_db
        self.sessions = session_db
        self.tokens = token_db if token_db is not None else TokenDB()
        self.session_ttl_hours = session_ttl_hours
        self.verify_email_ttl_minutes = verify_email_ttl_minutes
        self.password_reset_ttl_minutes = password_reset_ttl_minutes
        # Checked against when the user does not exist, so both paths pay for one bcrypt check
        self._dummy_hash = hash_password(secrets.token_hex(16))

    def authenticate(self, username_or_email: str, password: str, mfa_code: Optional[str] = None) -> User:
        """
        Check credentials and, when MFA is enabled, the second factor.

        An 8-digit code is treated as a backup code (and consumed on success);
        anything else is tried as a TOTP code against each active, verified
        device in ascending device ID order.

        Returns:
            The authenticated user, with last_login stamped.

        Raises:
            UnauthorizedError: On any failure, with one generic message.
        """
        user = self.users.get_user_by_username_or_email(username_or_email)

        if user is None:
            verify_password(password, self._dummy_hash)
            raise self._failure(f"unknown user {username_or_email!r}")

        if not verify_password(password, user.password_hash):
            raise self._failure(f"wrong password for user {user.user_id}")

        if not user.is_active:
            raise self._failure(f"inactive account {user.user_id}")

        if user.mfa_enabled and not self._check_second_factor(user, mfa_code):
            raise self._failure(f"MFA check failed for user {user.user_id}")

        self.users.update_last_login(user.user_id)
        logger.info(f"User authenticated: {user.username} (id={user.user_id})")
        return self.users.get_user_by_id(user.user_id) or user

    def login(self, username_or_email: str, password: str, mfa_code: Optional[str] = None) -> LoginResult:
        """Authenticate and open a server-side session."""
        user = self.authenticate(username_or_email, password, mfa_code)
        token = self.sessions.create_session(user.user_id, expires_hours=self.session_ttl_hours)
        return LoginResult(user=user, token=token, expires_in=self.session_ttl_hours * 3600)

    def logout(self, token: str) -> bool:
        return self.sessions.invalidate_session(token)

    def resolve_session(self, token: str) -> Optional[User]:
        """Return the active user behind a session token, if any."""
        user_id = self.sessions.validate_session(token)
        if user_id is None:
            return None

        user = self.users.get_user_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user

    def delete_account(self, user_id: int) -> bool:
        """
        Delete a user with its MFA devices and sessions.

        Returns:
            True if the user existed.
        """
        removed = self.devices.remove_user(user_id)
        if removed:
            self.sessions.invalidate_all_sessions(user_id)
            self.tokens.revoke_user(user_id)
        return removed

    # ==========================================
    # Email Verification & Password Reset
    # ==========================================

    def request_email_verification(self, user_id: int) -> str:
        """
        Issue a fresh email verification token, replacing any earlier one.

        Raises:
            NotFoundError: If the user does not exist.
        """
        if self.users.get_user_by_id(user_id) is None:
            raise NotFoundError(f"User not found with id: {user_id}", "User not found")

        self.tokens.revoke_user(user_id, PURPOSE_VERIFY_EMAIL)
        return self.tokens.issue(user_id, PURPOSE_VERIFY_EMAIL, expires_minutes=self.verify_email_ttl_minutes)

    def verify_email(self, user_id: int, token: str) -> User:
        """
        Redeem a verification token and mark the user's email verified.

        Raises:
            NotFoundError: If the user does not exist.
            InvalidInputError: If the token is unknown, expired, used or not the user's.
        """
        if self.users.get_user_by_id(user_id) is None:
            raise NotFoundError(f"User not found with id: {user_id}", "User not found")

        if self.tokens.consume(token, PURPOSE_VERIFY_EMAIL, user_id=user_id) is None:
            raise InvalidInputError(f"Email verification rejected for user {user_id}", "Invalid verification token")

        self.users.mark_email_verified(user_id)
        logger.info(f"Email verified for user {user_id}")
        return self.users.get_user_by_id(user_id)

    def request_password_reset(self, email: str) -> Optional[str]:
        """
        Issue a password reset token for the account registered to `email`.

        Returns None for unknown or inactive accounts; callers respond the
        same way in both cases.
        """
        user = self.users.get_user_by_email(email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for an unknown or inactive account")
            return None

        self.tokens.revoke_user(user.user_id, PURPOSE_PASSWORD_RESET)
        return self.tokens.issue(user.user_id, PURPOSE_PASSWORD_RESET, expires_minutes=self.password_reset_ttl_minutes)

    def reset_password(self, token: str, new_password: str) -> User:
        """
        Set a new password from a reset token.

        Every open session of the user is closed.

        Raises:
            InvalidInputError: If the token is unknown, expired or used.
        """
        user_id = self.tokens.consume(token, PURPOSE_PASSWORD_RESET)
        if user_id is None or not self.users.set_password(user_id, hash_password(new_password)):
            raise InvalidInputError("Password reset token rejected", "Invalid or expired reset token")

        self.sessions.invalidate_all_sessions(user_id)
        logger.info(f"Password reset for user {user_id}")
        return self.users.get_user_by_id(user_id)

    def _check_second_factor(self, user: User, mfa_code: Optional[str]) -> bool:
        if not mfa_code:
            return False

        if is_backup_code_format(mfa_code):
            return self.devices.verify_backup_code(user.user_id, mfa_code)

        for device in self.devices.list_devices(user.user_id):
            if not (device.is_active and device.is_verified and device.device_type == DEVICE_TYPE_TOTP):
                continue
            if self.devices.check_totp(device.device_id, mfa_code):
                return True
        return False

    @staticmethod
    def _failure(reason: str) -> UnauthorizedError:
        logger.warning(f"Login failed: {reason}")
        return UnauthorizedError(f"Login failed: {reason}", INVALID_LOGIN_MESSAGE)
