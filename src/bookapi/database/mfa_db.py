"""
In-memory MFA Device Registry.

Owns TOTP enrollment devices and their single-use backup codes, and keeps
each user's aggregate MFA flag consistent with the devices they own:

    user.mfa_enabled  <=>  the user owns at least one verified, active TOTP device

The flag is recomputed after every operation that can change the answer
(verify, activate, deactivate, delete, user removal).

Lock order is registry -> user directory. UserDB never calls back into
this module.
"""
import time
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, List, Callable
from datetime import datetime, timezone

from .user_db import UserDB
from ..auth.mfa import (
    generate_totp_secret,
    generate_backup_codes,
    hash_backup_codes,
    find_matching_backup_code,
    is_backup_code_format,
    match_totp,
)
from ..errors import NotFoundError, ForbiddenError, InvalidInputError

logger = logging.getLogger(__name__)

DEVICE_TYPE_TOTP = "TOTP"


@dataclass
class MfaDevice:
    device_id: int
    user_id: int
    device_name: str
    device_type: str = DEVICE_TYPE_TOTP
    secret: str = field(default="", repr=False)
    # Bcrypt hashes, in issue order
    backup_codes: List[str] = field(default_factory=list, repr=False)
    is_verified: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    # Last accepted TOTP time-step; codes at or before it are replays
    last_used_step: Optional[int] = None


@dataclass
class EnrollmentResult:
    """The only place a device's secret and plaintext backup codes are exposed."""
    device: MfaDevice
    secret: str
    backup_codes: List[str]


def _copy(device: MfaDevice) -> MfaDevice:
    return replace(device, backup_codes=list(device.backup_codes))


class MfaDeviceDB:
    """
    Thread-safe registry of MFA devices.

    Example usage:
        registry = MfaDeviceDB(user_db)

        enrollment = registry.enroll(user_id, "Phone")
        registry.verify(enrollment.device.device_id, "123456")
        registry.verify_backup_code(user_id, enrollment.backup_codes[0])
    """

    def __init__(self, user_db: UserDB, clock: Callable[[], float] = time.time):
        """
        Args:
            user_db: Directory whose MFA flags this registry maintains.
            clock: Source of Unix time for TOTP checks.
        """
        self._users = user_db
        self._clock = clock
        self._lock = threading.RLock()
        self._devices: Dict[int, MfaDevice] = {}
        self._by_user: Dict[int, List[int]] = {}
        self._next_id = 1

    # ==========================================
    # Enrollment & Verification
    # ==========================================

    def enroll(self, user_id: int, device_name: str) -> EnrollmentResult:
        """
        Create an unverified, active TOTP device for a user.

        Returns:
            EnrollmentResult with the plaintext secret and ten backup codes.

        Raises:
            NotFoundError: If the user does not exist.
        """
        secret = generate_totp_secret()
        backup_codes = generate_backup_codes()
        hashed_codes = hash_backup_codes(backup_codes)

        with self._lock:
            if self._users.get_user_by_id(user_id) is None:
                raise NotFoundError(f"User not found with id: {user_id}", "User not found")

            device = MfaDevice(
                device_id=self._next_id,
                user_id=user_id,
                device_name=device_name,
                secret=secret,
                backup_codes=hashed_codes,
                created_at=datetime.now(timezone.utc),
            )
            self._next_id += 1
            self._devices[device.device_id] = device
            self._by_user.setdefault(user_id, []).append(device.device_id)

        logger.info(f"MFA device {device.device_id} enrolled for user {user_id}")
        return EnrollmentResult(device=_copy(device), secret=secret, backup_codes=backup_codes)

    def verify(self, device_id: int, code: str) -> MfaDevice:
        """
        Confirm enrollment with a TOTP code from the authenticator app.

        Raises:
            NotFoundError: If the device does not exist.
            InvalidInputError: If the code is malformed, wrong, or already used.
        """
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise NotFoundError(f"MFA device not found with id: {device_id}", "Device not found")
            if device.device_type != DEVICE_TYPE_TOTP or not self._accept_totp(device, code):
                raise InvalidInputError(f"Invalid MFA code for device {device_id}", "Invalid MFA code")

            device.is_verified = True
            self._sync_user_mfa(device.user_id)
            verified = _copy(device)

        logger.info(f"MFA device {device_id} verified for user {verified.user_id}")
        return verified

    def check_totp(self, device_id: int, code: str) -> bool:
        """
        Login-time TOTP check against a verified, active device.

        Returns:
            True if the code is valid and its time-step has not been used before.
        """
        with self._lock:
            device = self._devices.get(device_id)
            if device is None or not device.is_active or not device.is_verified:
                return False
            if device.device_type != DEVICE_TYPE_TOTP:
                return False
            return self._accept_totp(device, code)

    def verify_backup_code(self, user_id: int, code: str) -> bool:
        """
        Redeem a backup code.

        Scans the user's devices in ascending ID order. The first exact match
        is removed before the lock is released, so a code can be redeemed
        only once even under concurrent requests.

        Returns:
            True if a code matched and was consumed.
        """
        if not code or not is_backup_code_format(code):
            return False

        with self._lock:
            for device_id in sorted(self._by_user.get(user_id, [])):
                device = self._devices[device_id]
                index = find_matching_backup_code(code, device.backup_codes)
                if index is not None:
                    device.backup_codes.pop(index)
                    device.last_used_at = datetime.now(timezone.utc)
                    logger.info(
                        f"Backup code used for user {user_id} (device {device_id}), "
                        f"{len(device.backup_codes)} remaining"
                    )
                    return True
        return False

    # ==========================================
    # Device Management
    # ==========================================

    def list_devices(self, user_id: int) -> List[MfaDevice]:
        """The user's devices in ascending ID order."""
        with self._lock:
            return [_copy(self._devices[d]) for d in sorted(self._by_user.get(user_id, []))]

    def get_device(self, device_id: int) -> Optional[MfaDevice]:
        with self._lock:
            device = self._devices.get(device_id)
            return _copy(device) if device else None

    def delete_device(self, device_id: int, user_id: int) -> bool:
        """
        Delete a device owned by `user_id`.

        Returns:
            False if the device is absent or owned by someone else.
        """
        with self._lock:
            device = self._devices.get(device_id)
            if device is None or device.user_id != user_id:
                return False

            del self._devices[device_id]
            self._by_user[user_id].remove(device_id)
            if not self._by_user[user_id]:
                del self._by_user[user_id]
            self._sync_user_mfa(user_id)

        logger.info(f"MFA device {device_id} deleted for user {user_id}")
        return True

    def activate(self, device_id: int, user_id: int) -> MfaDevice:
        """
        Raises:
            NotFoundError: If the device does not exist.
            ForbiddenError: If the device belongs to another user.
        """
        return self._set_active(device_id, user_id, True)

    def deactivate(self, device_id: int, user_id: int) -> MfaDevice:
        """
        Raises:
            NotFoundError: If the device does not exist.
            ForbiddenError: If the device belongs to another user.
        """
        return self._set_active(device_id, user_id, False)

    def regenerate_backup_codes(self, user_id: int, device_id: int) -> List[str]:
        """
        Replace a device's backup codes with ten new ones.

        Returns:
            The new plaintext codes. Every previous code stops working.

        Raises:
            NotFoundError: If the device does not exist.
            ForbiddenError: If the device belongs to another user.
        """
        with self._lock:
            self._owned_device(device_id, user_id)

        backup_codes = generate_backup_codes()
        hashed_codes = hash_backup_codes(backup_codes)

        with self._lock:
            # Re-check: the device may have been deleted while hashing
            device = self._owned_device(device_id, user_id)
            device.backup_codes = hashed_codes

        logger.info(f"Regenerated backup codes for device {device_id} (user {user_id})")
        return backup_codes

    def mfa_status(self, user_id: int) -> Dict:
        """
        Summarise a user's MFA state.

        Raises:
            NotFoundError: If the user does not exist.
        """
        with self._lock:
            user = self._users.get_user_by_id(user_id)
            if user is None:
                raise NotFoundError(f"User not found with id: {user_id}", "User not found")
            devices = [self._devices[d] for d in self._by_user.get(user_id, [])]

            return {
                "mfa_enabled": user.mfa_enabled,
                "total_devices": len(devices),
                "active_devices": sum(1 for d in devices if d.is_active),
                "verified_devices": sum(1 for d in devices if d.is_verified),
            }

    def remove_user(self, user_id: int) -> bool:
        """
        Delete a user together with every device they own.

        Returns:
            True if the user existed.
        """
        with self._lock:
            device_ids = self._by_user.pop(user_id, [])
            for device_id in device_ids:
                del self._devices[device_id]
            removed = self._users.delete_user(user_id)

        if device_ids:
            logger.info(f"Removed {len(device_ids)} MFA devices of deleted user {user_id}")
        return removed

    # ==========================================
    # Internal helpers (caller holds the lock)
    # ==========================================

    def _accept_totp(self, device: MfaDevice, code: str) -> bool:
        step = match_totp(device.secret, code, for_time=self._clock())
        if step is None:
            return False
        if device.last_used_step is not None and step <= device.last_used_step:
            logger.warning(f"Rejected replayed TOTP code for device {device.device_id}")
            return False

        device.last_used_step = step
        device.last_used_at = datetime.now(timezone.utc)
        return True

    def _owned_device(self, device_id: int, user_id: int) -> MfaDevice:
        device = self._devices.get(device_id)
        if device is None:
            raise NotFoundError(f"MFA device not found with id: {device_id}", "Device not found or unauthorized")
        if device.user_id != user_id:
            raise ForbiddenError(
                f"User {user_id} does not own MFA device {device_id}",
                "Device not found or unauthorized",
            )
        return device

    def _set_active(self, device_id: int, user_id: int, active: bool) -> MfaDevice:
        with self._lock:
            device = self._owned_device(device_id, user_id)
            device.is_active = active
            self._sync_user_mfa(user_id)
            updated = _copy(device)

        logger.info(f"MFA device {device_id} {'activated' if active else 'deactivated'} for user {user_id}")
        return updated

    def _sync_user_mfa(self, user_id: int) -> None:
        qualifying = [
            self._devices[d]
            for d in sorted(self._by_user.get(user_id, []))
            if self._devices[d].is_verified
            and self._devices[d].is_active
            and self._devices[d].device_type == DEVICE_TYPE_TOTP
        ]
        if qualifying:
            self._users.enable_mfa(user_id, qualifying[0].secret)
        else:
            self._users.disable_mfa(user_id)
