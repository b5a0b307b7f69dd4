"""
TOTP and backup code primitives for BookAPI.

TOTP follows RFC 6238 (SHA-1, 6 digits, 30-second steps), so any standard
authenticator app can enroll from the provisioning URI or its QR code.

Backup codes are 8-digit numbers issued ten at a time. Only their bcrypt
hashes are stored; a code is matched exactly and then discarded by the
caller.
"""
import os
import io
import hmac
import time
import base64
import secrets
from typing import Optional, List

import bcrypt
import pyotp
import qrcode

TOTP_DIGITS = 6
BACKUP_CODE_LENGTH = 8
BACKUP_CODE_COUNT = 10


# ============================================
# Enrollment
# ============================================

def generate_totp_secret() -> str:
    """Random 160-bit secret, base32-encoded (32 characters)."""
    return pyotp.random_base32()


def get_totp_provisioning_uri(secret: str, email: str, issuer: str = "BookAPI") -> str:
    """
    Build the otpauth:// URI an authenticator app enrolls from.

    Args:
        secret: Base32 device secret.
        email: Account label shown in the app.
        issuer: Service name shown in the app.
    """
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer)


def generate_qr_code_base64(uri: str) -> str:
    """Render `uri` as a PNG QR code and return it as a data: URI."""
    image = qrcode.make(uri, box_size=10, border=4)

    png = io.BytesIO()
    image.save(png, format="PNG")
    return "data:image/png;base64," + base64.b64encode(png.getvalue()).decode("ascii")


# ============================================
# Code Matching
# ============================================

def normalize_code(code: str) -> str:
    """Strip spaces and dashes from a user-entered code."""
    return code.replace("-", "").replace(" ", "").strip()


def is_backup_code_format(code: str) -> bool:
    """Backup codes are eight digits; TOTP codes are six."""
    code = normalize_code(code)
    return len(code) == BACKUP_CODE_LENGTH and code.isascii() and code.isdigit()


def time_step(totp: pyotp.TOTP, for_time: Optional[float] = None) -> int:
    """RFC 6238 counter: whole intervals elapsed since the Unix epoch."""
    if for_time is None:
        for_time = time.time()
    return int(for_time // totp.interval)


def match_totp(
    secret: str,
    code: str,
    for_time: Optional[float] = None,
    window: int = 1,
) -> Optional[int]:
    """
    Check a TOTP code and return the time-step it matched.

    Unlike pyotp's verify(), this reports which step matched so callers
    can refuse a code whose step was already accepted.

    Args:
        secret: Base32 device secret.
        code: Code as typed by the user.
        for_time: Unix time to check against (default: now).
        window: Steps of clock drift tolerated on each side.

    Returns:
        The matching time-step counter, or None.
    """
    if not secret or not code:
        return None

    code = normalize_code(code)
    # str.isdigit() also accepts non-ASCII digits, which compare_digest rejects
    if len(code) != TOTP_DIGITS or not code.isascii() or not code.isdigit():
        return None

    totp = pyotp.TOTP(secret)
    current = time_step(totp, for_time)

    for step in range(current - window, current + window + 1):
        if hmac.compare_digest(totp.generate_otp(step), code):
            return step
    return None


def get_current_totp(secret: str, for_time: Optional[float] = None) -> str:
    """The code an authenticator app would show at `for_time`."""
    totp = pyotp.TOTP(secret)
    return totp.generate_otp(time_step(totp, for_time))


# ============================================
# Backup Codes
# ============================================

def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> List[str]:
    """`count` random zero-padded 8-digit codes from the system CSPRNG."""
    return [
        f"{secrets.randbelow(10 ** BACKUP_CODE_LENGTH):0{BACKUP_CODE_LENGTH}d}"
        for _ in range(count)
    ]


def hash_backup_code(code: str) -> str:
    """
    Bcrypt-hash a normalized backup code.

    The cost factor comes from BACKUP_CODE_BCRYPT_ROUNDS (default 10). It
    sits below the password cost because one redemption may test every
    remaining code of every device.
    """
    rounds = int(os.getenv("BACKUP_CODE_BCRYPT_ROUNDS", "10"))
    return bcrypt.hashpw(normalize_code(code).encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def hash_backup_codes(codes: List[str]) -> List[str]:
    return [hash_backup_code(code) for code in codes]


def verify_backup_code(code: str, hashed_code: str) -> bool:
    try:
        return bcrypt.checkpw(normalize_code(code).encode("utf-8"), hashed_code.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def find_matching_backup_code(code: str, hashed_codes: List[str]) -> Optional[int]:
    """Index of the stored hash that `code` matches, or None."""
    return next(
        (index for index, hashed in enumerate(hashed_codes) if verify_backup_code(code, hashed)),
        None,
    )
