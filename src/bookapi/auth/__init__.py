"""
Authentication and authorization for BookAPI.

This package provides:
- TOTP and backup code utilities (mfa)
- Password + MFA login orchestration (authenticator)
"""
from .mfa import (
    generate_totp_secret,
    get_totp_provisioning_uri,
    match_totp,
    generate_backup_codes,
    generate_qr_code_base64,
)

__all__ = [
    "generate_totp_secret",
    "get_totp_provisioning_uri",
    "match_totp",
    "generate_backup_codes",
    "generate_qr_code_base64",
]
