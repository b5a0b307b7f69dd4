"""
MFA Management Endpoints.

TOTP device enrollment, verification, backup codes and device lifecycle.
Devices that do not exist and devices owned by someone else produce the
same 404 response.
"""
import os
from typing import List

from fastapi import APIRouter, Depends, Query, status

from ..models import (
    ApiResponse,
    MfaSetupResponse,
    MfaVerifyRequest,
    MfaDeviceResponse,
    MfaStatusResponse,
    BackupCodeVerifyRequest,
    BackupCodesResponse,
)
from ..deps import get_user_db, get_mfa_db
from ...auth.mfa import get_totp_provisioning_uri, generate_qr_code_base64
from ...database.mfa_db import MfaDeviceDB
from ...database.user_db import UserDB
from ...errors import NotFoundError, InvalidInputError

router = APIRouter(prefix="/api/mfa", tags=["MFA"])

DEVICE_NOT_FOUND = "Device not found or unauthorized"


@router.post(
    "/setup/totp",
    response_model=ApiResponse[MfaSetupResponse],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ApiResponse, "description": "User not found"}},
)
def setup_totp(
    user_id: int = Query(...),
    device_name: str = Query("Authenticator App", min_length=1, max_length=100),
    user_db: UserDB = Depends(get_user_db),
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    """
    Enroll a new TOTP device.

    Returns the secret, a QR code and ten backup codes. This is the only
    response that ever contains them. The device does not count towards
    MFA until verified with /api/mfa/verify.
    """
    user = user_db.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User not found with id: {user_id}", "User not found")

    enrollment = mfa_db.enroll(user_id, device_name)

    uri = get_totp_provisioning_uri(
        enrollment.secret,
        user.email,
        issuer=os.getenv("MFA_ISSUER", "BookAPI"),
    )

    return ApiResponse(
        success=True,
        message="TOTP device setup initiated",
        data=MfaSetupResponse(
            device_id=enrollment.device.device_id,
            device_name=enrollment.device.device_name,
            secret=enrollment.secret,
            provisioning_uri=uri,
            qr_code_base64=generate_qr_code_base64(uri),
            backup_codes=enrollment.backup_codes,
        ),
    )


@router.post(
    "/verify",
    response_model=ApiResponse[MfaDeviceResponse],
    responses={
        400: {"model": ApiResponse, "description": "Invalid MFA code"},
        404: {"model": ApiResponse, "description": "Device not found"},
    },
)
async def verify_device(
    verification: MfaVerifyRequest,
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    """
    Verify a device with a code from the authenticator app.

    On success the device is marked verified and MFA becomes enabled for
    its owner (while the device stays active).
    """
    device = mfa_db.verify(verification.device_id, verification.code)

    return ApiResponse(
        success=True,
        message="MFA device verified successfully",
        data=MfaDeviceResponse.from_device(device),
    )


@router.post(
    "/backup-codes/verify",
    response_model=ApiResponse[None],
    responses={400: {"model": ApiResponse, "description": "Invalid backup code"}},
)
def verify_backup_code(
    request: BackupCodeVerifyRequest,
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    """Redeem a backup code. Each code works exactly once."""
    if not mfa_db.verify_backup_code(request.user_id, request.code):
        raise InvalidInputError(f"Backup code rejected for user {request.user_id}", "Invalid backup code")

    return ApiResponse(success=True, message="Backup code accepted")


@router.post(
    "/backup-codes/regenerate",
    response_model=ApiResponse[BackupCodesResponse],
    responses={404: {"model": ApiResponse, "description": DEVICE_NOT_FOUND}},
)
def regenerate_backup_codes(
    user_id: int = Query(...),
    device_id: int = Query(...),
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    """Replace a device's backup codes. Previous codes stop working."""
    codes = mfa_db.regenerate_backup_codes(user_id, device_id)

    return ApiResponse(
        success=True,
        message="Backup codes regenerated",
        data=BackupCodesResponse(backup_codes=codes),
    )


@router.get(
    "/devices",
    response_model=ApiResponse[List[MfaDeviceResponse]],
    responses={404: {"model": ApiResponse, "description": "User not found"}},
)
async def list_devices(
    user_id: int = Query(...),
    user_db: UserDB = Depends(get_user_db),
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    """List a user's devices. Secrets and backup codes are never included."""
    if user_db.get_user_by_id(user_id) is None:
        raise NotFoundError(f"User not found with id: {user_id}", "User not found")

    devices = [MfaDeviceResponse.from_device(d) for d in mfa_db.list_devices(user_id)]
    return ApiResponse(success=True, message="MFA devices retrieved", data=devices)


@router.delete(
    "/devices/{device_id}",
    response_model=ApiResponse[None],
    responses={404: {"model": ApiResponse, "description": DEVICE_NOT_FOUND}},
)
async def delete_device(
    device_id: int,
    user_id: int = Query(...),
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    """Delete a device. MFA is disabled once no verified, active device remains."""
    if not mfa_db.delete_device(device_id, user_id):
        raise NotFoundError(f"Device {device_id} not deletable by user {user_id}", DEVICE_NOT_FOUND)

    return ApiResponse(success=True, message="MFA device deleted successfully")


@router.put(
    "/devices/{device_id}/activate",
    response_model=ApiResponse[MfaDeviceResponse],
    responses={404: {"model": ApiResponse, "description": DEVICE_NOT_FOUND}},
)
async def activate_device(
    device_id: int,
    user_id: int = Query(...),
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    device = mfa_db.activate(device_id, user_id)
    return ApiResponse(success=True, message="MFA device activated", data=MfaDeviceResponse.from_device(device))


@router.put(
    "/devices/{device_id}/deactivate",
    response_model=ApiResponse[MfaDeviceResponse],
    responses={404: {"model": ApiResponse, "description": DEVICE_NOT_FOUND}},
)
async def deactivate_device(
    device_id: int,
    user_id: int = Query(...),
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    """Deactivate a device. If it was the user's last usable device, MFA is disabled."""
    device = mfa_db.deactivate(device_id, user_id)
    return ApiResponse(success=True, message="MFA device deactivated", data=MfaDeviceResponse.from_device(device))


@router.get(
    "/status",
    response_model=ApiResponse[MfaStatusResponse],
    responses={404: {"model": ApiResponse, "description": "User not found"}},
)
async def mfa_status(
    user_id: int = Query(...),
    mfa_db: MfaDeviceDB = Depends(get_mfa_db),
):
    return ApiResponse(
        success=True,
        message="MFA status retrieved",
        data=MfaStatusResponse(**mfa_db.mfa_status(user_id)),
    )
