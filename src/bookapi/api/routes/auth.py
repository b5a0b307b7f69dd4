"""
Authentication Endpoints.

Provides user registration, login, logout, the current-user profile,
email verification and password reset.
"""
import logging

from fastapi import APIRouter, Depends, Query, Request, status

from ..models import (
    ApiResponse,
    UserRegister,
    UserResponse,
    LoginRequest,
    LoginResponse,
    PasswordResetConfirm,
)
from ..deps import (
    get_user_db,
    get_authenticator,
    get_current_user,
    check_register_rate_limit,
    check_login_rate_limit,
    check_reset_password_rate_limit,
)
from ...auth.authenticator import Authenticator
from ...database.user_db import User, UserDB, hash_password
from ...utils.secrets import mask_secret

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["Authentication"])

PASSWORD_RESET_MESSAGE = "If the email is registered, password reset instructions have been sent"


def send_token(kind: str, recipient: str, token: str) -> None:
    """Hand a token to the mail transport. Without one configured it is only logged, masked."""
    logger.info(f"Sending {kind} token {mask_secret(token)} to {recipient}")


@router.post(
    "/register",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ApiResponse, "description": "Invalid input"},
        409: {"model": ApiResponse, "description": "Username or email already exists"},
        429: {"model": ApiResponse, "description": "Too many registration attempts"},
    },
    dependencies=[Depends(check_register_rate_limit)],
)
def register(
    user_data: UserRegister,
    user_db: UserDB = Depends(get_user_db),
    authenticator: Authenticator = Depends(get_authenticator),
):
    """
    Register a new user account.

    The password is stored as a bcrypt hash and never returned. An email
    verification token is issued for the new address.
    """
    user = user_db.create_user(
        username=user_data.username,
        email=user_data.email,
        password_hash=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        phone_number=user_data.phone_number,
    )

    logger.info(f"New user registered: {user.username}")
    send_token("email verification", user.email, authenticator.request_email_verification(user.user_id))

    return ApiResponse(
        success=True,
        message="User registered successfully",
        data=UserResponse.from_user(user),
    )


@router.post(
    "/login",
    response_model=ApiResponse[LoginResponse],
    responses={
        401: {"model": ApiResponse, "description": "Invalid credentials or MFA code"},
        429: {"model": ApiResponse, "description": "Too many attempts from this IP"},
    },
    dependencies=[Depends(check_login_rate_limit)],
)
def login(
    credentials: LoginRequest,
    authenticator: Authenticator = Depends(get_authenticator),
):
    """
    Authenticate user and return access token.

    If MFA is enabled, provide mfa_code:
    - 6 digits: TOTP code from an authenticator app
    - 8 digits: one-time backup code (consumed on use)

    All failures return the same 401 message.
    """
    result = authenticator.login(
        credentials.username_or_email,
        credentials.password,
        credentials.mfa_code,
    )

    return ApiResponse(
        success=True,
        message="Login successful",
        data=LoginResponse(
            user=UserResponse.from_user(result.user),
            access_token=result.token,
            token_type="bearer",
            expires_in=result.expires_in,
        ),
    )


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    authenticator: Authenticator = Depends(get_authenticator),
):
    """
    Logout current session.

    Invalidates the current access token.
    """
    authenticator.logout(request.state.session_token)
    logger.info(f"User logged out: {user.username}")

    return ApiResponse(success=True, message="Logged out successfully")


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_current_user_profile(
    user: User = Depends(get_current_user),
):
    """
    Get current user profile.
    """
    return ApiResponse(
        success=True,
        message="User profile retrieved",
        data=UserResponse.from_user(user),
    )


@router.post(
    "/verify-email/request",
    response_model=ApiResponse[None],
    responses={401: {"model": ApiResponse, "description": "Not authenticated"}},
)
async def request_email_verification(
    user: User = Depends(get_current_user),
    authenticator: Authenticator = Depends(get_authenticator),
):
    """Send a new verification token. Earlier tokens stop working."""
    send_token("email verification", user.email, authenticator.request_email_verification(user.user_id))
    return ApiResponse(success=True, message="Verification email sent")


@router.post(
    "/verify-email",
    response_model=ApiResponse[UserResponse],
    responses={
        400: {"model": ApiResponse, "description": "Invalid verification token"},
        404: {"model": ApiResponse, "description": "User not found"},
    },
)
async def verify_email(
    user_id: int = Query(...),
    token: str = Query(..., min_length=1),
    authenticator: Authenticator = Depends(get_authenticator),
):
    """Redeem an email verification token. Each token works once."""
    user = authenticator.verify_email(user_id, token)
    return ApiResponse(
        success=True,
        message="Email verified successfully",
        data=UserResponse.from_user(user),
    )


@router.post(
    "/reset-password",
    response_model=ApiResponse[None],
    responses={429: {"model": ApiResponse, "description": "Too many reset requests"}},
    dependencies=[Depends(check_reset_password_rate_limit)],
)
async def request_password_reset(
    email: str = Query(..., min_length=1),
    authenticator: Authenticator = Depends(get_authenticator),
):
    """
    Start a password reset.

    The response is the same whether or not the email is registered.
    """
    token = authenticator.request_password_reset(email)
    if token is not None:
        send_token("password reset", email, token)

    return ApiResponse(success=True, message=PASSWORD_RESET_MESSAGE)


@router.post(
    "/reset-password/confirm",
    response_model=ApiResponse[None],
    responses={400: {"model": ApiResponse, "description": "Invalid or expired reset token"}},
)
def confirm_password_reset(
    request: PasswordResetConfirm,
    authenticator: Authenticator = Depends(get_authenticator),
):
    """Set a new password with a reset token. All open sessions are closed."""
    authenticator.reset_password(request.token, request.new_password)
    return ApiResponse(success=True, message="Password reset successfully")
