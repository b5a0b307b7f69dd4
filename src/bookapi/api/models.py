"""
Pydantic Models for BookAPI.

Request and response models for all API endpoints. Every response is
wrapped in ApiResponse ({success, message, data}). Response models are
built explicitly from store records so password hashes and MFA secrets
can never leak through a listing.
"""
from datetime import datetime
from typing import Optional, List, Dict, Generic, TypeVar
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator

from ..database.book_db import Book
from ..database.mfa_db import MfaDevice
from ..database.user_db import User, PASSWORD_MAX_BYTES

T = TypeVar("T")


def check_password_bytes(password: Optional[str]) -> Optional[str]:
    """Reject passwords bcrypt cannot hash (more than 72 bytes of UTF-8)."""
    if password is not None and len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    return password


# ============================================
# Envelope
# ============================================

class ApiResponse(BaseModel, Generic[T]):
    """
    Standard response envelope.

    All endpoints, including errors, return this shape.
    """
    success: bool
    message: str
    data: Optional[T] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "message": "Book not found with id: 42",
                "data": None
            }
        }
    )


# ============================================
# Authentication & User Models
# ============================================

class UserRegister(BaseModel):
    """
    User registration request.

    Username and email must both be unused.
    Password must be 8 characters to 72 bytes.
    """
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    email: EmailStr = Field(..., description="Valid email address")
    password: str = Field(
        ...,
        min_length=8,
        max_length=PASSWORD_MAX_BYTES,
        description="Password (8 characters to 72 bytes)",
    )
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value):
        return check_password_bytes(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "alice",
                "email": "alice@example.com",
                "password": "securepassword123"
            }
        }
    )


class UserUpdate(BaseModel):
    """
    Full replacement of a user's profile.

    Omitted optional fields are cleared; omitting the password keeps the
    current one. MFA state cannot be changed here.
    """
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: Optional[str] = Field(
        None,
        min_length=8,
        max_length=PASSWORD_MAX_BYTES,
        description="New password (8 characters to 72 bytes)",
    )
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    email_verified: bool = False
    phone_verified: bool = False
    is_active: bool = True

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value):
        return check_password_bytes(value)


class UserResponse(BaseModel):
    """User profile response. Never carries the password or MFA secret."""
    user_id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    email_verified: bool
    phone_verified: bool
    mfa_enabled: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_login: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.user_id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone_number=user.phone_number,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            mfa_enabled=user.mfa_enabled,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login=user.last_login,
        )


class LoginRequest(BaseModel):
    """
    User login request.

    Authenticate with username or email and password. If MFA is enabled,
    provide mfa_code: either a 6-digit TOTP code or an 8-digit backup code.
    """
    username_or_email: str = Field(..., min_length=1, description="Username or registered email")
    password: str = Field(..., min_length=1, description="Account password")
    mfa_code: Optional[str] = Field(None, description="6-digit TOTP code or 8-digit backup code")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username_or_email": "alice",
                "password": "securepassword123",
                "mfa_code": "123456"
            }
        }
    )


class LoginResponse(BaseModel):
    """Authentication token response."""
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration in seconds")


class PasswordResetConfirm(BaseModel):
    """Completes a password reset with the token from the reset request."""
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=PASSWORD_MAX_BYTES)

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value):
        return check_password_bytes(value)


# ============================================
# Book Models
# ============================================

class BookRequest(BaseModel):
    """Book creation / full replacement request."""
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    isbn: str = Field(..., min_length=1)
    publication_year: int = Field(..., gt=0, description="Publication year (positive)")
    genre: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "1984",
                "author": "George Orwell",
                "isbn": "978-0-452-28423-4",
                "publication_year": 1949,
                "genre": "Dystopian Fiction"
            }
        }
    )


class BookResponse(BaseModel):
    book_id: int
    title: str
    author: str
    isbn: str
    publication_year: int
    genre: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_book(cls, book: Book) -> "BookResponse":
        return cls(
            book_id=book.book_id,
            title=book.title,
            author=book.author,
            isbn=book.isbn,
            publication_year=book.publication_year,
            genre=book.genre,
            description=book.description,
            created_at=book.created_at,
            updated_at=book.updated_at,
        )


# ============================================
# MFA Models
# ============================================

class MfaSetupResponse(BaseModel):
    """
    TOTP enrollment response.

    The secret and backup codes are shown here once and never again.
    """
    device_id: int
    device_name: str
    secret: str
    provisioning_uri: str
    qr_code_base64: str
    backup_codes: List[str] = Field(..., description="One-time backup codes (store securely!)")


class MfaVerifyRequest(BaseModel):
    """MFA device verification request."""
    device_id: int
    code: str = Field(..., min_length=1, max_length=16, description="6-digit code from the authenticator app")


class BackupCodeVerifyRequest(BaseModel):
    user_id: int
    code: str = Field(..., min_length=1, max_length=16, description="8-digit backup code")


class BackupCodesResponse(BaseModel):
    backup_codes: List[str]


class MfaDeviceResponse(BaseModel):
    """MFA device listing entry. Secrets and backup codes are not included."""
    device_id: int
    user_id: int
    device_name: str
    device_type: str
    is_verified: bool
    is_active: bool
    backup_codes_remaining: int
    created_at: datetime
    last_used_at: Optional[datetime] = None

    @classmethod
    def from_device(cls, device: MfaDevice) -> "MfaDeviceResponse":
        return cls(
            device_id=device.device_id,
            user_id=device.user_id,
            device_name=device.device_name,
            device_type=device.device_type,
            is_verified=device.is_verified,
            is_active=device.is_active,
            backup_codes_remaining=len(device.backup_codes),
            created_at=device.created_at,
            last_used_at=device.last_used_at,
        )


class MfaStatusResponse(BaseModel):
    mfa_enabled: bool
    total_devices: int
    active_devices: int
    verified_devices: int


# ============================================
# Health Models
# ============================================

class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    version: str
    services: Dict[str, str]
    timestamp: datetime
