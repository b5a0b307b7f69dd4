"""
User Endpoints.

Listing, lookup, full update and deletion of user accounts.
"""
from typing import List

from fastapi import APIRouter, Depends

from ..models import ApiResponse, UserResponse, UserUpdate
from ..deps import get_user_db, get_authenticator
from ...auth.authenticator import Authenticator
from ...database.user_db import UserDB, hash_password
from ...errors import NotFoundError

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("", response_model=ApiResponse[List[UserResponse]])
async def list_users(user_db: UserDB = Depends(get_user_db)):
    """List all users in ID order."""
    users = [UserResponse.from_user(user) for user in user_db.list_users()]
    return ApiResponse(success=True, message="Users retrieved successfully", data=users)


@router.get("/stats", response_model=ApiResponse[int])
async def user_stats(user_db: UserDB = Depends(get_user_db)):
    return ApiResponse(success=True, message="Total users count", data=user_db.count_users())


@router.get("/{user_id}", response_model=ApiResponse[UserResponse])
async def get_user(user_id: int, user_db: UserDB = Depends(get_user_db)):
    user = user_db.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User not found with id: {user_id}")

    return ApiResponse(success=True, message="User found", data=UserResponse.from_user(user))


@router.put(
    "/{user_id}",
    response_model=ApiResponse[UserResponse],
    responses={
        404: {"model": ApiResponse, "description": "User not found"},
        409: {"model": ApiResponse, "description": "Username or email taken by another user"},
    },
)
def update_user(
    user_id: int,
    update: UserUpdate,
    user_db: UserDB = Depends(get_user_db),
):
    """
    Replace a user's profile.

    The user ID, creation time and MFA state are preserved. The username
    and email may not collide with another account.
    """
    user = user_db.update_user(
        user_id,
        username=update.username,
        email=update.email,
        password_hash=hash_password(update.password) if update.password else None,
        first_name=update.first_name,
        last_name=update.last_name,
        phone_number=update.phone_number,
        email_verified=update.email_verified,
        phone_verified=update.phone_verified,
        is_active=update.is_active,
    )

    return ApiResponse(success=True, message="User updated successfully", data=UserResponse.from_user(user))


@router.delete("/{user_id}", response_model=ApiResponse[None])
async def delete_user(
    user_id: int,
    authenticator: Authenticator = Depends(get_authenticator),
):
    """
    Delete a user.

    The user's MFA devices and sessions are removed with it.
    """
    if not authenticator.delete_account(user_id):
        raise NotFoundError(f"User not found with id: {user_id}")

    return ApiResponse(success=True, message="User deleted successfully")
