"""
API Routes for BookAPI.
"""
from .auth import router as auth_router
from .users import router as users_router
from .books import router as books_router
from .mfa import router as mfa_router
from .health import router as health_router

__all__ = [
    "auth_router",
    "users_router",
    "books_router",
    "mfa_router",
    "health_router",
]
