"""
FastAPI Dependencies for BookAPI.

Provides:
- Store accessors (resolved from the service container on app.state)
- Authentication dependencies
- Auth rate limiting (Redis-backed with in-memory fallback)
"""
import os
import time
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional, Dict, Deque, Tuple, Callable

import redis
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..auth.authenticator import Authenticator
from ..database.book_db import BookDB
from ..database.mfa_db import MfaDeviceDB
from ..database.user_db import User, UserDB
from ..services import ServiceContainer
from ..utils.secrets import get_secret

logger = logging.getLogger(__name__)


# ============================================
# Redis Client
# ============================================

def create_redis_client() -> Optional[redis.Redis]:
    """
    Connect to Redis if REDIS_HOST is configured.

    Returns None if Redis is not configured or unavailable.
    """
    host = os.getenv("REDIS_HOST")
    if not host:
        logger.info("REDIS_HOST not set. Rate limiting will use in-memory storage.")
        return None

    port = int(os.getenv("REDIS_PORT", "6379"))
    password = get_secret("REDIS_PASSWORD") or None
    db = int(os.getenv("REDIS_DB", "0"))

    try:
        client = redis.Redis(
            host=host,
            port=port,
            password=password,
            db=db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        # Test connection
        client.ping()
        logger.info(f"Redis connected: {host}:{port}")
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will use in-memory fallback.")
        return None


# Security scheme
security = HTTPBearer(auto_error=False)


# ============================================
# Service Dependencies
# ============================================

def get_services(request: Request) -> ServiceContainer:
    """Get the service container built at startup."""
    return request.app.state.services


def get_user_db(services: ServiceContainer = Depends(get_services)) -> UserDB:
    return services.users


def get_book_db(services: ServiceContainer = Depends(get_services)) -> BookDB:
    return services.books


def get_mfa_db(services: ServiceContainer = Depends(get_services)) -> MfaDeviceDB:
    return services.devices


def get_authenticator(services: ServiceContainer = Depends(get_services)) -> Authenticator:
    return services.authenticator


# ============================================
# Authentication Dependencies
# ============================================

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    authenticator: Authenticator = Depends(get_authenticator),
) -> User:
    """
    Validate bearer token and return current user.

    The token is kept on request.state for logout.

    Raises:
        HTTPException: If token is missing, invalid, or expired.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    user = authenticator.resolve_session(token)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.session_token = token
    return user


# ============================================
# Auth Rate Limiting (IP-based, unauthenticated endpoints)
# ============================================

@dataclass(frozen=True)
class RateLimit:
    requests: int
    window_seconds: int
    detail: str


AUTH_RATE_LIMITS: Dict[str, RateLimit] = {
    "register": RateLimit(5, 3600, "Too many registration attempts. Try again later."),
    "login": RateLimit(10, 900, "Too many login attempts from this IP. Try again later."),
    "reset_password": RateLimit(5, 3600, "Too many password reset requests. Try again later."),
}


class AuthRateLimiter:
    """
    Per-IP request counter for the register and login endpoints.

    Redis holds a fixed window per (action, ip) when available; otherwise a
    sliding window of timestamps is kept in process memory. A Redis error
    on any call falls through to the in-memory window.
    """

    KEY_PREFIX = "bookapi:auth_ratelimit"

    def __init__(self, redis_client: Optional[redis.Redis] = None, limits: Optional[Dict[str, RateLimit]] = None):
        self.redis = redis_client
        self.limits = dict(limits or AUTH_RATE_LIMITS)
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}

    def check(self, action: str, ip: str) -> Tuple[bool, int]:
        """
        Check whether `ip` may perform `action` now.

        Returns:
            Tuple of (allowed, remaining_requests)
        """
        limit = self.limits[action]
        remaining = limit.requests - self._count(f"{action}:{ip}", limit.window_seconds)
        return remaining > 0, max(0, remaining)

    def record(self, action: str, ip: str) -> int:
        """Count one request. Returns the number of requests in the current window."""
        limit = self.limits[action]
        key = f"{action}:{ip}"

        if self.redis is not None:
            try:
                pipe = self.redis.pipeline()
                pipe.incr(f"{self.KEY_PREFIX}:{key}")
                pipe.expire(f"{self.KEY_PREFIX}:{key}", limit.window_seconds)
                return pipe.execute()[0]
            except redis.RedisError as e:
                logger.warning(f"Redis error recording {action} for {ip}: {e}")

        with self._lock:
            hits = self._prune(key, limit.window_seconds)
            hits.append(time.time())
            self._hits[key] = hits
            return len(hits)

    def _count(self, key: str, window_seconds: int) -> int:
        if self.redis is not None:
            try:
                count = self.redis.get(f"{self.KEY_PREFIX}:{key}")
                return int(count) if count else 0
            except redis.RedisError as e:
                logger.warning(f"Redis error reading rate limit {key}: {e}")

        with self._lock:
            return len(self._prune(key, window_seconds))

    def _prune(self, key: str, window_seconds: int) -> Deque[float]:
        """Drop hits older than the window. Keys left with no hits are removed."""
        hits = self._hits.get(key)
        if hits is None:
            return deque()

        cutoff = time.time() - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits


def _rate_limit_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def rate_limit(action: str) -> Callable:
    """
    Build a dependency enforcing the per-IP limit for `action`.

    Raises HTTPException 429 (with Retry-After) once the limit is reached.
    """
    async def dependency(request: Request) -> None:
        if not _rate_limit_enabled():
            return

        ip = request.client.host if request.client else "unknown"
        limiter: AuthRateLimiter = request.app.state.auth_rate_limiter

        allowed, _ = limiter.check(action, ip)
        if not allowed:
            limit = limiter.limits[action]
            logger.warning(f"Rate limit hit: {action} from {ip}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=limit.detail,
                headers={
                    "Retry-After": str(limit.window_seconds),
                    "X-RateLimit-Remaining": "0",
                },
            )

        limiter.record(action, ip)

    return dependency


check_register_rate_limit = rate_limit("register")
check_login_rate_limit = rate_limit("login")
check_reset_password_rate_limit = rate_limit("reset_password")
