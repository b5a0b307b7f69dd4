"""
Health Check Endpoints.

Provides health status for the API and its stores.
"""
import os
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from ..models import ApiResponse, HealthStatus
from ..deps import get_services
from ...services import ServiceContainer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

# Version from environment or default
VERSION = os.getenv("APP_VERSION", "0.1.0")


@router.get("", response_model=ApiResponse[HealthStatus])
async def health_check(
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """
    Basic health check endpoint.

    Reports store sizes and the rate limiter backend.
    """
    checks = {
        "user_db": f"healthy ({services.users.count_users()} users)",
        "book_db": f"healthy ({services.books.count_books()} books)",
    }

    redis_client = request.app.state.auth_rate_limiter.redis
    if redis_client is None:
        checks["redis"] = "fallback_mode (in-memory)"
    else:
        try:
            redis_client.ping()
            checks["redis"] = "healthy"
        except Exception as e:
            # The limiter falls back to memory, so Redis is not critical
            logger.warning(f"Health check: Redis ping failed: {e}")
            checks["redis"] = f"unhealthy: {e}"

    return ApiResponse(
        success=True,
        message="Service is healthy",
        data=HealthStatus(
            status="healthy",
            version=VERSION,
            services=checks,
            timestamp=datetime.now(timezone.utc),
        ),
    )


@router.get("/live", response_model=ApiResponse[None])
async def liveness():
    """
    Liveness check.

    Returns 200 if the service is running.
    """
    return ApiResponse(success=True, message="alive")
