"""
BookAPI REST API - Main Application.

FastAPI-based REST API for books, users and MFA enrollment.

Usage:
    # Development
    uvicorn bookapi.api.main:app --reload --port 8000

    # Production
    uvicorn bookapi.api.main:app --host 0.0.0.0 --port 8000
"""
import os
import time
import uuid
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .deps import AuthRateLimiter, create_redis_client
from .routes import auth_router, users_router, books_router, mfa_router, health_router
from ..errors import BookAPIError
from ..services import ServiceContainer


class RequestIdFilter(logging.Filter):
    """Default request_id to '-' for records logged outside a request."""

    def filter(self, record):
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def configure_logging() -> None:
    """Root logging from LOG_LEVEL / LOG_FORMAT, with request IDs on every line."""
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format=os.getenv(
            "LOG_FORMAT",
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
        ),
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdFilter())


configure_logging()
logger = logging.getLogger(__name__)

# API metadata
API_TITLE = "BookAPI"
API_DESCRIPTION = """
**Books, Users and Multi-Factor Authentication**

- **Books** - Catalog with author and genre search
- **Users** - Accounts with unique username and email
- **MFA** - TOTP authenticator devices with single-use backup codes

## Authentication

1. Register: `POST /api/auth/register`
2. Login: `POST /api/auth/login` (add `mfa_code` once MFA is enabled)
3. Use token: `Authorization: Bearer <token>`

## Responses

Every response uses the envelope `{"success": bool, "message": str, "data": ...}`.
"""
API_VERSION = os.getenv("APP_VERSION", "0.1.0")

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # Responses may carry secrets and backup codes
    "Cache-Control": "no-store",
}


def envelope(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    """Error response in the standard envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "data": None},
        headers=headers,
    )


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "-")


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: ServiceContainer = app.state.services
    logger.info(
        f"Starting BookAPI v{API_VERSION} "
        f"({services.users.count_users()} users, {services.books.count_books()} books)"
    )

    yield

    logger.info("Shutting down BookAPI")


async def track_requests(request: Request, call_next):
    """Tag each request with an ID, time it, log it and add security headers."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.2f}"
    response.headers.update(SECURITY_HEADERS)

    # Health checks are too frequent to log
    if not request.url.path.startswith("/health"):
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
            extra={"request_id": request_id},
        )
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure in the {success, message, data} envelope."""

    @app.exception_handler(BookAPIError)
    async def bookapi_error(request: Request, exc: BookAPIError):
        logger.info(f"{type(exc).__name__}: {exc.message}", extra={"request_id": _request_id(request)})
        return envelope(exc.status_code, exc.public_message)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        problems = [
            f"{' -> '.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        return envelope(status.HTTP_400_BAD_REQUEST, "; ".join(problems))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return envelope(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"request_id": request_id})
        detail = str(exc) if os.getenv("APP_ENV") == "development" else "Internal Server Error"
        return envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, f"{detail} (request {request_id})")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Store container to serve. Built from the environment if omitted.

    Returns:
        Configured FastAPI instance.
    """
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.services = services or ServiceContainer.build()
    app.state.auth_rate_limiter = AuthRateLimiter(create_redis_client())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(track_requests)
    register_exception_handlers(app)

    for router in (health_router, auth_router, users_router, books_router, mfa_router):
        app.include_router(router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bookapi.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
