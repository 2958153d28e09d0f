"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import health, users
from core.cache import create_cache_backend
from core.config import get_settings
from db.session import create_tables
from services.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    UserNotFoundError,
    UserStoreError,
    UserValidationError,
)
from services.user_read_model import UserReadModel, set_user_read_model

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: Ensure the users table exists
    await create_tables()

    # Startup: Connect the cache backend (Redis, or in-memory stand-in)
    cache = await create_cache_backend(app_settings)

    # Startup: Initialize the user read model
    set_user_read_model(
        UserReadModel(
            cache,
            cache_enabled=app_settings.cache_enabled,
            default_ttl=app_settings.cache_default_ttl,
        ),
    )

    yield

    # Shutdown: Clean up read model and cache
    set_user_read_model(None)
    await cache.close()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each incoming request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Log method and path, then process the request."""
        logger.info("request method=%s path=%s", request.method, request.url.path)
        return await call_next(request)


app_settings = get_settings()

app = FastAPI(
    title="User Service API",
    description="User accounts: registration, authentication, profiles, and admin listing.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(UserNotFoundError)
async def user_not_found_handler(_request: Request, exc: UserNotFoundError) -> JSONResponse:
    """Missing user -> 404."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(UserValidationError)
async def user_validation_handler(_request: Request, exc: UserValidationError) -> JSONResponse:
    """Malformed query input -> 400."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(EmailAlreadyExistsError)
async def email_exists_handler(_request: Request, exc: EmailAlreadyExistsError) -> JSONResponse:
    """Duplicate email -> 409."""
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InvalidCredentialsError)
async def invalid_credentials_handler(
    _request: Request, exc: InvalidCredentialsError,
) -> JSONResponse:
    """Failed login -> 401."""
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(UserStoreError)
async def user_store_error_handler(_request: Request, exc: UserStoreError) -> JSONResponse:
    """Primary store failure -> 500 with the generic message only."""
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.add_middleware(RequestLoggingMiddleware)

# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(users.router, prefix=app_settings.api_prefix)
