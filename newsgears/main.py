"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Authentication and per-principal rate limiting middleware
- Exception handlers mapping errors to the standard envelope
- Endpoint routers and the health check
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsgears.api.router import router as api_router
from newsgears.core.auth_filter import AuthTokenMiddleware
from newsgears.core.config import settings
from newsgears.core.errors import (
    APIError,
    AuthClaimError,
    AuthProviderError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.rate_limiting import (
    PrincipalRateLimiter,
    RateLimitMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)
from newsgears.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()


def _error_response(
    status_code: int, code: str, message: str, details: list[dict] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, details=details)
        ).model_dump(),
    )


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Converts FastAPI's validation errors to our standard format.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return _error_response(
        400,
        "VALIDATION_ERROR",
        "Request validation failed",
        [
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors()
        ],
    )


def auth_provider_error_handler(
    _request: Request, exc: AuthProviderError
) -> JSONResponse:
    """Tell the caller to use the provider the account was created with."""
    logger.warning("Auth provider mismatch", username=exc.username)
    return _error_response(
        401,
        "AUTH_PROVIDER_MISMATCH",
        "Please sign in with the provider this account was created with.",
    )


def credentials_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Token and user lookup failures raised inside endpoints.

    Security: the response never says which check failed.
    """
    logger.info("Rejected credentials", reason=type(exc).__name__)
    return _error_response(401, "INVALID_CREDENTIALS", "Invalid credentials")


def auth_claim_error_handler(_request: Request, exc: AuthClaimError) -> JSONResponse:
    logger.error("Authentication failed", reason=str(exc))
    return _error_response(401, "AUTHENTICATION_FAILED", "Authentication failed")


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Returns 500 INTERNAL_ERROR without exposing stack traces.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    rate_limiter: PrincipalRateLimiter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        session_factory: Session factory for the auth middleware's lookups.
            Defaults to the application database.
        rate_limiter: Per-principal limiter. Defaults to one built from
            settings.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="NewsGears Auth API",
        version="1.0.0",
        description="Authentication and token-claim core for NewsGears",
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # Authentication must install the principal before the rate limiter
    # reads it, and CORS must see preflights first, so it is added last.
    app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
    app.add_middleware(AuthTokenMiddleware, session_factory=session_factory)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Accept",
            "Authorization",
            settings.api_key_header_name,
            settings.api_secret_header_name,
        ],
    )

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(AuthProviderError, auth_provider_error_handler)
    app.add_exception_handler(TokenValidationError, credentials_error_handler)
    app.add_exception_handler(UsernameNotFoundError, credentials_error_handler)
    app.add_exception_handler(AuthClaimError, auth_claim_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # Per-IP limits on the open endpoints
    app.state.limiter = limiter

    app.include_router(api_router)

    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    logger.info(
        "Application configured",
        environment=settings.environment,
        single_user_mode=settings.single_user_mode,
    )
    return app


# Create the application instance
# Used by uvicorn: uvicorn newsgears.main:app
app = create_app()
