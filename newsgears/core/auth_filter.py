"""Per-request authentication: pick one strategy, run it, install the result.

Decision table, evaluated in order (open paths skip all of it):

| Condition                                         | Strategy          |
|---------------------------------------------------|-------------------|
| method is OPTIONS                                 | OPTIONS_PREFLIGHT |
| path == current-user path, single-user on         | SINGLE_USER_LOCAL |
| path == current-user path, single-user off        | REFRESH_COOKIE    |
| path starts with password-update prefix           | PASSWORD_UPDATE   |
| API key header present, single-user off           | API_KEY           |
| API key header present, single-user on            | SINGLE_USER_API   |
| API key header absent, single-user off            | BEARER_JWT        |
| API key header absent, single-user on             | SINGLE_USER_LOCAL |

A failed strategy never rejects the request here. No principal is installed
and the request continues anonymously; endpoint dependencies return 401/403.
"""

import logging
from enum import Enum

from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from newsgears.core import auth_handlers
from newsgears.core.auth import apply_token_cookies, get_token_codec
from newsgears.core.auth_handlers import AuthResult
from newsgears.core.config import settings
from newsgears.core.database import async_session_factory
from newsgears.core.errors import (
    ApiKeyError,
    AuthClaimError,
    AuthProviderError,
    MissingOptionsHeaderError,
    TokenInvalidError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.principal import install_principal
from newsgears.core.responses import ErrorDetail, ErrorResponse
from newsgears.core.tokens import TokenCodec

logger = logging.getLogger(__name__)


class AuthStrategy(Enum):
    """Authentication strategy chosen for a request."""

    OPTIONS_PREFLIGHT = "options_preflight"
    SINGLE_USER_LOCAL = "single_user_local"
    SINGLE_USER_API = "single_user_api"
    REFRESH_COOKIE = "refresh_cookie"
    PASSWORD_UPDATE = "password_update"
    API_KEY = "api_key"
    BEARER_JWT = "bearer_jwt"


def is_open_path(path: str) -> bool:
    """True when `path` bypasses authentication entirely."""
    if path in settings.open_paths:
        return True
    return any(path.startswith(prefix) for prefix in settings.open_path_prefixes)


def select_strategy(
    method: str,
    path: str,
    *,
    has_api_key_header: bool,
    single_user_mode: bool,
) -> AuthStrategy:
    """Pick exactly one strategy for a request (see module docstring)."""
    if method.upper() == "OPTIONS":
        return AuthStrategy.OPTIONS_PREFLIGHT
    if path == settings.current_user_path:
        if single_user_mode:
            return AuthStrategy.SINGLE_USER_LOCAL
        return AuthStrategy.REFRESH_COOKIE
    if path.startswith(settings.password_update_prefix):
        return AuthStrategy.PASSWORD_UPDATE
    if has_api_key_header:
        if single_user_mode:
            return AuthStrategy.SINGLE_USER_API
        return AuthStrategy.API_KEY
    if single_user_mode:
        return AuthStrategy.SINGLE_USER_LOCAL
    return AuthStrategy.BEARER_JWT


def _signing_codec() -> TokenCodec:
    try:
        return get_token_codec()
    except ValueError as exc:
        raise TokenInvalidError("Token signing is not configured") from exc


async def _run_strategy(
    strategy: AuthStrategy,
    request: Request,
    db: AsyncSession,
    codec: TokenCodec | None,
) -> AuthResult:
    match strategy:
        case AuthStrategy.OPTIONS_PREFLIGHT:
            return auth_handlers.handle_options_preflight(request)
        case AuthStrategy.SINGLE_USER_LOCAL:
            return await auth_handlers.handle_single_user(db, api=False)
        case AuthStrategy.SINGLE_USER_API:
            return await auth_handlers.handle_single_user(db, api=True)
        case AuthStrategy.API_KEY:
            return await auth_handlers.handle_api_key(db, request)

    # Only the token strategies need a signing secret.
    if codec is None:
        codec = _signing_codec()
    match strategy:
        case AuthStrategy.REFRESH_COOKIE:
            return await auth_handlers.handle_refresh_cookie(db, codec, request)
        case AuthStrategy.PASSWORD_UPDATE:
            return await auth_handlers.handle_password_update(db, codec, request)
        case AuthStrategy.BEARER_JWT:
            return await auth_handlers.handle_bearer(db, codec, request)
    raise AssertionError(f"Unhandled strategy: {strategy}")


async def authenticate_request(
    request: Request, db: AsyncSession, codec: TokenCodec | None = None
) -> AuthResult:
    """Run the selected strategy and convert failures into an AuthResult.

    Failure handling:
    - TokenValidationError, UsernameNotFoundError: anonymous, not logged
      above debug (expired sessions are routine)
    - AuthClaimError, ApiKeyError: anonymous, logged with the cause
    - MissingOptionsHeaderError: anonymous, logged with header names
    - AuthProviderError: returned as result.error for the caller to surface.
      None of the local strategies raises it; the branch is reserved for
      provider-backed strategies that load accounts by external identity
    - SQLAlchemyError: anonymous, logged with traceback

    Args:
        request: Incoming request.
        db: Session used for user and claim lookups.
        codec: Token codec; built from settings only when a token strategy
            runs, so key and single-user requests need no signing secret.

    Returns:
        AuthResult; principal is None when authentication failed.
    """
    strategy = select_strategy(
        request.method,
        request.url.path,
        has_api_key_header=bool(request.headers.get(settings.api_key_header_name)),
        single_user_mode=settings.single_user_mode,
    )
    try:
        return await _run_strategy(strategy, request, db, codec)
    except (TokenValidationError, UsernameNotFoundError) as exc:
        logger.debug(
            "Authentication skipped",
            extra={"strategy": strategy.value, "reason": str(exc)},
        )
    except (AuthClaimError, ApiKeyError) as exc:
        logger.error(
            "Authentication failed: %s",
            exc,
            extra={"strategy": strategy.value, "path": request.url.path},
        )
    except MissingOptionsHeaderError as exc:
        logger.error(
            "Missing required OPTIONS header(s); request headers: %s",
            ", ".join(exc.header_names),
            extra={"path": request.url.path},
        )
    except AuthProviderError as exc:
        return AuthResult(error=exc)
    except SQLAlchemyError:
        logger.exception(
            "Authentication lookup failed",
            extra={"strategy": strategy.value, "path": request.url.path},
        )
    return AuthResult()


def _provider_mismatch_response() -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content=ErrorResponse(
            error=ErrorDetail(
                code="AUTH_PROVIDER_MISMATCH",
                message="Please sign in with the provider this account was created with.",
            )
        ).model_dump(),
    )


class AuthTokenMiddleware(BaseHTTPMiddleware):
    """Authenticate each request and install its principal.

    Opens a short-lived session for lookups and closes it before the
    endpoint runs. Token cookies produced by the strategy (refresh
    re-issue) are written onto the downstream response.

    Args:
        app: Downstream ASGI app.
        session_factory: Session factory; defaults to the application's.
    """

    def __init__(
        self,
        app: ASGIApp,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        super().__init__(app)
        self._session_factory = session_factory or async_session_factory

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Authenticate, then forward the request whatever the outcome."""
        if is_open_path(request.url.path):
            return await call_next(request)

        async with self._session_factory() as db:
            result = await authenticate_request(request, db)

        if result.error is not None:
            logger.warning(
                "Auth provider mismatch",
                extra={"username": result.error.username},
            )
            return _provider_mismatch_response()

        if result.principal is not None:
            install_principal(request, result.principal)

        response = await call_next(request)
        apply_token_cookies(response, result.cookies)
        return response
