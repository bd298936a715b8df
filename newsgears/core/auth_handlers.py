"""Request authentication strategy handlers.

One handler per strategy chosen by the auth middleware. Each either returns
an AuthResult carrying the principal to install or raises an
AuthenticationError subclass; the middleware decides what to swallow.

Handlers:
- handle_options_preflight: CORS preflight header check, no principal
- handle_api_key: API key + secret headers, API principal
- handle_bearer: Authorization: Bearer APP_AUTH token, web principal
- handle_refresh_cookie: APP_AUTH_REFRESH cookie, web principal, re-issues
  the cookie (sliding refresh)
- handle_password_update: PW_AUTH cookie, web principal
- handle_single_user: configured admin, no token machinery
"""

import hmac
import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from newsgears.core.auth import TokenCookie, get_token_cookie, random_alphanumeric
from newsgears.core.claims import ClaimService
from newsgears.core.config import settings
from newsgears.core.errors import (
    ApiKeyError,
    AuthProviderError,
    MissingOptionsHeaderError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.principal import (
    Principal,
    load_api_principal,
    load_local_principal,
)
from newsgears.core.tokens import TokenCodec, TokenPurpose
from newsgears.repositories.api_key_repository import ApiKeyRepository
from newsgears.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_PREFLIGHT_HEADERS = (
    "access-control-request-method",
    "access-control-request-headers",
)

_BEARER_PREFIX = "bearer "

# Length of the per-call credential placeholder in single-user mode
_SINGLE_USER_CREDENTIAL_LENGTH = 32


@dataclass
class AuthResult:
    """Outcome of authenticating one request.

    Attributes:
        principal: Identity to install, None to proceed anonymously.
        cookies: Token cookies to set on the response.
        error: Hard failure the caller must surface (provider mismatch).
    """

    principal: Principal | None = None
    cookies: list[TokenCookie] = field(default_factory=list)
    error: AuthProviderError | None = None

    @property
    def authenticated(self) -> bool:
        return self.principal is not None


def handle_options_preflight(request: Request) -> AuthResult:
    """Require both Access-Control-Request-* headers on an OPTIONS request.

    Raises:
        MissingOptionsHeaderError: If either header is missing, carrying
            every header name on the request.
    """
    if not all(request.headers.get(name) for name in _PREFLIGHT_HEADERS):
        raise MissingOptionsHeaderError(request.headers.keys())
    return AuthResult()


async def handle_api_key(db: AsyncSession, request: Request) -> AuthResult:
    """Authenticate with the API key and secret headers.

    The secret is compared directly with the stored value; API credentials
    are revoked by deleting the key, not by claim rotation.

    Raises:
        ApiKeyError: Header missing, unknown key, user has no key, or
            key/secret mismatch.
        UsernameNotFoundError: If the owner vanished mid-request.
    """
    api_key = (request.headers.get(settings.api_key_header_name) or "").strip()
    api_secret = (request.headers.get(settings.api_secret_header_name) or "").strip()
    if not api_key or not api_secret:
        raise ApiKeyError("API key and secret headers are required")

    user = await UserRepository.get_by_api_key(db, api_key)
    if user is None:
        raise ApiKeyError("API key not found")

    stored = await ApiKeyRepository.get_by_user_id(db, user.id)
    if stored is None:
        raise ApiKeyError(f"User has no API key: {user.username}")

    key_matches = hmac.compare_digest(stored.api_key.encode(), api_key.encode())
    secret_matches = hmac.compare_digest(
        stored.api_secret.encode(), api_secret.encode()
    )
    if not (key_matches and secret_matches):
        raise ApiKeyError("API key or secret mismatch")

    principal = await load_api_principal(db, user.username, credentials=api_key)
    return AuthResult(principal=principal)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    if header[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


async def handle_bearer(
    db: AsyncSession, codec: TokenCodec, request: Request
) -> AuthResult:
    """Authenticate with an APP_AUTH token in the Authorization header.

    Raises:
        TokenValidationError: Missing header or failed claim validation.
        AuthClaimError: If the user has no auth claim.
        UsernameNotFoundError: If the token's user does not exist.
    """
    token = _bearer_token(request)
    if token is None:
        raise TokenValidationError("Bearer token is missing")

    validated = await ClaimService(db, codec).validate(TokenPurpose.APP_AUTH, token)
    principal = await load_local_principal(db, validated.username, credentials=token)
    return AuthResult(principal=principal)


async def handle_refresh_cookie(
    db: AsyncSession, codec: TokenCodec, request: Request
) -> AuthResult:
    """Authenticate with the refresh cookie and slide its expiry forward.

    The re-issued token carries the same (unrotated) auth claim, so other
    outstanding tokens stay valid.

    Raises:
        TokenValidationError: Missing cookie or failed claim validation.
        AuthClaimError: If the user has no auth claim.
        UsernameNotFoundError: If the token's user does not exist.
    """
    purpose = TokenPurpose.APP_AUTH_REFRESH
    token = get_token_cookie(request, purpose)
    if token is None:
        raise TokenValidationError("Refresh cookie is missing")

    validated = await ClaimService(db, codec).validate(purpose, token)
    principal = await load_local_principal(db, validated.username, credentials=token)
    refreshed = codec.issue(purpose, validated.username, validated.claim)
    return AuthResult(
        principal=principal,
        cookies=[TokenCookie(purpose=purpose, token=refreshed)],
    )


async def handle_password_update(
    db: AsyncSession, codec: TokenCodec, request: Request
) -> AuthResult:
    """Authenticate a password update with the PW_AUTH cookie.

    Raises:
        TokenValidationError: Missing cookie or failed claim validation.
        AuthClaimError: If the user has no password reset auth claim.
        UsernameNotFoundError: If the token's user does not exist.
    """
    purpose = TokenPurpose.PW_AUTH
    token = get_token_cookie(request, purpose)
    if token is None:
        raise TokenValidationError("Password update cookie is missing")

    validated = await ClaimService(db, codec).validate(purpose, token)
    principal = await load_local_principal(db, validated.username, credentials=token)
    return AuthResult(principal=principal)


async def handle_single_user(db: AsyncSession, *, api: bool) -> AuthResult:
    """Authenticate every request as the configured admin.

    The credential is random per call and never persisted.

    Raises:
        UsernameNotFoundError: If the admin user has not been created.
    """
    username = settings.admin_username
    if not username:
        raise UsernameNotFoundError()
    credentials = random_alphanumeric(_SINGLE_USER_CREDENTIAL_LENGTH)
    loader = load_api_principal if api else load_local_principal
    principal = await loader(db, username, credentials=credentials)
    return AuthResult(principal=principal)
