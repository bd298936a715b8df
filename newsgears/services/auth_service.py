"""Session login/logout and API key operations.

Login issues two tokens backed by the same auth claim:
- APP_AUTH_REFRESH: long-lived, set as an httpOnly cookie, presented to
  /currentuser to obtain fresh access tokens
- APP_AUTH: short-lived, returned in the body, sent as a Bearer token

Logout rotates the auth claim, revoking both on every device.
"""

import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.core import audit
from newsgears.core.auth import random_alphanumeric, verify_password
from newsgears.core.claims import ClaimService
from newsgears.core.errors import (
    AuthProviderError,
    NotFoundError,
    UnauthorizedError,
    UsernameNotFoundError,
)
from newsgears.core.email import send_api_key_recovery_email
from newsgears.core.tokens import AppToken, TokenCodec, TokenPurpose
from newsgears.models.api_key import ApiKey
from newsgears.models.user import AuthProvider, User
from newsgears.repositories.api_key_repository import ApiKeyRepository
from newsgears.repositories.user_repository import UserRepository

_API_SECRET_LENGTH = 32

_INVALID_LOGIN_MSG = "Invalid username or password"


@dataclass(frozen=True)
class LoginTokens:
    """Tokens issued on a successful login."""

    username: str
    auth_token: AppToken
    refresh_token: AppToken


async def require_auth_provider(
    db: AsyncSession, username: str, expected: AuthProvider
) -> User:
    """Load `username` and require it was created with `expected`.

    Raises:
        UsernameNotFoundError: If the user does not exist.
        AuthProviderError: If the account belongs to another provider.
    """
    user = await UserRepository.get_by_username(db, username)
    if user is None:
        raise UsernameNotFoundError(username)
    if user.auth_provider != expected:
        raise AuthProviderError(username, expected.value, user.auth_provider.value)
    return user


async def authenticate(
    db: AsyncSession, codec: TokenCodec, *, username: str, password: str
) -> LoginTokens:
    """Check a local username/password and issue session tokens.

    Security: unknown users and wrong passwords get the same error and the
    same bcrypt cost (DUMMY_HASH), so neither leaks account existence.

    Args:
        db: Async database session.
        codec: Token codec.
        username: Login name.
        password: Plain-text password.

    Returns:
        LoginTokens with the access and refresh tokens.

    Raises:
        UnauthorizedError: Unknown user or wrong password.
        AuthProviderError: Account was created through OAuth.
        AuthClaimError: Account has no auth claim.
    """
    with audit.audit_timer() as timer:
        try:
            user = await require_auth_provider(db, username, AuthProvider.LOCAL)
        except UsernameNotFoundError:
            verify_password(password, None)
            raise UnauthorizedError(_INVALID_LOGIN_MSG) from None

        if not verify_password(password, user.password_hash):
            raise UnauthorizedError(_INVALID_LOGIN_MSG)

        claims = ClaimService(db, codec)
        refresh_token = await claims.issue(TokenPurpose.APP_AUTH_REFRESH, user.username)
        auth_token = await claims.issue(TokenPurpose.APP_AUTH, user.username)
    audit.log_login(username=user.username, elapsed_ms=timer.elapsed_ms)
    return LoginTokens(
        username=user.username, auth_token=auth_token, refresh_token=refresh_token
    )


async def issue_access_token(
    db: AsyncSession, codec: TokenCodec, username: str
) -> AppToken:
    """Issue a fresh APP_AUTH token from the current auth claim."""
    return await ClaimService(db, codec).issue(TokenPurpose.APP_AUTH, username)


async def deauthenticate(db: AsyncSession, codec: TokenCodec, username: str) -> None:
    """Rotate the auth claim, revoking every access and refresh token."""
    with audit.audit_timer() as timer:
        await ClaimService(db, codec).finalize(TokenPurpose.APP_AUTH, username)
    audit.log_logout(username=username, elapsed_ms=timer.elapsed_ms)


async def generate_api_key(db: AsyncSession, user: User) -> ApiKey:
    """Create the user's API key (uuid4 id, 32-character secret).

    Raises:
        sqlalchemy.exc.IntegrityError: If the user already has a key.
    """
    return await ApiKeyRepository.create(
        db,
        user_id=user.id,
        api_key=str(uuid.uuid4()),
        api_secret=random_alphanumeric(_API_SECRET_LENGTH),
    )


async def find_user_by_api_key(db: AsyncSession, api_key: str) -> User | None:
    return await UserRepository.get_by_api_key(db, api_key)


async def send_api_key_recovery(db: AsyncSession, username: str) -> bool:
    """E-mail the user's API key and secret to their address on file.

    Returns:
        True if the message was accepted for delivery.

    Raises:
        UsernameNotFoundError: If the user does not exist.
        NotFoundError: If the user has no API key.
    """
    with audit.audit_timer() as timer:
        user = await UserRepository.get_by_username(db, username)
        if user is None:
            raise UsernameNotFoundError(username)
        api_key = await ApiKeyRepository.get_by_user_id(db, user.id)
        if api_key is None:
            raise NotFoundError("API key")
        sent = await send_api_key_recovery_email(
            to_email=user.email_address,
            username=user.username,
            api_key=api_key.api_key,
            api_secret=api_key.api_secret,
        )
    audit.log_api_key_recovery(username=username, elapsed_ms=timer.elapsed_ms)
    return sent
