"""Authentication helpers for token cookies, password hashing, and validation.

Shared utilities used by the auth middleware, services, and endpoints.

Pipeline:
- get_token_codec: codec signed with the configured TOKEN_SECRET
- set_token_cookie / get_token_cookie: one httpOnly cookie per token purpose
- hash_password / verify_password: bcrypt, cost 12
- validate_password / validate_username: registration format rules
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import logging
import secrets
import string
from dataclasses import dataclass

import bcrypt
from fastapi import Request, Response

from newsgears.core.config import settings
from newsgears.core.tokens import AppToken, TokenCodec, TokenPurpose

logger = logging.getLogger(__name__)

# bcrypt cost factor for password hashing
_BCRYPT_ROUNDS = 12

_MIN_PASSWORD_LENGTH = 6
# bcrypt rejects input longer than 72 bytes
_MAX_PASSWORD_BYTES = 72
_MAX_USERNAME_LENGTH = 100

_ALPHANUMERIC = string.ascii_letters + string.digits

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


@dataclass(frozen=True)
class TokenCookie:
    """A token cookie to be written onto a response."""

    purpose: TokenPurpose
    token: AppToken


def get_token_codec() -> TokenCodec:
    """Build a codec signed with the configured secret.

    Read per call so tests and reloads that swap settings.token_secret
    take effect immediately.

    Raises:
        ValueError: If TOKEN_SECRET is empty.
    """
    return TokenCodec(settings.token_secret.get_secret_value())


def set_token_cookie(response: Response, purpose: TokenPurpose, token: AppToken) -> None:
    """Set the httpOnly cookie for `purpose` on a response.

    Security: httpOnly prevents XSS cookie theft. Secure is dropped only when
    the development flag is on (plain-HTTP localhost).

    Args:
        response: FastAPI response object.
        purpose: Token purpose; sets the cookie name.
        token: Signed token and its max-age.
    """
    response.set_cookie(
        key=purpose.token_name,
        value=token.token,
        max_age=token.max_age_seconds,
        path="/",
        httponly=True,
        secure=not settings.development,
    )


def apply_token_cookies(response: Response, cookies: list[TokenCookie]) -> None:
    for cookie in cookies:
        set_token_cookie(response, cookie.purpose, cookie.token)


def get_token_cookie(request: Request, purpose: TokenPurpose) -> str | None:
    """Return the raw token from the purpose's cookie, if present and non-blank."""
    value = request.cookies.get(purpose.token_name)
    if value and value.strip():
        return value
    return None


def hash_password(password: str) -> str:
    return bcrypt.hashpw(
        password.encode(), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
    ).decode()


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check a password against a stored bcrypt hash.

    Security: always performs a bcrypt comparison, against DUMMY_HASH when
    there is no stored hash, so response time does not reveal whether the
    account exists or has a password. Input over the bcrypt limit can never
    match a stored hash and is rejected the same way.
    """
    encoded = password.encode()
    if not password_hash or len(encoded) > _MAX_PASSWORD_BYTES:
        bcrypt.checkpw(encoded[:_MAX_PASSWORD_BYTES], DUMMY_HASH)
        return False
    return bcrypt.checkpw(encoded, password_hash.encode())


def random_alphanumeric(length: int) -> str:
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def validate_password(password: str | None) -> list[str]:
    """Return every password rule the candidate breaks (empty when valid)."""
    if not password or not password.strip():
        return ["Password may not be empty"]
    errors = []
    if len(password) < _MIN_PASSWORD_LENGTH:
        errors.append(
            f"Password must be at least {_MIN_PASSWORD_LENGTH} characters"
        )
    if len(password.encode()) > _MAX_PASSWORD_BYTES:
        errors.append(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes")
    return errors


def validate_username(username: str | None) -> list[str]:
    """Return every username rule the candidate breaks (empty when valid)."""
    if not username or not username.strip():
        return ["Username may not be empty"]
    errors = []
    if len(username) > _MAX_USERNAME_LENGTH:
        errors.append(f"Username must be at most {_MAX_USERNAME_LENGTH} characters")
    if username != username.strip():
        errors.append("Username may not start or end with whitespace")
    return errors
