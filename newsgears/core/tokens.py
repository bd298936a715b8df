"""Signed, expiring tokens that bind a username and a claim hash to a purpose.

Token layout (HS256 JWT):
- sub: username
- aud: purpose name (e.g. "APP_AUTH"); a token for one purpose never parses
  as another
- iat / exp: integer epoch seconds; exp = iat + purpose max-age
- <purpose.token_name>: SHA-256 hex of the user's current claim value

Tokens carry only the claim hash. The raw claim never leaves the server.
Signature and structure are checked at parse time; expiry is checked
separately by ParsedToken.require_non_expired() against an injectable clock.
"""

import hashlib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import jwt

from newsgears.core.errors import TokenExpiredError, TokenInvalidError

_ALGORITHM = "HS256"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenPurpose(Enum):
    """Named token use-case with a fixed lifetime and cookie/claim name.

    Values are (max_age_seconds, description).
    """

    APP_AUTH = (5 * 60, "Application session token")
    APP_AUTH_REFRESH = (24 * 60 * 60, "Application session refresh token")
    PW_RESET = (24 * 60 * 60, "Password reset link token")
    PW_AUTH = (5 * 60, "Password update session token")
    VERIFICATION = (365 * 24 * 60 * 60, "Account verification link token")

    def __init__(self, max_age_seconds: int, description: str) -> None:
        self.max_age_seconds = max_age_seconds
        self.description = description

    @property
    def token_name(self) -> str:
        """Cookie name, also used as the claim-hash key inside the token."""
        return f"newsgears-{self.name.lower()}-token"


@dataclass(frozen=True)
class AppToken:
    """A signed token and the max-age the caller should give its cookie."""

    token: str
    max_age_seconds: int


def hash_claim(claim: str) -> str:
    """Return the lowercase SHA-256 hex digest of a claim value."""
    return hashlib.sha256(claim.encode("utf-8")).hexdigest()


class ParsedToken:
    """Signature-verified token payload for one purpose.

    Expiry has NOT been checked yet; call require_non_expired() first.
    """

    def __init__(
        self, purpose: TokenPurpose, payload: dict, clock: Clock = _utcnow
    ) -> None:
        self.purpose = purpose
        self.payload = payload
        self._clock = clock

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.payload["exp"], UTC)

    def is_expired(self) -> bool:
        return self._clock() >= self.expires_at

    def require_non_expired(self) -> None:
        """Raise TokenExpiredError once the clock has reached the expiry."""
        if self.is_expired():
            raise TokenExpiredError(
                f"{self.purpose.name} token expired at {self.expires_at.isoformat()}"
            )

    def extract_username(self) -> str | None:
        return self.payload.get("sub") or None

    def extract_claim_hash(self) -> str | None:
        return self.payload.get(self.purpose.token_name) or None


class TokenCodec:
    """Issues and parses purpose-bound tokens.

    Args:
        secret: HMAC signing secret shared by every process of the deployment.
        clock: Returns the current aware datetime. Injected by tests to
            exercise expiry without sleeping.
    """

    def __init__(self, secret: str, *, clock: Clock = _utcnow) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self._clock = clock

    def issue(
        self, purpose: TokenPurpose, username: str, claim_secret: str
    ) -> AppToken:
        """Sign a token for `username` carrying the hash of `claim_secret`.

        Args:
            purpose: Token purpose; sets audience, claim key, and lifetime.
            username: Subject of the token.
            claim_secret: User's current claim value for the purpose.

        Returns:
            AppToken with the signed string and the purpose max-age.
        """
        issued_at = int(self._clock().timestamp())
        payload = {
            purpose.token_name: hash_claim(claim_secret),
            "sub": username,
            "aud": purpose.name,
            "iat": issued_at,
            "exp": issued_at + purpose.max_age_seconds,
        }
        token = jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        return AppToken(token=token, max_age_seconds=purpose.max_age_seconds)

    def parse(self, purpose: TokenPurpose, token: str) -> ParsedToken:
        """Verify signature, structure, and audience of `token`.

        Raises:
            TokenInvalidError: If the token is malformed, badly signed, lacks
                an expiry, or was issued for a different purpose.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=purpose.name,
                # Expiry is enforced against the injected clock instead.
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["exp", "aud"],
                },
            )
        except jwt.InvalidTokenError as exc:
            raise TokenInvalidError(f"Unable to parse token due to: {exc}") from exc

        if not isinstance(payload.get("exp"), int | float):
            raise TokenInvalidError("Unable to parse token due to: invalid exp")

        return ParsedToken(purpose, payload, self._clock)
