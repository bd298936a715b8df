"""Claim rotation: revoke every token of a purpose without a blacklist.

Each token purpose is bound to one claim column on the user. Tokens embed a
hash of the claim value current at issue time. Validation re-reads the claim
and compares hashes, so writing a new random claim (finalize) makes every
outstanding token of that purpose unverifiable at once, on all devices.

Claim writes are last-write-wins: two concurrent finalizations of the same
claim both succeed, and a token issued between them is already stale.
"""

import logging
import secrets
import string
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.core.errors import (
    AuthClaimError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.tokens import AppToken, TokenCodec, TokenPurpose, hash_claim
from newsgears.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_CLAIM_ALPHABET = string.ascii_letters + string.digits
_CLAIM_LENGTH = 16

# Purpose -> claim column. Both session purposes share the auth claim, so
# logging out revokes access and refresh tokens together.
CLAIM_FIELDS: dict[TokenPurpose, str] = {
    TokenPurpose.APP_AUTH: "auth_claim",
    TokenPurpose.APP_AUTH_REFRESH: "auth_claim",
    TokenPurpose.PW_RESET: "pw_reset_claim",
    TokenPurpose.PW_AUTH: "pw_reset_auth_claim",
    TokenPurpose.VERIFICATION: "verification_claim",
}


def random_claim_value() -> str:
    """Return a fresh claim: 16 random alphanumeric characters."""
    return "".join(secrets.choice(_CLAIM_ALPHABET) for _ in range(_CLAIM_LENGTH))


@dataclass(frozen=True)
class ValidatedToken:
    """Outcome of a successful claim validation."""

    username: str
    claim: str


class ClaimService:
    """Issues, validates, and rotates claim-backed tokens.

    Args:
        db: Async database session. The caller owns the transaction; claim
            writes are flushed, not committed.
        codec: Token codec used to sign and parse tokens.
    """

    def __init__(self, db: AsyncSession, codec: TokenCodec) -> None:
        self._db = db
        self._codec = codec

    async def require_claim(self, purpose: TokenPurpose, username: str) -> str:
        """Return the user's current claim for `purpose`.

        Raises:
            UsernameNotFoundError: If the user does not exist.
            AuthClaimError: If the claim column is NULL or blank.
        """
        try:
            claim = await UserRepository.get_claim(
                self._db, username, CLAIM_FIELDS[purpose]
            )
        except LookupError as exc:
            raise UsernameNotFoundError(username) from exc
        if not claim or not claim.strip():
            raise AuthClaimError(f"User has no {purpose.name} claim")
        return claim

    async def finalize(self, purpose: TokenPurpose, username: str) -> str:
        """Rotate the claim bound to `purpose`, invalidating its tokens.

        Not retried on failure: a second rotation would also revoke any token
        issued in between.

        Returns:
            The new claim value.

        Raises:
            UsernameNotFoundError: If the user does not exist.
        """
        claim = random_claim_value()
        updated = await UserRepository.update_claim(
            self._db, username, CLAIM_FIELDS[purpose], claim
        )
        if not updated:
            raise UsernameNotFoundError(username)
        logger.debug(
            "Claim finalized",
            extra={"purpose": purpose.name, "username": username},
        )
        return claim

    async def issue(self, purpose: TokenPurpose, username: str) -> AppToken:
        """Issue a token backed by the user's current claim.

        Raises:
            UsernameNotFoundError: If the user does not exist.
            AuthClaimError: If the user has no claim for the purpose.
        """
        claim = await self.require_claim(purpose, username)
        return self._codec.issue(purpose, username, claim)

    async def validate(self, purpose: TokenPurpose, token: str) -> ValidatedToken:
        """Check signature, expiry, and claim freshness of `token`.

        Steps:
        1. Parse (signature, structure, audience) and require non-expired
        2. Username must be present in the token
        3. Load the user's current claim for the purpose
        4. Claim hash must be present and match SHA-256 of the current claim
           (case-insensitive)

        Returns:
            ValidatedToken with the username and the current claim value.

        Raises:
            TokenValidationError: Bad token, expired, no username, missing or
                outdated claim hash.
            UsernameNotFoundError: If the user no longer exists.
            AuthClaimError: If the user has no claim for the purpose.
        """
        parsed = self._codec.parse(purpose, token)
        parsed.require_non_expired()

        username = parsed.extract_username()
        if not username:
            raise TokenValidationError("Username is missing from token")

        claim = await self.require_claim(purpose, username)

        claim_hash = parsed.extract_claim_hash()
        if not claim_hash:
            raise TokenValidationError("Token validation claim is missing")
        if hash_claim(claim).lower() != claim_hash.lower():
            raise TokenValidationError("Token validation claim is outdated")

        return ValidatedToken(username=username, claim=claim)
