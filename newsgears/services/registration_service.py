"""Account registration, e-mail verification, and deregistration.

Registration rotates the verification, auth, and password reset claims
before anything is issued, so a new account never starts with a NULL claim,
then creates the API key and the VERIFICATION token for the welcome e-mail.
"""

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.core import audit
from newsgears.core.auth import hash_password, validate_password, validate_username
from newsgears.core.claims import ClaimService
from newsgears.core.errors import RegistrationError, UsernameNotFoundError
from newsgears.core.tokens import AppToken, TokenCodec, TokenPurpose
from newsgears.models.api_key import ApiKey
from newsgears.models.user import AuthProvider, User
from newsgears.repositories.user_repository import UserRepository
from newsgears.services.auth_service import generate_api_key


@dataclass(frozen=True)
class RegistrationResult:
    user: User
    api_key: ApiKey
    verification_token: AppToken


async def register(
    db: AsyncSession,
    codec: TokenCodec,
    *,
    username: str,
    password: str,
    email: str | None,
) -> RegistrationResult:
    """Create a local account.

    Every failed rule is reported together.

    Args:
        db: Async database session.
        codec: Token codec.
        username: Requested login name.
        password: Plain-text password.
        email: Address for the verification link.

    Returns:
        RegistrationResult with the user, API key, and VERIFICATION token.

    Raises:
        RegistrationError: One or more validation or uniqueness failures.
    """
    errors = validate_username(username) + validate_password(password)
    if not email or not email.strip():
        errors.append("Email address may not be empty")
    if not errors:
        if await UserRepository.username_exists(db, username):
            errors.append("Username is already taken")
        if await UserRepository.email_exists(db, email):
            errors.append("Email address is already in use")
    if errors:
        raise RegistrationError(errors)

    with audit.audit_timer() as timer:
        try:
            user = await UserRepository.create(
                db,
                username=username,
                email_address=email,
                password_hash=hash_password(password),
                auth_provider=AuthProvider.LOCAL,
            )
        except IntegrityError as exc:
            await db.rollback()
            raise RegistrationError(["Username or email address is already in use"]) from exc

        claims = ClaimService(db, codec)
        await claims.finalize(TokenPurpose.VERIFICATION, user.username)
        await claims.finalize(TokenPurpose.APP_AUTH, user.username)
        await claims.finalize(TokenPurpose.PW_RESET, user.username)
        api_key = await generate_api_key(db, user)
        token = await claims.issue(TokenPurpose.VERIFICATION, user.username)
    audit.log_registration(username=user.username, elapsed_ms=timer.elapsed_ms)
    return RegistrationResult(user=user, api_key=api_key, verification_token=token)


async def verify(db: AsyncSession, codec: TokenCodec, token: str) -> str:
    """Mark the account verified and retire the verification link.

    Returns:
        Username of the verified account.

    Raises:
        TokenValidationError: Link is invalid, expired, or already used.
        AuthClaimError: Account has no verification claim.
        UsernameNotFoundError: Account no longer exists.
    """
    with audit.audit_timer() as timer:
        claims = ClaimService(db, codec)
        validated = await claims.validate(TokenPurpose.VERIFICATION, token)
        await UserRepository.set_verified(db, validated.username)
        await claims.finalize(TokenPurpose.VERIFICATION, validated.username)
    audit.log_verification(username=validated.username, elapsed_ms=timer.elapsed_ms)
    return validated.username


async def deregister(db: AsyncSession, username: str) -> None:
    """Delete the account, its API key, and its role assignments.

    Raises:
        UsernameNotFoundError: If the user does not exist.
    """
    with audit.audit_timer() as timer:
        user = await UserRepository.get_by_username(db, username)
        if user is None:
            raise UsernameNotFoundError(username)
        await UserRepository.delete(db, user)
    audit.log_deregistration(username=username, elapsed_ms=timer.elapsed_ms)
