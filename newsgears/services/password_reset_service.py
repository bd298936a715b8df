"""Password reset flow.

1. init_password_reset: rotate the reset claim and issue a PW_RESET token
   for the e-mailed link (any earlier link stops working)
2. continue_password_reset: the link is followed; validate it, rotate the
   reset claim (link is single use), rotate the reset-auth claim, issue a
   short-lived PW_AUTH token for the cookie
3. update_password: authenticated by the PW_AUTH cookie; rotate the
   reset-auth claim and the auth claim (signs out every session), store the
   new hash

Claim rotations run in program order within one request and are never
retried.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.core import audit
from newsgears.core.auth import hash_password, validate_password
from newsgears.core.claims import ClaimService
from newsgears.core.errors import UsernameNotFoundError, ValidationError
from newsgears.core.tokens import AppToken, TokenCodec, TokenPurpose
from newsgears.models.user import AuthProvider, User
from newsgears.repositories.user_repository import UserRepository
from newsgears.services.auth_service import require_auth_provider


@dataclass(frozen=True)
class PasswordResetStart:
    user: User
    token: AppToken


@dataclass(frozen=True)
class PasswordResetContinuation:
    username: str
    token: AppToken


async def init_password_reset(
    db: AsyncSession,
    codec: TokenCodec,
    *,
    username: str,
    email: str | None = None,
) -> PasswordResetStart:
    """Start a password reset for a local account.

    When `email` is supplied it must belong to the same account; otherwise
    the request is treated as an unknown user and no claim is rotated.

    Args:
        db: Async database session.
        codec: Token codec.
        username: Account to reset.
        email: Optional e-mail address cross-check.

    Returns:
        PasswordResetStart with the user and the PW_RESET token to mail.

    Raises:
        UsernameNotFoundError: Unknown user or mismatched e-mail.
        AuthProviderError: Account was created through OAuth.
    """
    with audit.audit_timer() as timer:
        user = await require_auth_provider(db, username, AuthProvider.LOCAL)
        if email:
            by_email = await UserRepository.get_by_email(db, email)
            if by_email is None or by_email.id != user.id:
                raise UsernameNotFoundError(username)

        claims = ClaimService(db, codec)
        await claims.finalize(TokenPurpose.PW_RESET, user.username)
        token = await claims.issue(TokenPurpose.PW_RESET, user.username)
    audit.log_password_reset_init(username=user.username, elapsed_ms=timer.elapsed_ms)
    return PasswordResetStart(user=user, token=token)


async def continue_password_reset(
    db: AsyncSession, codec: TokenCodec, token: str
) -> PasswordResetContinuation:
    """Exchange a PW_RESET link token for a PW_AUTH session token.

    Raises:
        TokenValidationError: Link is invalid, expired, or already used.
        AuthClaimError: Account has no reset claim.
        UsernameNotFoundError: Account no longer exists.
    """
    with audit.audit_timer() as timer:
        claims = ClaimService(db, codec)
        validated = await claims.validate(TokenPurpose.PW_RESET, token)
        await claims.finalize(TokenPurpose.PW_RESET, validated.username)
        await claims.finalize(TokenPurpose.PW_AUTH, validated.username)
        pw_auth_token = await claims.issue(TokenPurpose.PW_AUTH, validated.username)
    audit.log_password_reset_continue(
        username=validated.username, elapsed_ms=timer.elapsed_ms
    )
    return PasswordResetContinuation(username=validated.username, token=pw_auth_token)


async def update_password(
    db: AsyncSession,
    codec: TokenCodec,
    *,
    username: str,
    new_password: str,
    new_password_confirmed: str,
) -> None:
    """Set a new password after a reset.

    Raises:
        ValidationError: Confirmation differs or password breaks a rule.
        UsernameNotFoundError: Account no longer exists.
    """
    if new_password != new_password_confirmed:
        raise ValidationError("Passwords do not match")
    errors = validate_password(new_password)
    if errors:
        raise ValidationError(errors[0], details=[{"msg": e} for e in errors])

    with audit.audit_timer() as timer:
        claims = ClaimService(db, codec)
        await claims.finalize(TokenPurpose.PW_AUTH, username)
        await claims.finalize(TokenPurpose.APP_AUTH, username)
        await UserRepository.update_password(db, username, hash_password(new_password))
    audit.log_password_update(username=username, elapsed_ms=timer.elapsed_ms)
