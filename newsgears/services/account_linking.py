"""Account linking for OAuth logins.

The provider protocol itself happens elsewhere; this module receives the
verified external identity it produced.

Rules:
1. If provider + provider id already exists → returning user, refresh the
   provider-reported profile
2. If the e-mail belongs to an account of another provider → REJECT with
   AuthProviderError (a Google assertion must not take over a GitHub or
   local account that shares the address)
3. Otherwise → create a user named "<PROVIDER>_<email>" with a fresh auth
   claim and an API key, and mail the key to the user

A successful OAuth login is completed by establish_oauth_session(), which
issues the APP_AUTH_REFRESH cookie token the browser then trades at
/currentuser for access tokens.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.core.claims import ClaimService, random_claim_value
from newsgears.core.config import settings
from newsgears.core.email import send_api_key_recovery_email
from newsgears.core.errors import AuthProviderError
from newsgears.core.tokens import AppToken, TokenCodec, TokenPurpose
from newsgears.models.user import AuthProvider, User
from newsgears.repositories.user_repository import UserRepository
from newsgears.services.auth_service import generate_api_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by an OAuth provider.

    Attributes:
        provider: Provider that authenticated the user.
        provider_id: Provider's unique user id.
        email: E-mail address reported by the provider.
        email_verified: Whether the provider verified the address.
        name: Display name reported by the provider.
        image: Avatar URL reported by the provider.
    """

    provider: AuthProvider
    provider_id: str
    email: str | None = None
    email_verified: bool = False
    name: str | None = None
    image: str | None = None


def oauth_username(provider: AuthProvider, email: str) -> str:
    return f"{provider.value}_{email.strip().lower()}"


async def find_or_register_oauth_user(
    db: AsyncSession, identity: ExternalIdentity
) -> tuple[User, bool]:
    """Find or create the account for an OAuth identity.

    Args:
        db: Async database session.
        identity: Verified external identity.

    Returns:
        Tuple of (User, created) where created is True if a new user was made.

    Raises:
        AuthProviderError: If the e-mail belongs to another provider's account.
        ValueError: If a new account is needed but the provider gave no e-mail.
    """
    # Step 1: returning user
    user = await UserRepository.get_by_auth_provider_id(
        db, identity.provider, identity.provider_id
    )
    if user is not None:
        user = await UserRepository.update_profile(
            db,
            user,
            auth_provider_username=identity.name,
            auth_provider_profile_img_url=identity.image,
        )
        logger.info(
            "Returning OAuth user",
            extra={"username": user.username, "provider": identity.provider.value},
        )
        return user, False

    if not identity.email:
        msg = "OAuth provider did not return an e-mail address"
        raise ValueError(msg)

    # Step 2: e-mail already owned by another provider's account
    existing = await UserRepository.get_by_email(db, identity.email)
    if existing is not None:
        logger.warning(
            "OAuth login blocked by auth provider mismatch",
            extra={
                "provider": identity.provider.value,
                "existing_provider": existing.auth_provider.value,
            },
        )
        raise AuthProviderError(
            existing.username, identity.provider.value, existing.auth_provider.value
        )

    # Step 3: create
    new_user = await UserRepository.create(
        db,
        username=oauth_username(identity.provider, identity.email),
        email_address=identity.email,
        auth_provider=identity.provider,
        auth_provider_id=identity.provider_id,
        auth_provider_username=identity.name,
        auth_provider_profile_img_url=identity.image,
        auth_claim=random_claim_value(),
        is_verified=identity.email_verified,
    )
    api_key = await generate_api_key(db, new_user)
    await send_api_key_recovery_email(
        to_email=new_user.email_address,
        username=new_user.username,
        api_key=api_key.api_key,
        api_secret=api_key.api_secret,
    )
    logger.info(
        "Created new OAuth user",
        extra={"username": new_user.username, "provider": identity.provider.value},
    )
    return new_user, True


async def establish_oauth_session(
    db: AsyncSession, codec: TokenCodec, identity: ExternalIdentity
) -> tuple[User, AppToken]:
    """Link the identity and issue the refresh token for its session cookie.

    Raises:
        AuthProviderError: If the e-mail belongs to another provider's account.
    """
    user, _created = await find_or_register_oauth_user(db, identity)
    token = await ClaimService(db, codec).issue(
        TokenPurpose.APP_AUTH_REFRESH, user.username
    )
    return user, token


def is_authorized_redirect_uri(uri: str) -> bool:
    """True when `uri` matches a configured redirect URI by host and port.

    Paths are not compared, so any route of an authorized front end is
    allowed.
    """
    candidate = urlsplit(uri)
    if not candidate.hostname:
        return False
    for authorized in settings.authorized_redirect_uris:
        allowed = urlsplit(authorized)
        if (
            allowed.hostname
            and allowed.hostname.lower() == candidate.hostname.lower()
            and allowed.port == candidate.port
        ):
            return True
    return False
