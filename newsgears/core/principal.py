"""Authenticated principals, their authorities, and the per-request slot.

Authorities come from two sources:
- implicit: derived from user state ("unverified" always, "verified" once
  the e-mail link was followed, "dev" when the development flag is on)
- granted: feature codes from the user's roles (web sessions only)

API principals receive only implicit authorities, prefixed with "api_". The
two namespaces never mix: a web principal never holds an "api_" authority and
an API principal holds nothing else.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from newsgears.core.config import settings
from newsgears.core.errors import UsernameNotFoundError
from newsgears.models.user import User
from newsgears.repositories.role_repository import RoleRepository
from newsgears.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

API_AUTHORITY_PREFIX = "api_"

UNVERIFIED = "unverified"
VERIFIED = "verified"
DEV = "dev"

API_UNVERIFIED = API_AUTHORITY_PREFIX + UNVERIFIED
API_VERIFIED = API_AUTHORITY_PREFIX + VERIFIED
API_DEV = API_AUTHORITY_PREFIX + DEV


@dataclass(frozen=True)
class Principal:
    """Authenticated identity installed for one request.

    Attributes:
        username: Authenticated user.
        authorities: Authority labels for authorization checks.
        credentials: The credential that authenticated the request (token,
            API key, or a random single-user placeholder).
        is_api: True for API-key (and single-user API) principals.
        password_hash_provider: Deferred lookup of the stored password hash.
    """

    username: str
    authorities: frozenset[str]
    credentials: str = field(repr=False)
    is_api: bool = False
    password_hash_provider: Callable[[], str | None] = field(
        default=lambda: None, repr=False, compare=False
    )

    def has_authority(self, authority: str) -> bool:
        return authority in self.authorities


def implicit_authorities(user: User, *, api: bool, development: bool) -> set[str]:
    """Derive authorities from user state.

    Args:
        user: Loaded user.
        api: Use the "api_" namespace.
        development: Whether the development flag is on.

    Returns:
        Authority labels.
    """
    prefix = API_AUTHORITY_PREFIX if api else ""
    authorities = {prefix + UNVERIFIED}
    if user.is_verified:
        authorities.add(prefix + VERIFIED)
    if development:
        authorities.add(prefix + DEV)
    return authorities


async def granted_authorities(db: AsyncSession, user: User) -> set[str]:
    """Feature codes granted through the user's roles.

    Codes in the "api_" namespace are dropped; they could otherwise leak
    API authorities into a web session.
    """
    features = await RoleRepository.get_features_for_user(db, user.id)
    leaked = {f for f in features if f.startswith(API_AUTHORITY_PREFIX)}
    if leaked:
        logger.warning(
            "Ignoring API-namespace feature grants on web principal",
            extra={"username": user.username, "features": sorted(leaked)},
        )
    return features - leaked


def _password_hash_provider(user: User) -> Callable[[], str | None]:
    password_hash = user.password_hash
    return lambda: password_hash


async def _require_user(db: AsyncSession, username: str) -> User:
    user = await UserRepository.get_by_username(db, username)
    if user is None:
        raise UsernameNotFoundError(username)
    return user


async def load_local_principal(
    db: AsyncSession, username: str, *, credentials: str
) -> Principal:
    """Build a web-session principal with implicit and granted authorities.

    Raises:
        UsernameNotFoundError: If the user does not exist.
    """
    user = await _require_user(db, username)
    authorities = implicit_authorities(
        user, api=False, development=settings.development
    )
    authorities |= await granted_authorities(db, user)
    return Principal(
        username=user.username,
        authorities=frozenset(authorities),
        credentials=credentials,
        is_api=False,
        password_hash_provider=_password_hash_provider(user),
    )


async def load_api_principal(
    db: AsyncSession, username: str, *, credentials: str
) -> Principal:
    """Build an API principal with implicit "api_" authorities only.

    Raises:
        UsernameNotFoundError: If the user does not exist.
    """
    user = await _require_user(db, username)
    authorities = implicit_authorities(
        user, api=True, development=settings.development
    )
    return Principal(
        username=user.username,
        authorities=frozenset(authorities),
        credentials=credentials,
        is_api=True,
        password_hash_provider=_password_hash_provider(user),
    )


def install_principal(conn: HTTPConnection, principal: Principal) -> None:
    """Install `principal` as the request's authenticated identity.

    A second call within the same request replaces the first.
    """
    conn.state.principal = principal


def get_principal(conn: HTTPConnection) -> Principal | None:
    return getattr(conn.state, "principal", None)
