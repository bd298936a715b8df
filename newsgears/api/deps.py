"""Shared dependencies for API endpoints.

The auth middleware has already run by the time these resolve; they only
read the principal it installed (or didn't) and enforce authorities.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.core.auth import get_token_codec
from newsgears.core.database import get_db
from newsgears.core.principal import Principal, get_principal
from newsgears.core.tokens import TokenCodec

# Security: Never include specifics about why auth failed (expired, bad sig, etc.).
_UNAUTHORIZED_DETAIL = {
    "code": "UNAUTHORIZED",
    "message": "Authentication required",
}

_FORBIDDEN_DETAIL = {
    "code": "FORBIDDEN",
    "message": "Access denied",
}


def get_current_principal(request: Request) -> Principal:
    """Return the principal installed by the auth middleware.

    Raises:
        HTTPException: 401 when the request is anonymous.
    """
    principal = get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=_UNAUTHORIZED_DETAIL,
        )
    return principal


def get_codec() -> TokenCodec:
    return get_token_codec()


# Reusable type aliases for dependency injection
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Codec = Annotated[TokenCodec, Depends(get_codec)]


def require_authority(
    *authorities: str,
) -> Callable[[Principal], Awaitable[Principal]]:
    """Build a dependency requiring any one of `authorities`.

    Usage:
        @router.get("/currentuser")
        async def current_user(
            principal: Annotated[Principal, Depends(require_authority(UNVERIFIED))],
        ): ...

    Returns:
        Dependency that yields the principal, raising 401 when anonymous and
        403 when none of the authorities is held.
    """

    async def _require(principal: CurrentPrincipal) -> Principal:
        if not any(principal.has_authority(a) for a in authorities):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=_FORBIDDEN_DETAIL,
            )
        return principal

    return _require
