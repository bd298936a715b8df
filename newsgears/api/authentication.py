"""Session endpoints: login, access-token refresh, logout.

- POST /authenticate: open. Checks username + password, sets the refresh
  cookie, returns an access token.
- GET /currentuser: authenticated by the refresh cookie (the middleware
  slides the cookie forward). Returns a fresh access token.
- GET /deauthenticate: rotates the auth claim; every access and refresh
  token for the user stops working on every device.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from newsgears.api.deps import Codec, CurrentPrincipal, DbSession, require_authority
from newsgears.core.auth import get_token_codec, set_token_cookie
from newsgears.core.config import settings
from newsgears.core.principal import UNVERIFIED, Principal
from newsgears.core.rate_limiting import limiter
from newsgears.core.responses import DataResponse
from newsgears.core.tokens import TokenPurpose
from newsgears.services import auth_service

router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /authenticate."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=72)


class LoginResponse(BaseModel):
    """Access token for the Authorization: Bearer header."""

    username: str
    auth_token: str | None = None
    max_age_seconds: int | None = None


# ===================================================================
# POST /authenticate
# ===================================================================


@router.post("/authenticate")
@limiter.limit(settings.rate_limit_login)
async def authenticate(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    db: DbSession,
    codec: Codec,
) -> DataResponse[LoginResponse]:
    """Log in with username + password.

    Unauthenticated. Rate limit: RATE_LIMIT_LOGIN per IP.
    """
    tokens = await auth_service.authenticate(
        db, codec, username=body.username, password=body.password
    )
    set_token_cookie(response, TokenPurpose.APP_AUTH_REFRESH, tokens.refresh_token)
    return DataResponse(
        data=LoginResponse(
            username=tokens.username,
            auth_token=tokens.auth_token.token,
            max_age_seconds=tokens.auth_token.max_age_seconds,
        )
    )


# ===================================================================
# GET /currentuser
# ===================================================================


@router.get("/currentuser")
async def current_user(
    principal: Annotated[Principal, Depends(require_authority(UNVERIFIED))],
    db: DbSession,
) -> DataResponse[LoginResponse]:
    """Exchange the refresh cookie for a fresh access token.

    Single-user mode has no tokens; only the username is returned.
    """
    if settings.single_user_mode:
        return DataResponse(data=LoginResponse(username=principal.username))

    token = await auth_service.issue_access_token(
        db, get_token_codec(), principal.username
    )
    return DataResponse(
        data=LoginResponse(
            username=principal.username,
            auth_token=token.token,
            max_age_seconds=token.max_age_seconds,
        )
    )


# ===================================================================
# GET /deauthenticate
# ===================================================================


@router.get("/deauthenticate")
async def deauthenticate(
    principal: CurrentPrincipal,
    response: Response,
    db: DbSession,
    codec: Codec,
) -> DataResponse[dict]:
    """Log out everywhere by rotating the auth claim."""
    await auth_service.deauthenticate(db, codec, principal.username)
    await db.commit()
    response.delete_cookie(TokenPurpose.APP_AUTH_REFRESH.token_name, path="/")
    return DataResponse(data={"username": principal.username})
