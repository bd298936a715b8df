"""Password reset endpoints.

- POST /pw_reset: open. Always answers the same way so the endpoint cannot
  be used to probe for accounts; the reset link is e-mailed when the
  account exists and is local.
- GET /pw_reset/{token}: open. The e-mailed link. Sets the PW_AUTH cookie
  and redirects to the password form, or to the error page.
- PUT /pw_update: authenticated by the PW_AUTH cookie.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from newsgears.api.deps import Codec, CurrentPrincipal, DbSession
from newsgears.core.auth import set_token_cookie
from newsgears.core.config import settings
from newsgears.core.email import send_password_reset_email
from newsgears.core.errors import (
    AuthClaimError,
    AuthProviderError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.rate_limiting import limiter
from newsgears.core.responses import DataResponse
from newsgears.core.tokens import TokenPurpose
from newsgears.services import password_reset_service

logger = logging.getLogger(__name__)

router = APIRouter()


class PasswordResetRequest(BaseModel):
    """Request body for POST /pw_reset."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1, max_length=100)
    email: EmailStr | None = None


class PasswordUpdateRequest(BaseModel):
    """Request body for PUT /pw_update."""

    model_config = ConfigDict(extra="forbid")

    new_password: str = Field(min_length=1, max_length=72)
    new_password_confirmed: str = Field(min_length=1, max_length=72)


@router.post("/pw_reset")
@limiter.limit(settings.rate_limit_account)
async def init_password_reset(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
    codec: Codec,
) -> DataResponse[dict]:
    """Start a password reset.

    Security: unknown users, mismatched e-mails, and OAuth accounts get the
    same response as a successful request.
    """
    try:
        started = await password_reset_service.init_password_reset(
            db, codec, username=body.username, email=body.email
        )
    except (UsernameNotFoundError, AuthProviderError) as exc:
        logger.info("Password reset not started", extra={"reason": type(exc).__name__})
        return DataResponse(data={"status": "ok"})

    await db.commit()
    background_tasks.add_task(
        send_password_reset_email,
        to_email=started.user.email_address,
        username=started.user.username,
        token=started.token.token,
    )
    return DataResponse(data={"status": "ok"})


@router.get("/pw_reset/{token}")
async def continue_password_reset(
    token: str,
    db: DbSession,
    codec: Codec,
) -> RedirectResponse:
    """Follow the e-mailed reset link."""
    try:
        continued = await password_reset_service.continue_password_reset(db, codec, token)
    except (TokenValidationError, AuthClaimError, UsernameNotFoundError) as exc:
        logger.info("Password reset link rejected", extra={"reason": str(exc)})
        return RedirectResponse(url=settings.pw_reset_error_url, status_code=302)

    await db.commit()
    redirect = RedirectResponse(url=settings.pw_reset_continue_url, status_code=302)
    set_token_cookie(redirect, TokenPurpose.PW_AUTH, continued.token)
    return redirect


@router.put("/pw_update")
async def update_password(
    body: PasswordUpdateRequest,
    principal: CurrentPrincipal,
    db: DbSession,
    codec: Codec,
) -> DataResponse[dict]:
    """Set a new password (PW_AUTH cookie session)."""
    await password_reset_service.update_password(
        db,
        codec,
        username=principal.username,
        new_password=body.new_password,
        new_password_confirmed=body.new_password_confirmed,
    )
    await db.commit()
    return DataResponse(data={"username": principal.username})
