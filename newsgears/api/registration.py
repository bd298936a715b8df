"""Registration endpoints.

- POST /register: open. Creates a local account and e-mails the
  verification link along with the API key and secret.
- GET /verify/{token}: open. The e-mailed link; redirects to the
  continue or error page.
- DELETE /deregister: removes the calling account.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from newsgears.api.deps import Codec, DbSession, require_authority
from newsgears.core.config import settings
from newsgears.core.email import send_verification_email
from newsgears.core.errors import (
    AuthClaimError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.principal import UNVERIFIED, Principal
from newsgears.core.rate_limiting import limiter
from newsgears.core.responses import DataResponse
from newsgears.services import registration_service

logger = logging.getLogger(__name__)

router = APIRouter()


class RegisterRequest(BaseModel):
    """Request body for POST /register."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(max_length=100)
    password: str = Field(max_length=72)
    email: EmailStr


class RegisterResponse(BaseModel):
    username: str
    email: str


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_account)
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
    codec: Codec,
) -> DataResponse[RegisterResponse]:
    """Create a local account.

    Validation failures are reported together as REGISTRATION_FAILED.
    The API secret is only ever delivered by e-mail.
    """
    result = await registration_service.register(
        db, codec, username=body.username, password=body.password, email=body.email
    )
    await db.commit()
    background_tasks.add_task(
        send_verification_email,
        to_email=result.user.email_address,
        username=result.user.username,
        token=result.verification_token.token,
        api_key=result.api_key.api_key,
        api_secret=result.api_key.api_secret,
    )
    return DataResponse(
        data=RegisterResponse(
            username=result.user.username, email=result.user.email_address
        )
    )


@router.get("/verify/{token}")
async def verify(token: str, db: DbSession, codec: Codec) -> RedirectResponse:
    """Follow the e-mailed verification link."""
    try:
        username = await registration_service.verify(db, codec, token)
    except (TokenValidationError, AuthClaimError, UsernameNotFoundError) as exc:
        logger.info("Verification link rejected", extra={"reason": str(exc)})
        return RedirectResponse(url=settings.verification_error_url, status_code=302)

    await db.commit()
    logger.info("Account verified", extra={"username": username})
    return RedirectResponse(url=settings.verification_continue_url, status_code=302)


@router.delete("/deregister")
async def deregister(
    principal: Annotated[Principal, Depends(require_authority(UNVERIFIED))],
    db: DbSession,
) -> DataResponse[dict]:
    await registration_service.deregister(db, principal.username)
    await db.commit()
    return DataResponse(data={"username": principal.username})
