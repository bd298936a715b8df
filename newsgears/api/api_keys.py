"""API key recovery endpoint.

POST /send_key: e-mails the caller's API key and secret to the address on
file. Works for web sessions and API-key callers alike.
"""

from fastapi import APIRouter

from newsgears.api.deps import CurrentPrincipal, DbSession
from newsgears.core.responses import DataResponse
from newsgears.services import auth_service

router = APIRouter()


@router.post("/send_key")
async def send_key(principal: CurrentPrincipal, db: DbSession) -> DataResponse[dict]:
    """Send the API key recovery e-mail.

    Raises:
        NotFoundError: If the account has no API key.
    """
    sent = await auth_service.send_api_key_recovery(db, principal.username)
    return DataResponse(data={"username": principal.username, "sent": sent})
