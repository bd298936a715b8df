"""Email sending via Resend API.

Simple HTTP POST to Resend for the three account e-mails:
- password reset link (PW_RESET token)
- account verification link (VERIFICATION token) with the new API key
- API key recovery

Fire-and-forget: failures are logged and never propagated into the auth
flow. MAIL_DISABLED skips sending; MAIL_LOG_MESSAGES logs each message body.
"""

import logging

import httpx

from newsgears.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


async def _send(*, to_email: str | None, subject: str, text: str) -> bool:
    """POST one plain-text message to Resend.

    Returns:
        True if Resend accepted the message, False if it was skipped or failed.
    """
    if not to_email:
        logger.warning("Unable to send e-mail: no recipient address", extra={"subject": subject})
        return False

    if settings.mail_log_messages:
        logger.info("Outbound e-mail", extra={"to": to_email, "subject": subject, "body": text})

    if settings.mail_disabled:
        logger.info("Mail is disabled; message not sent", extra={"subject": subject})
        return False

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
                },
                json={
                    "from": settings.email_from,
                    "to": to_email,
                    "subject": subject,
                    "text": text,
                },
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()
    except Exception:
        logger.warning("Failed to send e-mail", extra={"subject": subject}, exc_info=True)
        return False
    return True


async def send_password_reset_email(
    *, to_email: str | None, username: str, token: str
) -> bool:
    """Send the password reset link.

    Args:
        to_email: Recipient address.
        username: Account name, shown in the message.
        token: Signed PW_RESET token embedded in the link.
    """
    reset_url = settings.pw_reset_email_url_template.format(token=token)
    return await _send(
        to_email=to_email,
        subject="Reset your NewsGears password",
        text=(
            f"Hi {username},\n\n"
            f"Follow this link to choose a new password:\n\n{reset_url}\n\n"
            "The link expires in 24 hours and works once. "
            "If you didn't request this, you can safely ignore this email."
        ),
    )


async def send_verification_email(
    *, to_email: str | None, username: str, token: str, api_key: str, api_secret: str
) -> bool:
    """Send the account verification link together with the new API key.

    Args:
        to_email: Recipient address.
        username: Account name.
        token: Signed VERIFICATION token embedded in the link.
        api_key: Public API key id.
        api_secret: API secret.
    """
    verify_url = settings.verification_email_url_template.format(token=token)
    return await _send(
        to_email=to_email,
        subject="Verify your NewsGears account",
        text=(
            f"Welcome, {username}.\n\n"
            f"Verify your account:\n\n{verify_url}\n\n"
            f"Your API key: {api_key}\n"
            f"Your API secret: {api_secret}\n\n"
            "Keep the secret safe; it is not shown again."
        ),
    )


async def send_api_key_recovery_email(
    *, to_email: str | None, username: str, api_key: str, api_secret: str
) -> bool:
    """Re-send a user's API key and secret.

    Args:
        to_email: Recipient address.
        username: Account name.
        api_key: Public API key id.
        api_secret: API secret.
    """
    return await _send(
        to_email=to_email,
        subject="Your NewsGears API key",
        text=(
            f"Hi {username},\n\n"
            f"Your API key: {api_key}\n"
            f"Your API secret: {api_secret}\n"
        ),
    )
