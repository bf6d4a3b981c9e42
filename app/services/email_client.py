from __future__ import annotations

import httpx
import structlog

from app.core.config import get_settings
from app.core.errors import EmailDeliveryError

logger = structlog.get_logger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"
EMAIL_TIMEOUT_SECONDS = 10.0


def is_email_configured() -> bool:
    settings = get_settings()
    return bool(settings.resend_api_key.strip() and settings.resend_from_email.strip())


async def send_email(
    *,
    to: str,
    subject: str,
    text: str,
    html: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Sends one email through Resend and returns the provider message id."""
    settings = get_settings()
    if not is_email_configured():
        raise EmailDeliveryError("Email delivery is not configured")

    body: dict[str, object] = {
        "from": settings.resend_from_email,
        "to": [to],
        "subject": subject,
        "text": text,
    }
    if html is not None:
        body["html"] = html

    try:
        async with httpx.AsyncClient(timeout=EMAIL_TIMEOUT_SECONDS, transport=transport) as client:
            response = await client.post(
                RESEND_EMAILS_URL,
                json=body,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"Email transport failed: {exc.__class__.__name__}") from exc

    if not response.is_success:
        raise EmailDeliveryError(
            f"Email provider rejected message ({response.status_code})",
            details={"status_code": response.status_code},
        )

    message_id = str(response.json().get("id", ""))
    logger.info("email_sent", subject=subject, message_id=message_id)
    return message_id
