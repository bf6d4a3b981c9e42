from __future__ import annotations

import structlog
from fastapi import APIRouter, status
from fastapi.responses import HTMLResponse

from app.core.errors import ExternalAPIError, OAuthStateError
from app.services.identity_linking import complete_identity_link
from app.services.notification_texts import oauth_page

router = APIRouter(tags=["oauth"])
logger = structlog.get_logger(__name__)


def _page(*, title: str, message: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(content=oauth_page(title=title, message=message), status_code=status_code)


@router.get("/oauth/callback")
async def oauth_callback(code: str | None = None, state: str | None = None) -> HTMLResponse:
    if not code or not state:
        return _page(
            title="Invalid link",
            message="The authorization link is incomplete. Please use the link from your email.",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        result = await complete_identity_link(code=code, state=state)
    except OAuthStateError:
        logger.info("oauth_callback_state_rejected")
        return _page(
            title="Link expired",
            message="This invitation link has expired or was already used. Please contact support.",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    except ExternalAPIError as exc:
        logger.warning("oauth_callback_discord_failed", error_code=exc.code)
        return _page(
            title="Discord is unavailable",
            message="We could not complete the connection with Discord. Please try the link again later.",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )

    logger.info("oauth_callback_completed", mentorship_id=result.mentorship_id)
    return _page(
        title="Welcome to the Community!",
        message=(
            "You've successfully joined our Discord server. "
            "Your mentee role will be assigned shortly. You can close this window."
        ),
        status_code=status.HTTP_200_OK,
    )
