from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog

from app.core.config import get_settings
from app.core.errors import EmailDeliveryError
from app.services.alerts import send_ops_alert
from app.services.discord_api import DISCORD_OAUTH_AUTHORIZE_URL, get_discord_gateway
from app.services.email_client import is_email_configured, send_email
from app.services.notification_texts import (
    admin_purchase_email_subject,
    admin_purchase_email_text,
    build_oauth_authorize_url,
    invite_email_html,
    invite_email_subject,
    invite_email_text,
)

logger = structlog.get_logger(__name__)


class NotificationOrchestrator:
    """Runs post-commit side effects as detached asyncio tasks.

    A failing side effect is logged with its context and never reaches the
    request that spawned it. ``drain`` waits for whatever is still running.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str,
        **context: object,
    ) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)

        def _on_done(done: asyncio.Task[Any]) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                logger.warning("side_effect_cancelled", side_effect=name, **context)
                return
            exc = done.exception()
            if exc is not None:
                logger.error(
                    "side_effect_failed",
                    side_effect=name,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    exc_info=exc,
                    **context,
                )

        task.add_done_callback(_on_done)
        return task

    async def drain(self, *, timeout_seconds: float | None = None) -> None:
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, still_pending = await asyncio.wait(pending, timeout=timeout_seconds)
        if still_pending:
            logger.warning("side_effects_drain_timeout", pending=len(still_pending))


_orchestrator = NotificationOrchestrator()


def get_orchestrator() -> NotificationOrchestrator:
    return _orchestrator


async def send_discord_dm(*, discord_id: str, content: str, purpose: str) -> None:
    await get_discord_gateway().send_dm(discord_id, content)
    logger.info("discord_dm_sent", purpose=purpose)


async def send_invite_email(*, email: str, oauth_state: str) -> None:
    settings = get_settings()
    invite_link = build_oauth_authorize_url(
        authorize_url=DISCORD_OAUTH_AUTHORIZE_URL,
        client_id=settings.discord_client_id,
        redirect_uri=settings.discord_redirect_uri,
        state=oauth_state,
    )
    try:
        await send_email(
            to=email,
            subject=invite_email_subject(),
            text=invite_email_text(invite_link=invite_link, organization_name=settings.organization_name),
            html=invite_email_html(invite_link=invite_link, organization_name=settings.organization_name),
        )
    except EmailDeliveryError as exc:
        logger.warning("invite_email_failed", error=exc.message)
        await send_ops_alert(
            event="email_delivery_failed",
            payload={"kind": "invite", "mentee_email": email, "error": exc.message},
        )


async def notify_admin_purchase(
    *,
    mentee_email: str,
    instructor_name: str,
    offer_name: str,
    amount: Decimal | None,
    currency: str | None,
    subject_kind: str,
    purchased_at: datetime,
) -> None:
    """Emails the admin about a purchase, falling back to an operator alert."""
    settings = get_settings()
    if settings.admin_email and is_email_configured():
        try:
            await send_email(
                to=settings.admin_email,
                subject=admin_purchase_email_subject(mentee_email=mentee_email),
                text=admin_purchase_email_text(
                    mentee_email=mentee_email,
                    instructor_name=instructor_name,
                    offer_name=offer_name,
                    amount=amount,
                    currency=currency,
                    subject_kind=subject_kind,
                    purchased_at=purchased_at,
                ),
            )
            return
        except EmailDeliveryError as exc:
            logger.warning("admin_purchase_email_failed", error=exc.message)

    await send_ops_alert(
        event="new_purchase",
        payload={
            "mentee_email": mentee_email,
            "instructor": instructor_name,
            "offer": offer_name,
            "amount": f"{amount} {currency or ''}".strip() if amount is not None else None,
            "subject": subject_kind,
        },
    )
