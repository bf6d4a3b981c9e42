from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from app.core.config import get_settings
from app.services.alerts_config import AlertRoute, AlertTarget
from app.services.alerts_payloads import build_discord_message, build_webhook_payload
from app.services.alerts_routes import resolve_alert_route, resolve_targets, setting_str
from app.services.discord_api import get_discord_gateway

logger = structlog.get_logger(__name__)


async def _post_json(
    *,
    client: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
    event: str,
    channel: str,
) -> bool:
    try:
        response = await client.post(url, json=body)
        response.raise_for_status()
        return True
    except Exception:
        logger.exception(
            "ops_alert_delivery_failed",
            alert_event=event,
            provider=channel,
        )
        return False


async def _send_discord_dm(
    *,
    target: AlertTarget,
    event: str,
    payload: dict[str, object],
    route: AlertRoute,
    app_env: str,
) -> bool:
    message = build_discord_message(event=event, payload=payload, route=route, app_env=app_env)
    try:
        await get_discord_gateway().send_dm(target.destination, message)
        return True
    except Exception:
        logger.exception(
            "ops_alert_delivery_failed",
            alert_event=event,
            provider=target.channel,
        )
        return False


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    settings = get_settings()
    route = resolve_alert_route(
        event=event,
        policy_raw=setting_str(settings, "ops_alert_escalation_policy_json"),
    )
    targets = resolve_targets(route=route, settings=settings)
    if not targets:
        logger.info("ops_alert_skipped_no_targets", alert_event=event)
        return False

    sent_at = datetime.now(timezone.utc)
    app_env = setting_str(settings, "app_env") or "dev"

    delivered_to: list[str] = []
    failed_to: list[str] = []
    async with httpx.AsyncClient(timeout=5.0) as client:
        for target in targets:
            if target.channel == "discord":
                delivered = await _send_discord_dm(
                    target=target,
                    event=event,
                    payload=payload,
                    route=route,
                    app_env=app_env,
                )
            else:
                delivered = await _post_json(
                    client=client,
                    url=target.destination,
                    body=build_webhook_payload(
                        channel=target.channel,
                        event=event,
                        payload=payload,
                        sent_at=sent_at,
                        route=route,
                        app_env=app_env,
                    ),
                    event=event,
                    channel=target.channel,
                )
            if delivered:
                delivered_to.append(target.channel)
            else:
                failed_to.append(target.channel)

    if not delivered_to:
        logger.error(
            "ops_alert_delivery_exhausted",
            alert_event=event,
            severity=route.severity,
            escalation_tier=route.escalation_tier,
            failed_to=failed_to,
        )
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=route.severity,
        escalation_tier=route.escalation_tier,
        delivered_to=delivered_to,
        failed_to=failed_to,
    )
    return True
