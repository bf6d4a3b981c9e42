from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from app.services.alerts_config import SEVERITY_COLOR, SEVERITY_EMOJI, AlertRoute

DISCORD_MESSAGE_LIMIT = 2000


def _payload_text(payload: dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def build_generic_payload(
    *,
    event: str,
    payload: dict[str, object],
    sent_at: datetime,
    route: AlertRoute,
) -> dict[str, object]:
    return {
        "event": event,
        "payload": payload,
        "sent_at": sent_at.isoformat(),
        "severity": route.severity,
        "escalation_tier": route.escalation_tier,
    }


def build_slack_payload(
    *,
    event: str,
    payload: dict[str, object],
    sent_at: datetime,
    route: AlertRoute,
    app_env: str,
) -> dict[str, object]:
    return {
        "text": f"[{route.severity.upper()}][{route.escalation_tier}] {event}",
        "attachments": [
            {
                "color": SEVERITY_COLOR.get(route.severity, SEVERITY_COLOR["warning"]),
                "fields": [
                    {"title": "Environment", "value": app_env, "short": True},
                    {"title": "Sent At", "value": sent_at.isoformat(), "short": True},
                    {"title": "Event", "value": event, "short": False},
                    {"title": "Payload", "value": _payload_text(payload), "short": False},
                ],
            }
        ],
    }


def build_discord_message(
    *,
    event: str,
    payload: dict[str, object],
    route: AlertRoute,
    app_env: str,
) -> str:
    emoji = SEVERITY_EMOJI.get(route.severity, SEVERITY_EMOJI["warning"])
    lines = [f"{emoji} **{event}** ({route.severity}, {app_env})"]
    for key in sorted(payload):
        lines.append(f"- {key}: {payload[key]}")
    message = "\n".join(lines)
    if len(message) > DISCORD_MESSAGE_LIMIT:
        message = message[: DISCORD_MESSAGE_LIMIT - 3] + "..."
    return message


def build_webhook_payload(
    *,
    channel: str,
    event: str,
    payload: dict[str, object],
    sent_at: datetime,
    route: AlertRoute,
    app_env: str,
) -> dict[str, Any]:
    if channel == "generic":
        return build_generic_payload(event=event, payload=payload, sent_at=sent_at, route=route)
    if channel == "slack":
        return build_slack_payload(
            event=event,
            payload=payload,
            sent_at=sent_at,
            route=route,
            app_env=app_env,
        )
    raise ValueError(f"Unsupported webhook alert channel: {channel}")
