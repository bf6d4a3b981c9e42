from __future__ import annotations

import json

import structlog

from app.services.alerts_config import (
    DEFAULT_ALERT_ROUTE,
    EVENT_ALERT_ROUTES,
    VALID_CHANNELS,
    VALID_SEVERITIES,
    AlertRoute,
    AlertTarget,
)

logger = structlog.get_logger("app.services.alerts")


def setting_str(settings: object, attr: str) -> str:
    value = getattr(settings, attr, "")
    return value.strip() if isinstance(value, str) else ""


def _normalize_channels(raw_channels: object, fallback: tuple[str, ...]) -> tuple[str, ...]:
    if not isinstance(raw_channels, list):
        return fallback

    ordered: list[str] = []
    for channel in raw_channels:
        if not isinstance(channel, str):
            continue
        channel_name = channel.strip().lower()
        if channel_name not in VALID_CHANNELS or channel_name in ordered:
            continue
        ordered.append(channel_name)

    return tuple(ordered) if ordered else fallback


def _normalize_severity(raw_severity: object, fallback: str) -> str:
    if not isinstance(raw_severity, str):
        return fallback
    severity = raw_severity.strip().lower()
    return severity if severity in VALID_SEVERITIES else fallback


def _parse_policy_overrides(raw_policy: str) -> dict[str, dict[str, object]]:
    if not raw_policy:
        return {}

    try:
        parsed = json.loads(raw_policy)
    except json.JSONDecodeError:
        logger.warning("ops_alert_policy_parse_failed")
        return {}

    if not isinstance(parsed, dict):
        logger.warning("ops_alert_policy_invalid_shape")
        return {}

    return {
        event_name: route
        for event_name, route in parsed.items()
        if isinstance(event_name, str) and isinstance(route, dict)
    }


def resolve_alert_route(*, event: str, policy_raw: str) -> AlertRoute:
    base_route = EVENT_ALERT_ROUTES.get(event, DEFAULT_ALERT_ROUTE)
    overrides = _parse_policy_overrides(policy_raw)
    override = overrides.get(event) or overrides.get("*")
    if override is None:
        return base_route

    raw_tier = override.get("escalation_tier")
    escalation_tier = raw_tier.strip() if isinstance(raw_tier, str) and raw_tier.strip() else None
    return AlertRoute(
        channels=_normalize_channels(override.get("channels"), base_route.channels),
        severity=_normalize_severity(override.get("severity"), base_route.severity),
        escalation_tier=escalation_tier or base_route.escalation_tier,
    )


def resolve_targets(*, route: AlertRoute, settings: object) -> list[AlertTarget]:
    """Maps route channels to configured destinations.

    ``discord`` resolves to the admin user id (delivered as a DM), the
    other channels to webhook URLs. Unconfigured channels are skipped; when
    nothing is left the generic webhook is used as a last resort.
    """
    generic_webhook_url = setting_str(settings, "ops_alert_webhook_url")
    channel_to_destination: dict[str, str] = {
        "generic": generic_webhook_url,
        "slack": setting_str(settings, "ops_alert_slack_webhook_url"),
        "discord": setting_str(settings, "discord_admin_id"),
    }

    targets: list[AlertTarget] = []
    for channel in route.channels:
        destination = channel_to_destination.get(channel, "")
        if destination:
            targets.append(AlertTarget(channel=channel, destination=destination))

    if not targets and generic_webhook_url:
        targets.append(AlertTarget(channel="generic", destination=generic_webhook_url))

    return targets
