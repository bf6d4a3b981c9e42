from __future__ import annotations

from dataclasses import dataclass

VALID_CHANNELS = {"generic", "slack", "discord"}
VALID_SEVERITIES = {"critical", "error", "warning", "info"}
SEVERITY_COLOR = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}
SEVERITY_EMOJI = {
    "critical": "\U0001F6A8",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
}


@dataclass(frozen=True)
class AlertRoute:
    channels: tuple[str, ...]
    severity: str
    escalation_tier: str


@dataclass(frozen=True)
class AlertTarget:
    channel: str
    destination: str


DEFAULT_ALERT_ROUTE = AlertRoute(
    channels=("discord", "generic"),
    severity="warning",
    escalation_tier="ops_l3",
)
EVENT_ALERT_ROUTES = {
    "webhook_processing_failed": AlertRoute(
        channels=("discord", "slack", "generic"),
        severity="critical",
        escalation_tier="ops_l1",
    ),
    "offer_not_mapped": AlertRoute(
        channels=("discord", "slack", "generic"),
        severity="error",
        escalation_tier="ops_l1",
    ),
    "role_sync_failed": AlertRoute(
        channels=("discord", "slack", "generic"),
        severity="error",
        escalation_tier="ops_l1",
    ),
    "pending_join_delayed": AlertRoute(
        channels=("discord", "slack"),
        severity="warning",
        escalation_tier="ops_l2",
    ),
    "email_delivery_failed": AlertRoute(
        channels=("discord", "generic"),
        severity="error",
        escalation_tier="ops_l2",
    ),
    "new_purchase": AlertRoute(
        channels=("discord", "generic"),
        severity="info",
        escalation_tier="ops_l3",
    ),
    "mentorship_ended": AlertRoute(
        channels=("discord", "generic"),
        severity="info",
        escalation_tier="ops_l3",
    ),
    "daily_summary": AlertRoute(
        channels=("discord", "slack"),
        severity="info",
        escalation_tier="ops_l3",
    ),
}
