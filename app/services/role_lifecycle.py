from __future__ import annotations

import structlog

from app.core.errors import ExternalAPIError
from app.services.alerts import send_ops_alert
from app.services.discord_api import DiscordGateway, get_discord_gateway

logger = structlog.get_logger(__name__)


async def _report_role_failure(
    *,
    action: str,
    discord_id: str,
    role_name: str,
    error: str,
    mentee_email: str | None,
) -> None:
    await send_ops_alert(
        event="role_sync_failed",
        payload={
            "action": action,
            "discord_id": discord_id,
            "role_name": role_name,
            "mentee_email": mentee_email,
            "error": error,
        },
    )


async def grant_mentee_role(
    *,
    discord_id: str,
    role_name: str,
    mentee_email: str | None = None,
    gateway: DiscordGateway | None = None,
) -> bool:
    """One grant attempt. Failures are logged and alerted, never raised."""
    resolved_gateway = gateway or get_discord_gateway()
    try:
        role_id = await resolved_gateway.find_role_id(role_name)
        if role_id is None:
            logger.error("mentee_role_not_found", role_name=role_name)
            await _report_role_failure(
                action="grant",
                discord_id=discord_id,
                role_name=role_name,
                error="role not found in guild",
                mentee_email=mentee_email,
            )
            return False
        await resolved_gateway.add_member_role(discord_id, role_id)
    except ExternalAPIError as exc:
        logger.exception("mentee_role_grant_failed", discord_id=discord_id, role_name=role_name)
        await _report_role_failure(
            action="grant",
            discord_id=discord_id,
            role_name=role_name,
            error=str(exc),
            mentee_email=mentee_email,
        )
        return False

    logger.info("mentee_role_granted", discord_id=discord_id, role_name=role_name)
    return True


async def revoke_mentee_role(
    *,
    discord_id: str,
    role_name: str,
    mentee_email: str | None = None,
    gateway: DiscordGateway | None = None,
) -> bool:
    resolved_gateway = gateway or get_discord_gateway()
    try:
        member = await resolved_gateway.get_member(discord_id)
        if member is None:
            logger.info("mentee_role_revoke_skipped_not_member", discord_id=discord_id)
            return False
        role_id = await resolved_gateway.find_role_id(role_name)
        if role_id is None:
            logger.error("mentee_role_not_found", role_name=role_name)
            return False
        await resolved_gateway.remove_member_role(discord_id, role_id)
    except ExternalAPIError as exc:
        logger.exception("mentee_role_revoke_failed", discord_id=discord_id, role_name=role_name)
        await _report_role_failure(
            action="revoke",
            discord_id=discord_id,
            role_name=role_name,
            error=str(exc),
            mentee_email=mentee_email,
        )
        return False

    logger.info("mentee_role_revoked", discord_id=discord_id, role_name=role_name)
    return True
