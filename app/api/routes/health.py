from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.errors import ExternalAPIError
from app.db.session import SessionLocal
from app.services.discord_api import get_discord_gateway

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)


def _ok_check() -> dict[str, Any]:
    return {"status": "ok"}


def _failed_check(message: str) -> dict[str, str]:
    return {"status": "error", "message": message}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _ok_check()
    except (SQLAlchemyError, OSError):
        logger.exception("health_database_check_failed")
        return _failed_check("database_unavailable")


async def _check_discord() -> dict[str, Any]:
    try:
        await get_discord_gateway().probe()
        return _ok_check()
    except ExternalAPIError:
        logger.exception("health_discord_check_failed")
        return _failed_check("discord_unavailable")


async def _check_redis() -> dict[str, Any]:
    redis_client: Redis | None = None
    try:
        redis_client = Redis.from_url(get_settings().redis_url)
        pong = await redis_client.ping()
        if pong is not True:
            return _failed_check("redis_unexpected_ping_response")
        return _ok_check()
    except (RedisError, OSError):
        logger.exception("health_redis_check_failed")
        return _failed_check("redis_unavailable")
    finally:
        if redis_client is not None:
            await redis_client.aclose()


async def _collect_checks() -> dict[str, dict[str, Any]]:
    checks = await asyncio.gather(
        _check_database(),
        _check_discord(),
        _check_redis(),
    )
    return {
        "server": _ok_check(),
        "database": checks[0],
        "discord": checks[1],
        "redis": checks[2],
    }


def _aggregate_status(services: dict[str, dict[str, Any]]) -> str:
    if services["database"].get("status") != "ok":
        return "unhealthy"
    if all(check.get("status") == "ok" for check in services.values()):
        return "healthy"
    return "degraded"


@router.get("/health")
async def health() -> JSONResponse:
    services = await _collect_checks()
    overall = _aggregate_status(services)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if overall == "unhealthy" else status.HTTP_200_OK,
        content={
            "status": overall,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": services,
        },
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}
