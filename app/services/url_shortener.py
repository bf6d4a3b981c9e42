from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from app.core.config import get_settings
from app.core.errors import GoneError, NotFoundError
from app.db.repo.shortened_urls_repo import ShortenedUrlsRepo
from app.db.repo.url_analytics_repo import UrlAnalyticsRepo
from app.db.session import SessionLocal
from app.services.client_ip import hash_ip

logger = structlog.get_logger(__name__)

SHORT_CODE_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
MAX_USER_AGENT_LENGTH = 1000
MAX_REFERER_LENGTH = 2000


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    device_type: str
    browser: str
    os: str


def is_valid_short_code(short_code: str) -> bool:
    return SHORT_CODE_RE.match(short_code) is not None


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    ua = (user_agent or "").lower()

    device_type = "desktop"
    if "ipad" in ua or "tablet" in ua:
        device_type = "tablet"
    elif "mobile" in ua or "android" in ua or "iphone" in ua:
        device_type = "mobile"

    browser = "unknown"
    if "edg/" in ua:
        browser = "Edge"
    elif "opr/" in ua or "opera" in ua:
        browser = "Opera"
    elif "chrome" in ua or "crios" in ua:
        browser = "Chrome"
    elif "firefox" in ua or "fxios" in ua:
        browser = "Firefox"
    elif "safari" in ua:
        browser = "Safari"

    os_name = "unknown"
    if "windows" in ua:
        os_name = "Windows"
    elif "iphone" in ua or "ipad" in ua:
        os_name = "iOS"
    elif "android" in ua:
        os_name = "Android"
    elif "mac os" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "linux" in ua:
        os_name = "Linux"

    return DeviceInfo(device_type=device_type, browser=browser, os=os_name)


async def resolve_short_link(short_code: str, *, now_utc: datetime | None = None) -> str:
    if not is_valid_short_code(short_code):
        raise NotFoundError("Short link not found")

    async with SessionLocal() as session:
        short_url = await ShortenedUrlsRepo.get_by_code(session, short_code)
    if short_url is None:
        raise NotFoundError("Short link not found")

    resolved_now = now_utc or datetime.now(timezone.utc)
    if not short_url.is_active or (short_url.expires_at is not None and short_url.expires_at <= resolved_now):
        raise GoneError("Short link is no longer available")
    return short_url.original_url


async def record_click(
    *,
    short_code: str,
    user_agent: str | None,
    referer: str | None,
    client_ip: str | None,
    clicked_at: datetime | None = None,
) -> None:
    resolved_clicked_at = clicked_at or datetime.now(timezone.utc)
    device = parse_user_agent(user_agent)
    async with SessionLocal.begin() as session:
        await ShortenedUrlsRepo.record_click(session, short_code=short_code, clicked_at=resolved_clicked_at)
        await UrlAnalyticsRepo.create(
            session,
            short_code=short_code,
            clicked_at=resolved_clicked_at,
            user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
            referer=referer[:MAX_REFERER_LENGTH] if referer else None,
            ip_hash=hash_ip(client_ip, key=get_settings().ip_hash_key()),
            device_type=device.device_type,
            browser=device.browser,
            os=device.os,
        )
    logger.debug("short_link_click_recorded", short_code=short_code, device_type=device.device_type)
