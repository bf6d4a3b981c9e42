from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import RedirectResponse

from app.core.config import get_settings
from app.services.client_ip import extract_client_ip
from app.services.notifications import get_orchestrator
from app.services.rate_limiter import TOKEN_TYPE_REDIRECT, enforce_rate_limit
from app.services.url_shortener import record_click, resolve_short_link

router = APIRouter(tags=["redirects"])


@router.get("/{short_code}")
async def redirect_short_link(short_code: str, request: Request) -> RedirectResponse:
    settings = get_settings()
    client_ip = extract_client_ip(request, trusted_proxies=settings.trusted_proxies)
    await enforce_rate_limit(
        client_ip=client_ip,
        token_type=TOKEN_TYPE_REDIRECT,
        max_requests=settings.redirect_rate_limit_max,
        window_ms=settings.redirect_rate_limit_window_ms,
    )

    target_url = await resolve_short_link(short_code)
    get_orchestrator().spawn(
        record_click(
            short_code=short_code,
            user_agent=request.headers.get("user-agent"),
            referer=request.headers.get("referer"),
            client_ip=client_ip,
        ),
        name="record_short_link_click",
        short_code=short_code,
    )
    return RedirectResponse(url=target_url, status_code=status.HTTP_301_MOVED_PERMANENTLY)
