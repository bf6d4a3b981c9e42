from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.errors import AppError, ProviderNotFoundError, ValidationError
from app.services.alerts import send_ops_alert
from app.services.cancellation_webhook import process_cancellation
from app.services.client_ip import extract_client_ip
from app.services.notifications import get_orchestrator
from app.services.purchase_webhook import process_purchase
from app.services.rate_limiter import TOKEN_TYPE_WEBHOOK, enforce_rate_limit
from app.services.webhook_payloads import parse_cancellation_payload, parse_purchase_payload
from app.services.webhook_security import verify_webhook_request

router = APIRouter(tags=["webhooks"])
logger = structlog.get_logger(__name__)


async def _read_verified_body(request: Request, *, provider: str) -> bytes:
    settings = get_settings()
    if provider not in settings.provider_names():
        raise ProviderNotFoundError("Unknown webhook provider", details={"provider": provider})

    await enforce_rate_limit(
        client_ip=extract_client_ip(request, trusted_proxies=settings.trusted_proxies),
        token_type=TOKEN_TYPE_WEBHOOK,
        max_requests=settings.webhook_rate_limit_max,
        window_ms=settings.webhook_rate_limit_window_ms,
    )

    body = await request.body()
    verified = verify_webhook_request(
        body=body,
        headers=request.headers,
        secret=settings.webhook_secret,
        require_verification=settings.require_webhook_verification,
    )
    if not verified:
        logger.debug("webhook_signature_check_skipped", provider=provider)
    return body


def _decode_json(body: bytes) -> object:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc


def _internal_error(*, provider: str, kind: str, offer_id: str | None) -> JSONResponse:
    get_orchestrator().spawn(
        send_ops_alert(
            event="webhook_processing_failed",
            payload={"provider": provider, "kind": kind, "offer_id": offer_id},
        ),
        name="alert_webhook_processing_failed",
        provider=provider,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "INTERNAL_ERROR", "message": "Internal server error"},
    )


@router.post("/webhook/{provider}")
async def purchase_webhook(provider: str, request: Request) -> JSONResponse:
    provider = provider.lower()
    body = await _read_verified_body(request, provider=provider)
    event = parse_purchase_payload(_decode_json(body))

    try:
        outcome = await process_purchase(event, provider=provider)
    except AppError:
        raise
    except Exception:
        logger.exception("purchase_webhook_failed", provider=provider, offer_id=event.offer_id)
        return _internal_error(provider=provider, kind="purchase", offer_id=event.offer_id)

    if outcome.duplicate:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"success": True, "duplicate": True, "message": outcome.message},
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "message": outcome.message,
            "mentorship_id": outcome.mentorship_id,
            "subject": outcome.subject,
        },
    )


@router.post("/webhook/{provider}/cancellation")
async def cancellation_webhook(provider: str, request: Request) -> JSONResponse:
    provider = provider.lower()
    body = await _read_verified_body(request, provider=provider)
    event = parse_cancellation_payload(_decode_json(body))

    try:
        outcome = await process_cancellation(event, provider=provider)
    except AppError:
        raise
    except Exception:
        logger.exception("cancellation_webhook_failed", provider=provider, offer_id=event.offer_id)
        return _internal_error(provider=provider, kind="cancellation", offer_id=event.offer_id)

    message = "Mentorship ended" if outcome.ended_count else "No active mentorship to end"
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "message": message,
            "ended_count": outcome.ended_count,
            "remaining_active": outcome.remaining_active,
        },
    )
