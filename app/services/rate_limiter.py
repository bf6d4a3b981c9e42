from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import RateLimitExceededError, TransientStoreError
from app.db.repo.rate_limit_tokens_repo import RateLimitTokensRepo
from app.db.session import SessionLocal

logger = structlog.get_logger(__name__)

TOKEN_TYPE_WEBHOOK = "webhook"
TOKEN_TYPE_REDIRECT = "redirect"
UNKNOWN_CLIENT_KEY = "unknown"


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime
    retry_after: int


def _retry_after_seconds(*, reset_at: datetime, now_utc: datetime) -> int:
    return max(1, math.ceil((reset_at - now_utc).total_seconds()))


async def check_rate_limit(
    *,
    token_key: str,
    token_type: str,
    max_requests: int,
    window_ms: int,
    now_utc: datetime | None = None,
) -> RateLimitResult:
    """Fixed-window counter shared by every process through ``rate_limit_tokens``.

    Counting is one conditional upsert, so concurrent requests can never be
    admitted past ``max_requests``. Storage failures admit the request.
    """
    resolved_now = now_utc or datetime.now(timezone.utc)
    resolved_max = max(1, int(max_requests))
    resolved_window_ms = max(1, int(window_ms))

    try:
        async with SessionLocal.begin() as session:
            consumed = await RateLimitTokensRepo.try_consume(
                session,
                token_key=token_key,
                token_type=token_type,
                max_requests=resolved_max,
                window_ms=resolved_window_ms,
                now_utc=resolved_now,
            )
            denied_reset_at = None
            if consumed is None:
                denied_reset_at = await RateLimitTokensRepo.get_reset_at(
                    session,
                    token_key=token_key,
                    token_type=token_type,
                )
    except (SQLAlchemyError, OSError, TimeoutError) as exc:
        logger.warning(
            "rate_limit_check_failed_open",
            error_code=TransientStoreError.code,
            error_type=type(exc).__name__,
            token_type=token_type,
        )
        return RateLimitResult(
            allowed=True,
            remaining=resolved_max,
            reset_at=resolved_now + timedelta(milliseconds=resolved_window_ms),
            retry_after=0,
        )

    if consumed is not None:
        count, reset_at = consumed
        return RateLimitResult(
            allowed=True,
            remaining=max(0, resolved_max - count),
            reset_at=reset_at,
            retry_after=0,
        )

    reset_at = denied_reset_at or resolved_now + timedelta(milliseconds=resolved_window_ms)
    return RateLimitResult(
        allowed=False,
        remaining=0,
        reset_at=reset_at,
        retry_after=_retry_after_seconds(reset_at=reset_at, now_utc=resolved_now),
    )


async def enforce_rate_limit(
    *,
    client_ip: str | None,
    token_type: str,
    max_requests: int,
    window_ms: int,
) -> RateLimitResult:
    result = await check_rate_limit(
        token_key=client_ip or UNKNOWN_CLIENT_KEY,
        token_type=token_type,
        max_requests=max_requests,
        window_ms=window_ms,
    )
    if not result.allowed:
        logger.info(
            "rate_limit_exceeded",
            token_type=token_type,
            retry_after=result.retry_after,
        )
        raise RateLimitExceededError(retry_after=result.retry_after)
    return result


async def sweep_expired_rate_limits(
    *,
    now_utc: datetime | None = None,
    batch_size: int = 1000,
    max_batches: int = 50,
) -> int:
    resolved_now = now_utc or datetime.now(timezone.utc)
    resolved_batch_size = max(1, int(batch_size))
    rows_deleted = 0
    for _ in range(max(1, int(max_batches))):
        async with SessionLocal.begin() as session:
            deleted = await RateLimitTokensRepo.delete_expired(
                session,
                now_utc=resolved_now,
                limit=resolved_batch_size,
            )
        rows_deleted += deleted
        if deleted < resolved_batch_size:
            break
    return rows_deleted
