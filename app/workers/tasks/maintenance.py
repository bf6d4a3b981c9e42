from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from time import perf_counter

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.repo.pending_joins_repo import PendingJoinsRepo
from app.db.repo.url_analytics_repo import UrlAnalyticsRepo
from app.db.session import SessionLocal
from app.services.rate_limiter import sweep_expired_rate_limits
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

BatchFn = Callable[[AsyncSession, datetime, int], Awaitable[int]]

RATE_LIMIT_SWEEP_INTERVAL_SECONDS = 300
PENDING_JOIN_EXPIRY_INTERVAL_SECONDS = 3600
ANALYTICS_CLEANUP_INTERVAL_SECONDS = 86400


def _clamp_batch_size(value: int) -> int:
    return max(1, min(50000, int(value)))


def _clamp_max_batches(value: int) -> int:
    return max(1, min(1000, int(value)))


def _clamp_retention_days(value: int) -> int:
    return max(1, min(3650, int(value)))


async def _run_batched(
    *,
    job_name: str,
    cutoff_utc: datetime,
    batch_size: int,
    max_batches: int,
    batch_fn: BatchFn,
) -> dict[str, object]:
    started_at = perf_counter()
    rows_affected = 0
    batches_executed = 0
    for _ in range(max_batches):
        async with SessionLocal.begin() as session:
            affected_in_batch = await batch_fn(session, cutoff_utc, batch_size)
        batches_executed += 1
        rows_affected += affected_in_batch
        if affected_in_batch < batch_size:
            break

    result: dict[str, object] = {
        "job": job_name,
        "cutoff_utc": cutoff_utc.isoformat(),
        "rows_affected": rows_affected,
        "batches_executed": batches_executed,
        "duration_ms": int((perf_counter() - started_at) * 1000),
    }
    logger.info("maintenance_job_finished", **result)
    return result


async def sweep_rate_limit_tokens_async() -> dict[str, object]:
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    started_at = perf_counter()
    rows_deleted = await sweep_expired_rate_limits(
        now_utc=now_utc,
        batch_size=_clamp_batch_size(settings.maintenance_batch_size),
        max_batches=_clamp_max_batches(settings.maintenance_max_batches),
    )
    result: dict[str, object] = {
        "job": "sweep_rate_limit_tokens",
        "cutoff_utc": now_utc.isoformat(),
        "rows_affected": rows_deleted,
        "duration_ms": int((perf_counter() - started_at) * 1000),
    }
    logger.info("maintenance_job_finished", **result)
    return result


async def expire_pending_joins_async() -> dict[str, object]:
    settings = get_settings()
    return await _run_batched(
        job_name="expire_pending_joins",
        cutoff_utc=datetime.now(timezone.utc),
        batch_size=_clamp_batch_size(settings.maintenance_batch_size),
        max_batches=_clamp_max_batches(settings.maintenance_max_batches),
        batch_fn=lambda session, cutoff, limit: PendingJoinsRepo.clear_expired_states(
            session,
            now_utc=cutoff,
            limit=limit,
        ),
    )


async def cleanup_url_analytics_async() -> dict[str, object]:
    settings = get_settings()
    retention_days = _clamp_retention_days(settings.analytics_retention_days)
    return await _run_batched(
        job_name="cleanup_url_analytics",
        cutoff_utc=datetime.now(timezone.utc) - timedelta(days=retention_days),
        batch_size=_clamp_batch_size(settings.maintenance_batch_size),
        max_batches=_clamp_max_batches(settings.maintenance_max_batches),
        batch_fn=lambda session, cutoff, limit: UrlAnalyticsRepo.delete_clicked_before(
            session,
            cutoff_utc=cutoff,
            limit=limit,
        ),
    )


@celery_app.task(name="app.workers.tasks.maintenance.sweep_rate_limit_tokens")
def sweep_rate_limit_tokens() -> dict[str, object]:
    return run_async_job(sweep_rate_limit_tokens_async())


@celery_app.task(name="app.workers.tasks.maintenance.expire_pending_joins")
def expire_pending_joins() -> dict[str, object]:
    return run_async_job(expire_pending_joins_async())


@celery_app.task(name="app.workers.tasks.maintenance.cleanup_url_analytics")
def cleanup_url_analytics() -> dict[str, object]:
    return run_async_job(cleanup_url_analytics_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "rate-limit-tokens-sweep": {
            "task": "app.workers.tasks.maintenance.sweep_rate_limit_tokens",
            "schedule": RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
            "options": {"queue": "q_low"},
        },
        "pending-joins-expiry": {
            "task": "app.workers.tasks.maintenance.expire_pending_joins",
            "schedule": PENDING_JOIN_EXPIRY_INTERVAL_SECONDS,
            "options": {"queue": "q_low"},
        },
        "url-analytics-cleanup": {
            "task": "app.workers.tasks.maintenance.cleanup_url_analytics",
            "schedule": ANALYTICS_CLEANUP_INTERVAL_SECONDS,
            "options": {"queue": "q_low"},
        },
    }
)
