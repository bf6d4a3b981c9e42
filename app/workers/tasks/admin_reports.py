from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog
from celery.schedules import crontab

from app.core.config import get_settings
from app.db.repo.pending_joins_repo import PendingJoinsRepo
from app.db.repo.purchases_repo import PurchasesRepo
from app.db.session import SessionLocal
from app.services.alerts import send_ops_alert
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

DELAYED_JOIN_BATCH_SIZE = 100
DELAYED_JOIN_INTERVAL_SECONDS = 3600
SUMMARY_WINDOW = timedelta(hours=24)


def _clamp_schedule_hour(value: int) -> int:
    return max(0, min(23, int(value)))


async def alert_delayed_joins_async() -> dict[str, object]:
    """Alerts once per PendingJoin still unconsumed after the configured delay."""
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    created_before = now_utc - timedelta(hours=max(1, int(settings.delayed_join_alert_hours)))

    alerted = 0
    failed = 0
    async with SessionLocal.begin() as session:
        rows = await PendingJoinsRepo.list_delayed_for_alert_for_update(
            session,
            created_before_utc=created_before,
            limit=DELAYED_JOIN_BATCH_SIZE,
        )
        delivered_ids: list[int] = []
        for row in rows:
            delivered = await send_ops_alert(
                event="pending_join_delayed",
                payload={
                    "pending_join_id": row.id,
                    "mentee_email": row.email,
                    "instructor_id": row.instructor_id,
                    "offer_id": row.offer_id,
                    "created_at": row.created_at.isoformat(),
                },
            )
            if delivered:
                delivered_ids.append(row.id)
            else:
                failed += 1
        alerted = await PendingJoinsRepo.mark_delayed_alert_sent(
            session,
            pending_join_ids=delivered_ids,
            sent_at=now_utc,
        )

    result: dict[str, object] = {
        "created_before_utc": created_before.isoformat(),
        "alerted": alerted,
        "failed": failed,
    }
    logger.info("delayed_joins_alert_finished", **result)
    return result


async def send_daily_summary_async() -> dict[str, object]:
    now_utc = datetime.now(timezone.utc)
    since_utc = now_utc - SUMMARY_WINDOW
    async with SessionLocal() as session:
        new_purchases = await PurchasesRepo.count_purchased_since(session, since_utc=since_utc)
        successful_joins = await PendingJoinsRepo.count_joined_since(session, since_utc=since_utc)
        pending_joins = await PendingJoinsRepo.count_pending_created_since(session, since_utc=since_utc)

    summary: dict[str, object] = {
        "window_start_utc": since_utc.isoformat(),
        "window_end_utc": now_utc.isoformat(),
        "new_purchases": new_purchases,
        "successful_joins": successful_joins,
        "pending_joins": pending_joins,
    }
    delivered = await send_ops_alert(event="daily_summary", payload=summary)
    logger.info("daily_summary_finished", delivered=delivered, **summary)
    return {**summary, "delivered": delivered}


@celery_app.task(name="app.workers.tasks.admin_reports.alert_delayed_joins")
def alert_delayed_joins() -> dict[str, object]:
    return run_async_job(alert_delayed_joins_async())


@celery_app.task(name="app.workers.tasks.admin_reports.send_daily_summary")
def send_daily_summary() -> dict[str, object]:
    return run_async_job(send_daily_summary_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
settings = get_settings()
celery_app.conf.beat_schedule.update(
    {
        "delayed-joins-alert-hourly": {
            "task": "app.workers.tasks.admin_reports.alert_delayed_joins",
            "schedule": DELAYED_JOIN_INTERVAL_SECONDS,
            "options": {"queue": "q_normal"},
        },
        "admin-daily-summary": {
            "task": "app.workers.tasks.admin_reports.send_daily_summary",
            "schedule": crontab(hour=_clamp_schedule_hour(settings.daily_summary_hour_utc), minute=0),
            "options": {"queue": "q_normal"},
        },
    }
)
