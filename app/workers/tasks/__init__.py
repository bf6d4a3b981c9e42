from app.workers.tasks.admin_reports import alert_delayed_joins, send_daily_summary
from app.workers.tasks.maintenance import (
    cleanup_url_analytics,
    expire_pending_joins,
    sweep_rate_limit_tokens,
)

__all__ = [
    "alert_delayed_joins",
    "cleanup_url_analytics",
    "expire_pending_joins",
    "send_daily_summary",
    "sweep_rate_limit_tokens",
]
