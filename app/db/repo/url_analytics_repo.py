from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.url_analytics import UrlAnalytics


class UrlAnalyticsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        short_code: str,
        clicked_at: datetime,
        user_agent: str | None,
        referer: str | None,
        ip_hash: str | None,
        device_type: str,
        browser: str,
        os: str,
    ) -> UrlAnalytics:
        event = UrlAnalytics(
            short_code=short_code,
            clicked_at=clicked_at,
            user_agent=user_agent,
            referer=referer,
            ip_hash=ip_hash,
            device_type=device_type,
            browser=browser,
            os=os,
        )
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def delete_clicked_before(
        session: AsyncSession,
        *,
        cutoff_utc: datetime,
        limit: int,
    ) -> int:
        resolved_limit = max(1, int(limit))
        candidate_ids = (
            select(UrlAnalytics.id)
            .where(UrlAnalytics.clicked_at < cutoff_utc)
            .order_by(UrlAnalytics.clicked_at.asc(), UrlAnalytics.id.asc())
            .limit(resolved_limit)
            .scalar_subquery()
        )
        stmt = delete(UrlAnalytics).where(UrlAnalytics.id.in_(candidate_ids)).returning(UrlAnalytics.id)
        result = await session.execute(stmt)
        return len(list(result.scalars()))
