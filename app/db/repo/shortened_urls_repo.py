from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.shortened_urls import ShortenedUrl


class ShortenedUrlsRepo:
    @staticmethod
    async def get_by_code(session: AsyncSession, short_code: str) -> ShortenedUrl | None:
        return await session.get(ShortenedUrl, short_code)

    @staticmethod
    async def record_click(
        session: AsyncSession,
        *,
        short_code: str,
        clicked_at: datetime,
    ) -> None:
        stmt = (
            update(ShortenedUrl)
            .where(ShortenedUrl.short_code == short_code)
            .values(click_count=ShortenedUrl.click_count + 1, last_clicked_at=clicked_at)
        )
        await session.execute(stmt)
