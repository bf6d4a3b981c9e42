from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import case, delete, or_, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.rate_limit_tokens import RateLimitToken


class RateLimitTokensRepo:
    @staticmethod
    async def try_consume(
        session: AsyncSession,
        *,
        token_key: str,
        token_type: str,
        max_requests: int,
        window_ms: int,
        now_utc: datetime,
    ) -> tuple[int, datetime] | None:
        """Counts one request against the fixed window in a single statement.

        Returns ``(count, reset_at)`` after counting, or ``None`` when the window
        is exhausted (the conditional DO UPDATE matched nothing).
        """
        window_reset_at = now_utc + timedelta(milliseconds=window_ms)
        window_expired = RateLimitToken.reset_at <= now_utc
        stmt = postgresql_insert(RateLimitToken).values(
            token_key=token_key,
            token_type=token_type,
            count=1,
            reset_at=window_reset_at,
            updated_at=now_utc,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RateLimitToken.token_key, RateLimitToken.token_type],
            set_={
                "count": case((window_expired, 1), else_=RateLimitToken.count + 1),
                "reset_at": case((window_expired, stmt.excluded.reset_at), else_=RateLimitToken.reset_at),
                "updated_at": stmt.excluded.updated_at,
            },
            where=or_(window_expired, RateLimitToken.count < max_requests),
        ).returning(RateLimitToken.count, RateLimitToken.reset_at)
        result = await session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return int(row[0]), row[1]

    @staticmethod
    async def get_reset_at(
        session: AsyncSession,
        *,
        token_key: str,
        token_type: str,
    ) -> datetime | None:
        stmt = select(RateLimitToken.reset_at).where(
            RateLimitToken.token_key == token_key,
            RateLimitToken.token_type == token_type,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_expired(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> int:
        resolved_limit = max(1, int(limit))
        candidate_ids = (
            select(RateLimitToken.id)
            .where(RateLimitToken.reset_at < now_utc)
            .order_by(RateLimitToken.reset_at.asc())
            .limit(resolved_limit)
            .scalar_subquery()
        )
        stmt = delete(RateLimitToken).where(RateLimitToken.id.in_(candidate_ids)).returning(RateLimitToken.id)
        result = await session.execute(stmt)
        return len(list(result.scalars()))
