from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.pending_joins import PendingJoin


class PendingJoinsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        email: str,
        instructor_id: int,
        offer_id: str,
        oauth_state: str,
        oauth_state_expires_at: datetime,
    ) -> PendingJoin:
        pending_join = PendingJoin(
            email=email,
            instructor_id=instructor_id,
            offer_id=offer_id,
            oauth_state=oauth_state,
            oauth_state_expires_at=oauth_state_expires_at,
            created_at=func.now(),
        )
        session.add(pending_join)
        await session.flush()
        return pending_join

    @staticmethod
    async def get_open_by_state(
        session: AsyncSession,
        *,
        oauth_state: str,
        now_utc: datetime,
        for_update: bool = False,
    ) -> PendingJoin | None:
        stmt = select(PendingJoin).where(
            PendingJoin.oauth_state == oauth_state,
            PendingJoin.joined_at.is_(None),
            PendingJoin.oauth_state_expires_at > now_utc,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_consumed(
        session: AsyncSession,
        *,
        pending_join_id: int,
        discord_user_id: str,
        joined_at: datetime,
    ) -> None:
        stmt = (
            update(PendingJoin)
            .where(PendingJoin.id == pending_join_id)
            .values(oauth_state=None, discord_user_id=discord_user_id, joined_at=joined_at)
        )
        await session.execute(stmt)

    @staticmethod
    async def clear_expired_states(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> int:
        resolved_limit = max(1, int(limit))
        candidate_ids = (
            select(PendingJoin.id)
            .where(
                PendingJoin.oauth_state.is_not(None),
                PendingJoin.joined_at.is_(None),
                PendingJoin.oauth_state_expires_at <= now_utc,
            )
            .order_by(PendingJoin.id.asc())
            .limit(resolved_limit)
            .scalar_subquery()
        )
        stmt = (
            update(PendingJoin)
            .where(PendingJoin.id.in_(candidate_ids))
            .values(oauth_state=None)
            .returning(PendingJoin.id)
        )
        result = await session.execute(stmt)
        return len(list(result.scalars()))

    @staticmethod
    async def list_delayed_for_alert_for_update(
        session: AsyncSession,
        *,
        created_before_utc: datetime,
        limit: int,
    ) -> list[PendingJoin]:
        stmt = (
            select(PendingJoin)
            .where(
                PendingJoin.joined_at.is_(None),
                PendingJoin.delayed_alert_sent_at.is_(None),
                PendingJoin.created_at <= created_before_utc,
            )
            .order_by(PendingJoin.created_at.asc())
            .limit(max(1, int(limit)))
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def mark_delayed_alert_sent(
        session: AsyncSession,
        *,
        pending_join_ids: Sequence[int],
        sent_at: datetime,
    ) -> int:
        ids = tuple(pending_join_ids)
        if not ids:
            return 0
        stmt = (
            update(PendingJoin)
            .where(PendingJoin.id.in_(ids))
            .values(delayed_alert_sent_at=sent_at)
            .returning(PendingJoin.id)
        )
        result = await session.execute(stmt)
        return len(list(result.scalars()))

    @staticmethod
    async def count_joined_since(session: AsyncSession, *, since_utc: datetime) -> int:
        stmt = select(func.count(PendingJoin.id)).where(PendingJoin.joined_at >= since_utc)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_pending_created_since(session: AsyncSession, *, since_utc: datetime) -> int:
        stmt = select(func.count(PendingJoin.id)).where(
            PendingJoin.joined_at.is_(None),
            PendingJoin.created_at >= since_utc,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
