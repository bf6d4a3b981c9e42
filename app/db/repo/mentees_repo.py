from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.mentees import Mentee


@dataclass(frozen=True, slots=True)
class MenteeRef:
    id: int
    discord_id: str | None


class MenteesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, mentee_id: int) -> Mentee | None:
        return await session.get(Mentee, mentee_id)

    @staticmethod
    async def get_by_email(session: AsyncSession, email: str) -> Mentee | None:
        stmt = select(Mentee).where(Mentee.email == email)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_by_email(
        session: AsyncSession,
        *,
        email: str,
        name: str | None,
    ) -> MenteeRef:
        # DO UPDATE (not DO NOTHING) so RETURNING yields the existing row too.
        stmt = postgresql_insert(Mentee).values(email=email, name=name, created_at=func.now())
        stmt = stmt.on_conflict_do_update(
            index_elements=[Mentee.email],
            set_={"name": func.coalesce(Mentee.name, stmt.excluded.name)},
        ).returning(Mentee.id, Mentee.discord_id)
        result = await session.execute(stmt)
        mentee_id, discord_id = result.one()
        return MenteeRef(id=int(mentee_id), discord_id=discord_id)

    @staticmethod
    async def link_discord_id(
        session: AsyncSession,
        *,
        email: str,
        discord_id: str,
        name: str | None,
    ) -> int:
        stmt = postgresql_insert(Mentee).values(
            email=email,
            discord_id=discord_id,
            name=name,
            created_at=func.now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Mentee.email],
            set_={
                "discord_id": stmt.excluded.discord_id,
                "name": func.coalesce(Mentee.name, stmt.excluded.name),
            },
        ).returning(Mentee.id)
        result = await session.execute(stmt)
        return int(result.scalar_one())
