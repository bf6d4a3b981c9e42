from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, literal_column, select, true, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.mentorships import Mentorship


@dataclass(frozen=True, slots=True)
class MentorshipUpsertRow:
    id: int
    sessions_remaining: int
    total_sessions: int
    inserted: bool


@dataclass(frozen=True, slots=True)
class EndedMentorshipRow:
    id: int
    instructor_id: int
    mentee_role_name: str | None


class MentorshipsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, mentorship_id: int) -> Mentorship | None:
        return await session.get(Mentorship, mentorship_id)

    @staticmethod
    async def get_status_for_update(
        session: AsyncSession,
        *,
        mentee_id: int,
        instructor_id: int,
    ) -> str | None:
        stmt = (
            select(Mentorship.status)
            .where(
                Mentorship.mentee_id == mentee_id,
                Mentorship.instructor_id == instructor_id,
            )
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert_add_sessions(
        session: AsyncSession,
        *,
        mentee_id: int,
        instructor_id: int,
        delta: int,
        role_name: str | None,
    ) -> MentorshipUpsertRow:
        stmt = postgresql_insert(Mentorship).values(
            mentee_id=mentee_id,
            instructor_id=instructor_id,
            sessions_remaining=delta,
            total_sessions=delta,
            status="active",
            mentee_role_name=role_name,
            returned_after_end=False,
            created_at=func.now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Mentorship.mentee_id, Mentorship.instructor_id],
            set_={
                "sessions_remaining": Mentorship.sessions_remaining + stmt.excluded.sessions_remaining,
                "total_sessions": Mentorship.total_sessions + stmt.excluded.total_sessions,
                "status": "active",
                "ended_at": None,
                "end_reason": None,
                "returned_after_end": case(
                    (Mentorship.status == "ended", true()),
                    else_=Mentorship.returned_after_end,
                ),
                "mentee_role_name": func.coalesce(stmt.excluded.mentee_role_name, Mentorship.mentee_role_name),
            },
        ).returning(
            Mentorship.id,
            Mentorship.sessions_remaining,
            Mentorship.total_sessions,
            # xmax is zero only for rows written by INSERT, not by the conflict UPDATE.
            literal_column("xmax = 0"),
        )
        result = await session.execute(stmt)
        mentorship_id, sessions_remaining, total_sessions, inserted = result.one()
        return MentorshipUpsertRow(
            id=int(mentorship_id),
            sessions_remaining=int(sessions_remaining),
            total_sessions=int(total_sessions),
            inserted=bool(inserted),
        )

    @staticmethod
    async def increment_sessions(
        session: AsyncSession,
        *,
        mentorship_id: int,
        delta: int,
    ) -> int | None:
        stmt = (
            update(Mentorship)
            .where(Mentorship.id == mentorship_id)
            .values(sessions_remaining=func.greatest(0, Mentorship.sessions_remaining + delta))
            .returning(Mentorship.sessions_remaining)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def insert_if_absent(
        session: AsyncSession,
        *,
        mentee_id: int,
        instructor_id: int,
        sessions: int,
        role_name: str | None,
    ) -> int | None:
        stmt = (
            postgresql_insert(Mentorship)
            .values(
                mentee_id=mentee_id,
                instructor_id=instructor_id,
                sessions_remaining=sessions,
                total_sessions=sessions,
                status="active",
                mentee_role_name=role_name,
                returned_after_end=False,
                created_at=func.now(),
            )
            .on_conflict_do_nothing(index_elements=[Mentorship.mentee_id, Mentorship.instructor_id])
            .returning(Mentorship.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_pair(
        session: AsyncSession,
        *,
        mentee_id: int,
        instructor_id: int,
    ) -> Mentorship | None:
        stmt = select(Mentorship).where(
            Mentorship.mentee_id == mentee_id,
            Mentorship.instructor_id == instructor_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def end_active(
        session: AsyncSession,
        *,
        mentee_id: int,
        instructor_id: int | None,
        reason: str,
        ended_at: datetime,
    ) -> list[EndedMentorshipRow]:
        conditions = [Mentorship.mentee_id == mentee_id, Mentorship.status == "active"]
        if instructor_id is not None:
            conditions.append(Mentorship.instructor_id == instructor_id)
        stmt = (
            update(Mentorship)
            .where(*conditions)
            .values(status="ended", ended_at=ended_at, end_reason=reason)
            .returning(Mentorship.id, Mentorship.instructor_id, Mentorship.mentee_role_name)
        )
        result = await session.execute(stmt)
        return [
            EndedMentorshipRow(
                id=int(row_id),
                instructor_id=int(row_instructor_id),
                mentee_role_name=role_name,
            )
            for row_id, row_instructor_id, role_name in result.all()
        ]

    @staticmethod
    async def count_active_for_mentee(session: AsyncSession, *, mentee_id: int) -> int:
        stmt = select(func.count(Mentorship.id)).where(
            Mentorship.mentee_id == mentee_id,
            Mentorship.status == "active",
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

