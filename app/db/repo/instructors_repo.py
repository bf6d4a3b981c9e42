from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.instructors import Instructor


class InstructorsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, instructor_id: int) -> Instructor | None:
        return await session.get(Instructor, instructor_id)
