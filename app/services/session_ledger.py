from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import MentorshipNotFoundError, ValidationError
from app.db.repo.mentorships_repo import EndedMentorshipRow, MentorshipsRepo


@dataclass(frozen=True, slots=True)
class UpsertResult:
    mentorship_id: int
    created: bool
    reactivated: bool
    sessions_remaining: int
    total_sessions: int


@dataclass(frozen=True, slots=True)
class EnsureResult:
    mentorship_id: int
    created: bool


async def increment_sessions(session: AsyncSession, *, mentorship_id: int, delta: int) -> int:
    """Applies ``delta`` atomically; the balance never drops below zero."""
    new_remaining = await MentorshipsRepo.increment_sessions(
        session,
        mentorship_id=mentorship_id,
        delta=int(delta),
    )
    if new_remaining is None:
        raise MentorshipNotFoundError(
            "Mentorship not found",
            details={"mentorship_id": mentorship_id},
        )
    return int(new_remaining)


async def upsert_mentorship_sessions(
    session: AsyncSession,
    *,
    mentee_id: int,
    instructor_id: int,
    delta: int,
    default_role_name: str | None,
) -> UpsertResult:
    if delta <= 0:
        raise ValidationError("delta must be positive", details={"delta": delta})

    previous_status = await MentorshipsRepo.get_status_for_update(
        session,
        mentee_id=mentee_id,
        instructor_id=instructor_id,
    )
    row = await MentorshipsRepo.upsert_add_sessions(
        session,
        mentee_id=mentee_id,
        instructor_id=instructor_id,
        delta=delta,
        role_name=default_role_name,
    )
    return UpsertResult(
        mentorship_id=row.id,
        created=row.inserted,
        reactivated=not row.inserted and previous_status == "ended",
        sessions_remaining=row.sessions_remaining,
        total_sessions=row.total_sessions,
    )


async def ensure_mentorship(
    session: AsyncSession,
    *,
    mentee_id: int,
    instructor_id: int,
    sessions: int,
    role_name: str | None,
) -> EnsureResult:
    inserted_id = await MentorshipsRepo.insert_if_absent(
        session,
        mentee_id=mentee_id,
        instructor_id=instructor_id,
        sessions=max(0, int(sessions)),
        role_name=role_name,
    )
    if inserted_id is not None:
        return EnsureResult(mentorship_id=int(inserted_id), created=True)

    existing = await MentorshipsRepo.get_by_pair(
        session,
        mentee_id=mentee_id,
        instructor_id=instructor_id,
    )
    if existing is None:
        raise MentorshipNotFoundError(
            "Mentorship vanished during ensure",
            details={"mentee_id": mentee_id, "instructor_id": instructor_id},
        )
    return EnsureResult(mentorship_id=existing.id, created=False)


async def end_active_mentorships(
    session: AsyncSession,
    *,
    mentee_id: int,
    instructor_id: int | None,
    reason: str,
    ended_at: datetime | None = None,
) -> list[EndedMentorshipRow]:
    return await MentorshipsRepo.end_active(
        session,
        mentee_id=mentee_id,
        instructor_id=instructor_id,
        reason=reason,
        ended_at=ended_at or datetime.now(timezone.utc),
    )
