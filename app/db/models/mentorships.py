from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Mentorship(Base):
    __tablename__ = "mentorships"
    __table_args__ = (
        UniqueConstraint("mentee_id", "instructor_id", name="uq_mentorships_mentee_instructor"),
        CheckConstraint("sessions_remaining >= 0", name="ck_mentorships_sessions_remaining_non_negative"),
        CheckConstraint("total_sessions >= 0", name="ck_mentorships_total_sessions_non_negative"),
        CheckConstraint("status IN ('active','ended')", name="ck_mentorships_status"),
        Index("idx_mentorships_instructor_status", "instructor_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    mentee_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("mentees.id"), nullable=False)
    instructor_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("instructors.id"), nullable=False)
    sessions_remaining: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'active'"))
    mentee_role_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    returned_after_end: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_session_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
