from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class PendingJoin(Base):
    __tablename__ = "pending_joins"
    __table_args__ = (
        Index("idx_pending_joins_email", "email"),
        Index(
            "idx_pending_joins_unconsumed_created",
            "created_at",
            postgresql_where=text("joined_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    instructor_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("instructors.id"), nullable=False)
    offer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    discord_user_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    oauth_state: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    oauth_state_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delayed_alert_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
