from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Offer(Base):
    __tablename__ = "offers"
    __table_args__ = (
        CheckConstraint(
            "sessions_per_purchase IS NULL OR sessions_per_purchase > 0",
            name="ck_offers_sessions_per_purchase_positive",
        ),
        Index("idx_offers_instructor", "instructor_id"),
    )

    offer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    instructor_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("instructors.id"), nullable=False)
    offer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sessions_per_purchase: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mentee_role_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
