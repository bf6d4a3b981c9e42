from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.purchases import Purchase


class PurchasesRepo:
    @staticmethod
    async def insert_if_absent(
        session: AsyncSession,
        *,
        email: str,
        instructor_id: int,
        offer_id: str,
        transaction_id: str | None,
        amount_paid_decimal: Decimal | None,
        currency: str | None,
    ) -> int | None:
        stmt = (
            postgresql_insert(Purchase)
            .values(
                email=email,
                instructor_id=instructor_id,
                offer_id=offer_id,
                transaction_id=transaction_id,
                amount_paid_decimal=amount_paid_decimal,
                currency=currency,
                purchased_at=func.now(),
            )
            .on_conflict_do_nothing(index_elements=[Purchase.transaction_id])
            .returning(Purchase.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_transaction_id(session: AsyncSession, transaction_id: str) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.transaction_id == transaction_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_purchased_since(session: AsyncSession, *, since_utc: datetime) -> int:
        stmt = select(func.count(Purchase.id)).where(Purchase.purchased_at >= since_utc)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
