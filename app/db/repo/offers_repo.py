from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.offers import Offer


class OffersRepo:
    @staticmethod
    async def get_by_offer_id(session: AsyncSession, offer_id: str) -> Offer | None:
        return await session.get(Offer, offer_id)
