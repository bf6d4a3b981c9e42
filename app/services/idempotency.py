from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import TransientStoreError
from app.db.repo.purchases_repo import PurchasesRepo

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PurchaseFields:
    email: str
    instructor_id: int
    offer_id: str
    amount: Decimal | None
    currency: str | None


@dataclass(frozen=True, slots=True)
class ClaimResult:
    claimed: bool
    purchase_id: int | None = None
    fail_open: bool = False


async def try_claim(
    session: AsyncSession,
    *,
    transaction_id: str | None,
    purchase: PurchaseFields,
) -> ClaimResult:
    """Insert-first claim of a purchase delivery.

    Must be the first statement of the caller's transaction: a concurrent
    delivery of the same ``transaction_id`` blocks on the unique index until
    this transaction ends, then sees the committed row and is reported as a
    duplicate. Without a ``transaction_id`` nothing can be deduplicated and
    every delivery is claimed.
    """
    try:
        async with session.begin_nested():
            purchase_id = await PurchasesRepo.insert_if_absent(
                session,
                email=purchase.email,
                instructor_id=purchase.instructor_id,
                offer_id=purchase.offer_id,
                transaction_id=transaction_id,
                amount_paid_decimal=purchase.amount,
                currency=purchase.currency,
            )
    except (SQLAlchemyError, OSError) as exc:
        logger.warning(
            "idempotency_claim_failed_open",
            error_code=TransientStoreError.code,
            error_type=type(exc).__name__,
            transaction_id=transaction_id,
        )
        return ClaimResult(claimed=True, fail_open=True)

    if purchase_id is None:
        logger.info("idempotency_duplicate_delivery", transaction_id=transaction_id)
        return ClaimResult(claimed=False)

    if transaction_id is None:
        logger.warning("idempotency_claim_without_transaction_id", purchase_id=purchase_id)
    return ClaimResult(claimed=True, purchase_id=purchase_id)
