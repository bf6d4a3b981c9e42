from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.services import idempotency
from app.services.idempotency import PurchaseFields, try_claim
from tests.services.service_fixtures import FakeSessionContext


class _Session:
    def __init__(self) -> None:
        self.savepoints = 0

    def begin_nested(self) -> FakeSessionContext:
        self.savepoints += 1
        return FakeSessionContext()


def _purchase() -> PurchaseFields:
    return PurchaseFields(
        email="a@b.com",
        instructor_id=11,
        offer_id="7",
        amount=Decimal("49.00"),
        currency="USD",
    )


def _patch_insert(monkeypatch, handler) -> list[dict[str, object]]:
    calls: list[dict[str, object]] = []

    async def _insert_if_absent(session, **kwargs):
        calls.append(kwargs)
        return handler()

    monkeypatch.setattr(idempotency.PurchasesRepo, "insert_if_absent", staticmethod(_insert_if_absent))
    return calls


@pytest.mark.asyncio
async def test_first_delivery_is_claimed(monkeypatch) -> None:
    calls = _patch_insert(monkeypatch, lambda: 101)
    session = _Session()

    result = await try_claim(session, transaction_id="tx-1", purchase=_purchase())

    assert result.claimed is True
    assert result.purchase_id == 101
    assert result.fail_open is False
    assert session.savepoints == 1
    assert calls[0]["transaction_id"] == "tx-1"
    assert calls[0]["amount_paid_decimal"] == Decimal("49.00")


@pytest.mark.asyncio
async def test_conflicting_transaction_id_is_a_duplicate(monkeypatch) -> None:
    _patch_insert(monkeypatch, lambda: None)

    result = await try_claim(_Session(), transaction_id="tx-1", purchase=_purchase())

    assert result.claimed is False
    assert result.purchase_id is None


@pytest.mark.asyncio
async def test_missing_transaction_id_is_always_claimed(monkeypatch) -> None:
    calls = _patch_insert(monkeypatch, lambda: 102)

    first = await try_claim(_Session(), transaction_id=None, purchase=_purchase())
    second = await try_claim(_Session(), transaction_id=None, purchase=_purchase())

    assert first.claimed is True
    assert second.claimed is True
    assert [call["transaction_id"] for call in calls] == [None, None]


@pytest.mark.asyncio
async def test_store_failure_fails_open(monkeypatch) -> None:
    def _raise() -> int:
        raise OperationalError("INSERT INTO purchases", {}, Exception("connection reset"))

    _patch_insert(monkeypatch, _raise)

    result = await try_claim(_Session(), transaction_id="tx-1", purchase=_purchase())

    assert result.claimed is True
    assert result.fail_open is True
    assert result.purchase_id is None
