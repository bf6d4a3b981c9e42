from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from app.db.models.mentees import Mentee
from app.db.models.pending_joins import PendingJoin
from app.db.session import SessionLocal
from app.services import purchase_webhook
from app.services.webhook_payloads import parse_purchase_payload
from tests.integration.mentorship_fixtures import _create_instructor_with_offer, _mentorships, _purchase_count
from tests.services.service_fixtures import RecordingOrchestrator


@pytest.fixture
def orchestrator(monkeypatch) -> RecordingOrchestrator:
    recorder = RecordingOrchestrator()
    monkeypatch.setattr(purchase_webhook, "get_orchestrator", lambda: recorder)
    return recorder


@pytest.mark.asyncio
async def test_first_purchase_creates_mentee_mentorship_and_pending_join(orchestrator) -> None:
    instructor_id = await _create_instructor_with_offer(offer_id="7", sessions_per_purchase=4)

    outcome = await purchase_webhook.process_purchase(
        parse_purchase_payload({"member": {"email": "a@b.com"}, "offer": {"id": 7}}),
        provider="kajabi",
    )

    assert outcome.duplicate is False
    assert outcome.subject == "new"

    async with SessionLocal() as session:
        mentee = (await session.execute(select(Mentee).where(Mentee.email == "a@b.com"))).scalar_one()
        pending_join = (await session.execute(select(PendingJoin))).scalar_one()
    mentorships = await _mentorships()

    assert mentee.discord_id is None
    assert len(mentorships) == 1
    mentorship = mentorships[0]
    assert (mentorship.instructor_id, mentorship.sessions_remaining, mentorship.total_sessions) == (instructor_id, 4, 4)
    assert mentorship.status == "active"
    assert pending_join.email == "a@b.com"
    assert pending_join.oauth_state
    assert pending_join.joined_at is None
    assert "invite_email" in orchestrator.names


@pytest.mark.asyncio
async def test_replayed_transaction_is_duplicate_and_ledger_unchanged(orchestrator) -> None:
    await _create_instructor_with_offer(offer_id="7", sessions_per_purchase=4)
    payload = {
        "member": {"email": "a@b.com"},
        "offer": {"id": 7},
        "transaction": {"id": "tx-1", "amount": "100.00", "currency": "USD"},
    }

    first = await purchase_webhook.process_purchase(parse_purchase_payload(payload), provider="kajabi")
    replay = await purchase_webhook.process_purchase(parse_purchase_payload(payload), provider="kajabi")

    assert first.duplicate is False
    assert replay.duplicate is True
    assert await _purchase_count() == 1
    mentorships = await _mentorships()
    assert mentorships[0].sessions_remaining == 4
    assert mentorships[0].total_sessions == 4


@pytest.mark.asyncio
async def test_concurrent_deliveries_of_one_transaction_apply_once(orchestrator) -> None:
    await _create_instructor_with_offer(offer_id="7", sessions_per_purchase=4)
    event = parse_purchase_payload(
        {"member": {"email": "race@example.com"}, "offer": {"id": 7}, "transaction": {"id": "tx-race"}}
    )

    outcomes = await asyncio.gather(
        *(purchase_webhook.process_purchase(event, provider="kajabi") for _ in range(5))
    )

    assert sum(1 for outcome in outcomes if not outcome.duplicate) == 1
    assert sum(1 for outcome in outcomes if outcome.duplicate) == 4
    assert await _purchase_count() == 1
    mentorships = await _mentorships()
    assert len(mentorships) == 1
    assert mentorships[0].sessions_remaining == 4


@pytest.mark.asyncio
async def test_repeat_purchase_adds_sessions(orchestrator) -> None:
    await _create_instructor_with_offer(offer_id="7", sessions_per_purchase=4)

    for transaction_id in ("tx-a", "tx-b"):
        await purchase_webhook.process_purchase(
            parse_purchase_payload(
                {
                    "member": {"email": "a@b.com"},
                    "offer": {"id": 7},
                    "transaction": {"id": transaction_id, "amount": "10.00"},
                }
            ),
            provider="kajabi",
        )

    mentorships = await _mentorships()
    assert (mentorships[0].sessions_remaining, mentorships[0].total_sessions) == (8, 8)
    assert await _purchase_count() == 2
