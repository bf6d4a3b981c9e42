from __future__ import annotations

import pytest

from app.db.repo.mentees_repo import MenteesRepo
from app.db.session import SessionLocal
from app.services import purchase_webhook
from app.services.session_ledger import (
    end_active_mentorships,
    increment_sessions,
    upsert_mentorship_sessions,
)
from app.services.webhook_payloads import parse_purchase_payload
from tests.integration.mentorship_fixtures import _create_instructor_with_offer, _mentorships
from tests.services.service_fixtures import RecordingOrchestrator


async def _seed_mentorship(*, sessions: int = 4) -> tuple[int, int, int]:
    instructor_id = await _create_instructor_with_offer()
    async with SessionLocal.begin() as session:
        mentee = await MenteesRepo.get_or_create_by_email(session, email="a@b.com", name=None)
        result = await upsert_mentorship_sessions(
            session,
            mentee_id=mentee.id,
            instructor_id=instructor_id,
            delta=sessions,
            default_role_name=None,
        )
    return mentee.id, instructor_id, result.mentorship_id


@pytest.mark.asyncio
async def test_decrement_never_goes_below_zero() -> None:
    _, _, mentorship_id = await _seed_mentorship(sessions=2)

    async with SessionLocal.begin() as session:
        first = await increment_sessions(session, mentorship_id=mentorship_id, delta=-1)
        second = await increment_sessions(session, mentorship_id=mentorship_id, delta=-5)

    assert first == 1
    assert second == 0
    mentorships = await _mentorships()
    assert mentorships[0].sessions_remaining == 0


@pytest.mark.asyncio
async def test_ended_mentorship_is_reactivated_by_renewal() -> None:
    mentee_id, instructor_id, mentorship_id = await _seed_mentorship(sessions=4)

    async with SessionLocal.begin() as session:
        ended = await end_active_mentorships(
            session,
            mentee_id=mentee_id,
            instructor_id=instructor_id,
            reason="refund",
        )
    assert [row.id for row in ended] == [mentorship_id]

    async with SessionLocal.begin() as session:
        result = await upsert_mentorship_sessions(
            session,
            mentee_id=mentee_id,
            instructor_id=instructor_id,
            delta=4,
            default_role_name=None,
        )

    assert result.mentorship_id == mentorship_id
    assert result.created is False
    assert result.reactivated is True
    mentorship = (await _mentorships())[0]
    assert mentorship.status == "active"
    assert mentorship.returned_after_end is True
    assert mentorship.ended_at is None
    assert mentorship.sessions_remaining == 8


@pytest.mark.asyncio
async def test_renewal_of_linked_mentee_regrants_role_exactly_once(monkeypatch) -> None:
    recorder = RecordingOrchestrator()
    monkeypatch.setattr(purchase_webhook, "get_orchestrator", lambda: recorder)
    mentee_id, instructor_id, _ = await _seed_mentorship(sessions=4)

    async with SessionLocal.begin() as session:
        await MenteesRepo.link_discord_id(session, email="a@b.com", discord_id="555", name=None)
        await end_active_mentorships(session, mentee_id=mentee_id, instructor_id=instructor_id, reason="expired")

    outcome = await purchase_webhook.process_purchase(
        parse_purchase_payload({"member": {"email": "a@b.com"}, "offer": {"id": 7}, "transaction": {"id": "tx-renew"}}),
        provider="kajabi",
    )

    assert outcome.subject == "returning"
    assert recorder.names.count("grant_mentee_role") == 1
    assert "sessions_added_dm" in recorder.names
