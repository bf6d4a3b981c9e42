from __future__ import annotations

from types import SimpleNamespace

import pytest

from app.core.errors import MenteeNotFoundError, OfferNotMappedError
from app.db.repo.mentorships_repo import EndedMentorshipRow
from app.services import cancellation_webhook
from app.services.webhook_payloads import CancellationEvent
from tests.services.service_fixtures import FakeSessionLocal


def _settings() -> SimpleNamespace:
    return SimpleNamespace(
        default_mentee_role_name="1-on-1 Mentee",
        organization_name="Acme Mentors",
        support_email="support@example.com",
        support_discord_id="",
        support_discord_name="Admin",
    )


class _World:
    def __init__(self) -> None:
        self.mentee = SimpleNamespace(id=21, email="a@b.com", discord_id="555")
        self.offer = SimpleNamespace(offer_id="7", instructor_id=11)
        self.ended = [EndedMentorshipRow(id=31, instructor_id=11, mentee_role_name=None)]
        self.remaining_active = 0
        self.end_calls: list[dict[str, object]] = []


@pytest.fixture
def world(monkeypatch, orchestrator) -> _World:
    state = _World()

    async def _get_mentee(session, email):
        return state.mentee if state.mentee is not None and email == state.mentee.email else None

    async def _get_offer(session, offer_id):
        return state.offer if offer_id == state.offer.offer_id else None

    async def _end(session, **kwargs):
        state.end_calls.append(kwargs)
        return state.ended

    async def _count_active(session, *, mentee_id):
        return state.remaining_active

    monkeypatch.setattr(cancellation_webhook, "get_settings", _settings)
    monkeypatch.setattr(cancellation_webhook, "SessionLocal", FakeSessionLocal())
    monkeypatch.setattr(cancellation_webhook.MenteesRepo, "get_by_email", staticmethod(_get_mentee))
    monkeypatch.setattr(cancellation_webhook.OffersRepo, "get_by_offer_id", staticmethod(_get_offer))
    monkeypatch.setattr(cancellation_webhook, "end_active_mentorships", _end)
    monkeypatch.setattr(cancellation_webhook.MentorshipsRepo, "count_active_for_mentee", staticmethod(_count_active))
    monkeypatch.setattr(cancellation_webhook, "get_orchestrator", lambda: orchestrator)
    return state


@pytest.mark.asyncio
async def test_last_mentorship_ended_revokes_role(world, orchestrator) -> None:
    outcome = await cancellation_webhook.process_cancellation(
        CancellationEvent(email="a@b.com", offer_id="7", reason="refund"),
        provider="kajabi",
    )

    assert outcome.ended_count == 1
    assert outcome.role_removal_scheduled is True
    assert world.end_calls[0]["instructor_id"] == 11
    assert world.end_calls[0]["reason"] == "refund"
    assert orchestrator.names == ["revoke_mentee_role", "goodbye_dm", "alert_mentorship_ended"]


@pytest.mark.asyncio
async def test_role_kept_while_other_mentorships_active(world, orchestrator) -> None:
    world.remaining_active = 1

    outcome = await cancellation_webhook.process_cancellation(
        CancellationEvent(email="a@b.com", offer_id=None, reason="Mentorship ended"),
        provider="kajabi",
    )

    assert outcome.role_removal_scheduled is False
    assert world.end_calls[0]["instructor_id"] is None
    assert "revoke_mentee_role" not in orchestrator.names


@pytest.mark.asyncio
async def test_nothing_active_is_a_noop(world, orchestrator) -> None:
    world.ended = []

    outcome = await cancellation_webhook.process_cancellation(
        CancellationEvent(email="a@b.com", offer_id="7", reason="refund"),
        provider="kajabi",
    )

    assert outcome.ended_count == 0
    assert orchestrator.spawned == []


@pytest.mark.asyncio
async def test_unknown_mentee_raises(world) -> None:
    world.mentee = None

    with pytest.raises(MenteeNotFoundError):
        await cancellation_webhook.process_cancellation(
            CancellationEvent(email="a@b.com", offer_id="7", reason="refund"),
            provider="kajabi",
        )


@pytest.mark.asyncio
async def test_unmapped_offer_ends_nothing_and_alerts(world, orchestrator) -> None:
    with pytest.raises(OfferNotMappedError):
        await cancellation_webhook.process_cancellation(
            CancellationEvent(email="a@b.com", offer_id="999", reason="refund"),
            provider="kajabi",
        )

    assert world.end_calls == []
    assert orchestrator.names == ["alert_offer_not_mapped"]
    assert orchestrator.spawned[0][1] == {"offer_id": "999"}


@pytest.mark.asyncio
async def test_missing_offer_id_ends_every_instructor(world, orchestrator) -> None:
    world.ended = [
        EndedMentorshipRow(id=31, instructor_id=11, mentee_role_name=None),
        EndedMentorshipRow(id=32, instructor_id=12, mentee_role_name="VIP Mentee"),
    ]

    outcome = await cancellation_webhook.process_cancellation(
        CancellationEvent(email="a@b.com", offer_id=None, reason="refund"),
        provider="kajabi",
    )

    assert outcome.ended_count == 2
    assert world.end_calls == [{"mentee_id": 21, "instructor_id": None, "reason": "refund"}]
    assert orchestrator.names.count("revoke_mentee_role") == 2
    assert "alert_offer_not_mapped" not in orchestrator.names
