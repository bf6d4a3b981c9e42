from __future__ import annotations

from dataclasses import dataclass

import structlog

from app.core.config import get_settings
from app.core.errors import MenteeNotFoundError, OfferNotMappedError
from app.db.repo.mentees_repo import MenteesRepo
from app.db.repo.mentorships_repo import MentorshipsRepo
from app.db.repo.offers_repo import OffersRepo
from app.db.session import SessionLocal
from app.services.alerts import send_ops_alert
from app.services.notification_texts import goodbye_dm, support_contact
from app.services.notifications import get_orchestrator, send_discord_dm
from app.services.role_lifecycle import revoke_mentee_role
from app.services.session_ledger import end_active_mentorships
from app.services.webhook_payloads import CancellationEvent

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CancellationOutcome:
    ended_count: int
    remaining_active: int
    role_removal_scheduled: bool


def _alert_offer_not_mapped(event: CancellationEvent, *, provider: str) -> None:
    logger.warning("cancellation_offer_not_mapped", provider=provider, offer_id=event.offer_id)
    get_orchestrator().spawn(
        send_ops_alert(
            event="offer_not_mapped",
            payload={
                "provider": provider,
                "offer_id": event.offer_id,
                "mentee_email": event.email,
                "kind": "cancellation",
            },
        ),
        name="alert_offer_not_mapped",
        offer_id=event.offer_id,
    )


async def process_cancellation(event: CancellationEvent, *, provider: str) -> CancellationOutcome:
    """Ends the mentee's active mentorships, then revokes the role once none are left."""
    settings = get_settings()

    async with SessionLocal.begin() as session:
        mentee = await MenteesRepo.get_by_email(session, event.email)
        if mentee is None:
            raise MenteeNotFoundError("Mentee not found", details={"email": event.email})

        # No offer id ends mentorships with every instructor; an unmapped one ends nothing.
        instructor_id = None
        if event.offer_id is not None:
            offer = await OffersRepo.get_by_offer_id(session, event.offer_id)
            if offer is None:
                _alert_offer_not_mapped(event, provider=provider)
                raise OfferNotMappedError("Offer not found", details={"offer_id": event.offer_id})
            instructor_id = offer.instructor_id

        ended = await end_active_mentorships(
            session,
            mentee_id=mentee.id,
            instructor_id=instructor_id,
            reason=event.reason,
        )
        remaining_active = await MentorshipsRepo.count_active_for_mentee(session, mentee_id=mentee.id)
        mentee_id = mentee.id
        discord_id = mentee.discord_id

    logger.info(
        "mentorships_ended",
        provider=provider,
        mentee_id=mentee_id,
        ended_count=len(ended),
        remaining_active=remaining_active,
        reason=event.reason,
    )
    if not ended:
        return CancellationOutcome(ended_count=0, remaining_active=remaining_active, role_removal_scheduled=False)

    orchestrator = get_orchestrator()
    context = {"mentee_id": mentee_id}
    role_removal_scheduled = False
    if remaining_active == 0 and discord_id:
        role_names = sorted({row.mentee_role_name or settings.default_mentee_role_name for row in ended})
        for role_name in role_names:
            orchestrator.spawn(
                revoke_mentee_role(discord_id=discord_id, role_name=role_name, mentee_email=event.email),
                name="revoke_mentee_role",
                **context,
            )
        role_removal_scheduled = True

    if discord_id:
        orchestrator.spawn(
            send_discord_dm(
                discord_id=discord_id,
                content=goodbye_dm(
                    reason=event.reason,
                    organization_name=settings.organization_name,
                    support=support_contact(
                        support_email=settings.support_email,
                        support_discord_id=settings.support_discord_id,
                        support_discord_name=settings.support_discord_name,
                    ),
                ),
                purpose="goodbye",
            ),
            name="goodbye_dm",
            **context,
        )
    orchestrator.spawn(
        send_ops_alert(
            event="mentorship_ended",
            payload={
                "mentee_email": event.email,
                "discord_id": discord_id,
                "ended_count": len(ended),
                "remaining_active": remaining_active,
                "reason": event.reason,
            },
        ),
        name="alert_mentorship_ended",
        **context,
    )
    return CancellationOutcome(
        ended_count=len(ended),
        remaining_active=remaining_active,
        role_removal_scheduled=role_removal_scheduled,
    )
