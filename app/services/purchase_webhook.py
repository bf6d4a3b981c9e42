from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from app.core.config import get_settings
from app.core.errors import OfferNotMappedError
from app.db.models.offers import Offer
from app.db.repo.instructors_repo import InstructorsRepo
from app.db.repo.mentees_repo import MenteesRepo
from app.db.repo.offers_repo import OffersRepo
from app.db.repo.pending_joins_repo import PendingJoinsRepo
from app.db.session import SessionLocal
from app.services.alerts import send_ops_alert
from app.services.idempotency import PurchaseFields, try_claim
from app.services.notification_texts import sessions_added_dm
from app.services.notifications import (
    get_orchestrator,
    notify_admin_purchase,
    send_discord_dm,
    send_invite_email,
)
from app.services.role_lifecycle import grant_mentee_role
from app.services.session_ledger import UpsertResult, upsert_mentorship_sessions
from app.services.webhook_payloads import PurchaseEvent

logger = structlog.get_logger(__name__)

SUBJECT_NEW = "new"
SUBJECT_RETURNING = "returning"
OAUTH_STATE_BYTES = 32


@dataclass(frozen=True, slots=True)
class PurchaseOutcome:
    duplicate: bool
    message: str
    subject: str | None = None
    mentorship_id: int | None = None


@dataclass(frozen=True, slots=True)
class _CommittedPurchase:
    subject: str
    mentee_discord_id: str | None
    ledger: UpsertResult
    oauth_state: str | None
    instructor_name: str


def new_oauth_state() -> str:
    return secrets.token_urlsafe(OAUTH_STATE_BYTES)


def resolve_grant(offer: Offer, *, default_sessions: int, default_role_name: str) -> tuple[int, str]:
    sessions = offer.sessions_per_purchase or default_sessions
    role_name = offer.mentee_role_name or default_role_name
    return max(1, int(sessions)), role_name


async def _load_offer(offer_id: str) -> Offer:
    async with SessionLocal() as session:
        offer = await OffersRepo.get_by_offer_id(session, offer_id)
    if offer is None:
        raise OfferNotMappedError("Offer not found", details={"offer_id": offer_id})
    return offer


async def process_purchase(event: PurchaseEvent, *, provider: str) -> PurchaseOutcome:
    settings = get_settings()
    log = logger.bind(provider=provider, offer_id=event.offer_id, transaction_id=event.transaction_id)

    try:
        offer = await _load_offer(event.offer_id)
    except OfferNotMappedError:
        log.warning("purchase_offer_not_mapped")
        get_orchestrator().spawn(
            send_ops_alert(
                event="offer_not_mapped",
                payload={"provider": provider, "offer_id": event.offer_id, "mentee_email": event.email},
            ),
            name="alert_offer_not_mapped",
            offer_id=event.offer_id,
        )
        raise

    sessions, role_name = resolve_grant(
        offer,
        default_sessions=settings.default_sessions_per_purchase,
        default_role_name=settings.default_mentee_role_name,
    )
    now_utc = datetime.now(timezone.utc)

    async with SessionLocal.begin() as session:
        claim = await try_claim(
            session,
            transaction_id=event.transaction_id,
            purchase=PurchaseFields(
                email=event.email,
                instructor_id=offer.instructor_id,
                offer_id=offer.offer_id,
                amount=event.amount,
                currency=event.currency,
            ),
        )
        if not claim.claimed:
            log.info("purchase_duplicate_ignored")
            return PurchaseOutcome(duplicate=True, message="Webhook already processed")

        mentee = await MenteesRepo.get_or_create_by_email(
            session,
            email=event.email,
            name=event.subject_name,
        )
        ledger = await upsert_mentorship_sessions(
            session,
            mentee_id=mentee.id,
            instructor_id=offer.instructor_id,
            delta=sessions,
            default_role_name=role_name,
        )
        subject = SUBJECT_RETURNING if mentee.discord_id else SUBJECT_NEW
        oauth_state = None
        if subject == SUBJECT_NEW:
            oauth_state = new_oauth_state()
            await PendingJoinsRepo.create(
                session,
                email=event.email,
                instructor_id=offer.instructor_id,
                offer_id=offer.offer_id,
                oauth_state=oauth_state,
                oauth_state_expires_at=now_utc + timedelta(hours=settings.pending_join_ttl_hours),
            )
        instructor = await InstructorsRepo.get_by_id(session, offer.instructor_id)
        committed = _CommittedPurchase(
            subject=subject,
            mentee_discord_id=mentee.discord_id,
            ledger=ledger,
            oauth_state=oauth_state,
            instructor_name=instructor.name if instructor is not None else "your instructor",
        )

    log.info(
        "purchase_processed",
        subject=committed.subject,
        mentorship_id=ledger.mentorship_id,
        mentorship_created=ledger.created,
        mentorship_reactivated=ledger.reactivated,
        sessions_remaining=ledger.sessions_remaining,
    )
    _schedule_side_effects(
        event=event,
        offer=offer,
        role_name=role_name,
        sessions_added=sessions,
        committed=committed,
        purchased_at=now_utc,
    )
    return PurchaseOutcome(
        duplicate=False,
        message="Webhook processed successfully",
        subject=committed.subject,
        mentorship_id=ledger.mentorship_id,
    )


def _schedule_side_effects(
    *,
    event: PurchaseEvent,
    offer: Offer,
    role_name: str,
    sessions_added: int,
    committed: _CommittedPurchase,
    purchased_at: datetime,
) -> None:
    orchestrator = get_orchestrator()
    context = {"mentorship_id": committed.ledger.mentorship_id}

    if committed.subject == SUBJECT_RETURNING and committed.mentee_discord_id:
        if committed.ledger.created or committed.ledger.reactivated:
            orchestrator.spawn(
                grant_mentee_role(
                    discord_id=committed.mentee_discord_id,
                    role_name=role_name,
                    mentee_email=event.email,
                ),
                name="grant_mentee_role",
                **context,
            )
        orchestrator.spawn(
            send_discord_dm(
                discord_id=committed.mentee_discord_id,
                content=sessions_added_dm(
                    sessions_added=sessions_added,
                    sessions_remaining=committed.ledger.sessions_remaining,
                    instructor_name=committed.instructor_name,
                ),
                purpose="sessions_added",
            ),
            name="sessions_added_dm",
            **context,
        )
    elif committed.oauth_state is not None:
        orchestrator.spawn(
            send_invite_email(email=event.email, oauth_state=committed.oauth_state),
            name="invite_email",
            **context,
        )

    orchestrator.spawn(
        notify_admin_purchase(
            mentee_email=event.email,
            instructor_name=committed.instructor_name,
            offer_name=offer.offer_name or offer.offer_id,
            amount=event.amount,
            currency=event.currency,
            subject_kind=committed.subject,
            purchased_at=purchased_at,
        ),
        name="admin_purchase_notification",
        **context,
    )
