from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from app.core.config import get_settings
from app.core.errors import ExternalAPIError, OAuthStateError
from app.db.repo.instructors_repo import InstructorsRepo
from app.db.repo.mentees_repo import MenteesRepo
from app.db.repo.mentorships_repo import MentorshipsRepo
from app.db.repo.offers_repo import OffersRepo
from app.db.repo.pending_joins_repo import PendingJoinsRepo
from app.db.session import SessionLocal
from app.services.discord_api import DiscordGateway, get_discord_gateway
from app.services.notification_texts import instructor_new_mentee_dm, support_contact, welcome_dm
from app.services.notifications import get_orchestrator, send_discord_dm
from app.services.role_lifecycle import grant_mentee_role
from app.services.session_ledger import ensure_mentorship

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LinkResult:
    mentee_id: int
    mentorship_id: int
    mentorship_created: bool
    discord_user_id: str
    sessions_remaining: int
    role_name: str
    instructor_name: str
    instructor_discord_id: str | None


def _display_name(user: dict[str, object]) -> str | None:
    for key in ("global_name", "username"):
        value = user.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


async def _fetch_discord_identity(gateway: DiscordGateway, *, code: str) -> tuple[str, dict[str, object]]:
    settings = get_settings()
    access_token = await gateway.exchange_code(
        code,
        client_id=settings.discord_client_id,
        client_secret=settings.discord_client_secret,
        redirect_uri=settings.discord_redirect_uri,
    )
    user = await gateway.get_current_user(access_token)
    discord_user_id = str(user["id"])
    try:
        added = await gateway.add_guild_member(discord_user_id, access_token)
        logger.info("oauth_guild_join", discord_user_id=discord_user_id, added=added)
    except ExternalAPIError:
        logger.exception("oauth_guild_join_failed", discord_user_id=discord_user_id)
    return discord_user_id, user


async def complete_identity_link(
    *,
    code: str,
    state: str,
    gateway: DiscordGateway | None = None,
) -> LinkResult:
    """Binds the Discord account behind ``code`` to the purchase behind ``state``.

    The state is checked before any Discord call and again, row-locked, in the
    linking transaction so two callbacks for one state cannot both consume it.
    Discord failures propagate as ``ExternalAPIError``.
    """
    settings = get_settings()
    resolved_gateway = gateway or get_discord_gateway()

    async with SessionLocal() as session:
        pending_join = await PendingJoinsRepo.get_open_by_state(
            session,
            oauth_state=state,
            now_utc=datetime.now(timezone.utc),
        )
    if pending_join is None:
        raise OAuthStateError("Link expired or already used")

    discord_user_id, user = await _fetch_discord_identity(resolved_gateway, code=code)

    async with SessionLocal.begin() as session:
        now_utc = datetime.now(timezone.utc)
        pending_join = await PendingJoinsRepo.get_open_by_state(
            session,
            oauth_state=state,
            now_utc=now_utc,
            for_update=True,
        )
        if pending_join is None:
            raise OAuthStateError("Link expired or already used")

        mentee_id = await MenteesRepo.link_discord_id(
            session,
            email=pending_join.email,
            discord_id=discord_user_id,
            name=_display_name(user),
        )
        offer = await OffersRepo.get_by_offer_id(session, pending_join.offer_id)
        sessions = settings.default_sessions_per_purchase
        role_name = settings.default_mentee_role_name
        if offer is not None:
            sessions = offer.sessions_per_purchase or sessions
            role_name = offer.mentee_role_name or role_name

        ensured = await ensure_mentorship(
            session,
            mentee_id=mentee_id,
            instructor_id=pending_join.instructor_id,
            sessions=sessions,
            role_name=role_name,
        )
        mentorship = await MentorshipsRepo.get_by_id(session, ensured.mentorship_id)
        instructor = await InstructorsRepo.get_by_id(session, pending_join.instructor_id)
        await PendingJoinsRepo.mark_consumed(
            session,
            pending_join_id=pending_join.id,
            discord_user_id=discord_user_id,
            joined_at=now_utc,
        )
        result = LinkResult(
            mentee_id=mentee_id,
            mentorship_id=mentorship.id,
            mentorship_created=ensured.created,
            discord_user_id=discord_user_id,
            sessions_remaining=mentorship.sessions_remaining,
            role_name=mentorship.mentee_role_name or role_name,
            instructor_name=instructor.name if instructor is not None else "your instructor",
            instructor_discord_id=instructor.discord_id if instructor is not None else None,
        )

    logger.info(
        "identity_linked",
        mentee_id=result.mentee_id,
        mentorship_id=result.mentorship_id,
        mentorship_created=result.mentorship_created,
    )
    _schedule_link_side_effects(result, mentee_email=pending_join.email)
    return result


def _schedule_link_side_effects(result: LinkResult, *, mentee_email: str) -> None:
    settings = get_settings()
    orchestrator = get_orchestrator()
    context = {"mentorship_id": result.mentorship_id}

    orchestrator.spawn(
        grant_mentee_role(
            discord_id=result.discord_user_id,
            role_name=result.role_name,
            mentee_email=mentee_email,
        ),
        name="grant_mentee_role",
        **context,
    )
    orchestrator.spawn(
        send_discord_dm(
            discord_id=result.discord_user_id,
            content=welcome_dm(
                instructor_name=result.instructor_name,
                sessions_remaining=result.sessions_remaining,
                organization_name=settings.organization_name,
                support=support_contact(
                    support_email=settings.support_email,
                    support_discord_id=settings.support_discord_id,
                    support_discord_name=settings.support_discord_name,
                ),
            ),
            purpose="welcome",
        ),
        name="welcome_dm",
        **context,
    )
    if result.instructor_discord_id:
        orchestrator.spawn(
            send_discord_dm(
                discord_id=result.instructor_discord_id,
                content=instructor_new_mentee_dm(
                    mentee_label=f"<@{result.discord_user_id}>",
                    sessions_remaining=result.sessions_remaining,
                ),
                purpose="instructor_new_mentee",
            ),
            name="instructor_new_mentee_dm",
            **context,
        )
