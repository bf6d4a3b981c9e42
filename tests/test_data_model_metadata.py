from __future__ import annotations

from sqlalchemy import CheckConstraint, UniqueConstraint

from app.db.models import (  # noqa: F401
    Instructor,
    Mentee,
    Mentorship,
    Offer,
    PendingJoin,
    Purchase,
    RateLimitToken,
    ShortenedUrl,
    UrlAnalytics,
)
from app.db.models.base import Base


def _check_names(table_name: str) -> set[str | None]:
    table = Base.metadata.tables[table_name]
    return {constraint.name for constraint in table.constraints if isinstance(constraint, CheckConstraint)}


def _index_names(table_name: str) -> set[str | None]:
    return {index.name for index in Base.metadata.tables[table_name].indexes}


def test_all_m1_tables_registered() -> None:
    expected_tables = {
        "instructors",
        "offers",
        "mentees",
        "purchases",
        "mentorships",
        "pending_joins",
        "rate_limit_tokens",
        "shortened_urls",
        "url_analytics",
    }
    assert expected_tables == set(Base.metadata.tables)


def test_mentorship_ledger_constraints_present() -> None:
    assert {
        "ck_mentorships_sessions_remaining_non_negative",
        "ck_mentorships_total_sessions_non_negative",
        "ck_mentorships_status",
    }.issubset(_check_names("mentorships"))

    mentorships = Base.metadata.tables["mentorships"]
    unique_names = {
        constraint.name for constraint in mentorships.constraints if isinstance(constraint, UniqueConstraint)
    }
    assert "uq_mentorships_mentee_instructor" in unique_names
    assert "idx_mentorships_instructor_status" in _index_names("mentorships")


def test_purchase_transaction_id_is_unique_and_nullable() -> None:
    column = Base.metadata.tables["purchases"].c.transaction_id
    assert column.unique is True
    assert column.nullable is True
    assert {"idx_purchases_purchased_at", "idx_purchases_email"}.issubset(_index_names("purchases"))


def test_rate_limit_tokens_unique_per_key_and_type() -> None:
    table = Base.metadata.tables["rate_limit_tokens"]
    unique_names = {constraint.name for constraint in table.constraints if isinstance(constraint, UniqueConstraint)}
    assert "uq_rate_limit_tokens_key_type" in unique_names
    assert "idx_rate_limit_tokens_reset_at" in _index_names("rate_limit_tokens")


def test_offer_and_pending_join_constraints_present() -> None:
    assert "ck_offers_sessions_per_purchase_positive" in _check_names("offers")
    assert Base.metadata.tables["pending_joins"].c.oauth_state.unique is True
    assert "idx_pending_joins_unconsumed_created" in _index_names("pending_joins")


def test_url_analytics_cascades_from_short_links() -> None:
    foreign_key = next(iter(Base.metadata.tables["url_analytics"].c.short_code.foreign_keys))
    assert foreign_key.column.table.name == "shortened_urls"
    assert foreign_key.ondelete == "CASCADE"
