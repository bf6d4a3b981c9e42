"""m1_mentorship_entitlements_schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0a1b2c3d4e5f"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "instructors",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("discord_id", sa.String(32), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("discord_id", name="uq_instructors_discord_id"),
    )

    op.create_table(
        "offers",
        sa.Column("offer_id", sa.String(64), primary_key=True),
        sa.Column("instructor_id", sa.BigInteger(), nullable=False),
        sa.Column("offer_name", sa.String(255), nullable=True),
        sa.Column("sessions_per_purchase", sa.Integer(), nullable=True),
        sa.Column("mentee_role_name", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "sessions_per_purchase IS NULL OR sessions_per_purchase > 0",
            name="ck_offers_sessions_per_purchase_positive",
        ),
        sa.ForeignKeyConstraint(["instructor_id"], ["instructors.id"]),
    )
    op.create_index("idx_offers_instructor", "offers", ["instructor_id"])

    op.create_table(
        "mentees",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("discord_id", sa.String(32), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("email", name="uq_mentees_email"),
    )
    op.create_index("idx_mentees_discord_id", "mentees", ["discord_id"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("instructor_id", sa.BigInteger(), nullable=False),
        sa.Column("offer_id", sa.String(64), nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("amount_paid_decimal", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(8), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["instructor_id"], ["instructors.id"]),
        sa.UniqueConstraint("transaction_id", name="uq_purchases_transaction_id"),
    )
    op.create_index("idx_purchases_purchased_at", "purchases", ["purchased_at"])
    op.create_index("idx_purchases_email", "purchases", ["email"])

    op.create_table(
        "mentorships",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("mentee_id", sa.BigInteger(), nullable=False),
        sa.Column("instructor_id", sa.BigInteger(), nullable=False),
        sa.Column("sessions_remaining", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_sessions", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("mentee_role_name", sa.String(100), nullable=True),
        sa.Column("returned_after_end", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_session_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_reason", sa.String(64), nullable=True),
        sa.CheckConstraint("sessions_remaining >= 0", name="ck_mentorships_sessions_remaining_non_negative"),
        sa.CheckConstraint("total_sessions >= 0", name="ck_mentorships_total_sessions_non_negative"),
        sa.CheckConstraint("status IN ('active','ended')", name="ck_mentorships_status"),
        sa.ForeignKeyConstraint(["mentee_id"], ["mentees.id"]),
        sa.ForeignKeyConstraint(["instructor_id"], ["instructors.id"]),
        sa.UniqueConstraint("mentee_id", "instructor_id", name="uq_mentorships_mentee_instructor"),
    )
    op.create_index("idx_mentorships_instructor_status", "mentorships", ["instructor_id", "status"])

    op.create_table(
        "pending_joins",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("instructor_id", sa.BigInteger(), nullable=False),
        sa.Column("offer_id", sa.String(64), nullable=False),
        sa.Column("discord_user_id", sa.String(32), nullable=True),
        sa.Column("oauth_state", sa.String(128), nullable=True),
        sa.Column("oauth_state_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delayed_alert_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["instructor_id"], ["instructors.id"]),
        sa.UniqueConstraint("oauth_state", name="uq_pending_joins_oauth_state"),
    )
    op.create_index("idx_pending_joins_email", "pending_joins", ["email"])
    op.create_index(
        "idx_pending_joins_unconsumed_created",
        "pending_joins",
        ["created_at"],
        postgresql_where=sa.text("joined_at IS NULL"),
    )

    op.create_table(
        "rate_limit_tokens",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("token_key", sa.String(255), nullable=False),
        sa.Column("token_type", sa.String(32), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reset_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("token_key", "token_type", name="uq_rate_limit_tokens_key_type"),
    )
    op.create_index("idx_rate_limit_tokens_reset_at", "rate_limit_tokens", ["reset_at"])

    op.create_table(
        "shortened_urls",
        sa.Column("short_code", sa.String(64), primary_key=True),
        sa.Column("original_url", sa.Text(), nullable=False),
        sa.Column("click_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_clicked_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "url_analytics",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("short_code", sa.String(64), nullable=False),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referer", sa.Text(), nullable=True),
        sa.Column("ip_hash", sa.String(64), nullable=True),
        sa.Column("device_type", sa.String(16), nullable=True),
        sa.Column("browser", sa.String(32), nullable=True),
        sa.Column("os", sa.String(32), nullable=True),
        sa.ForeignKeyConstraint(["short_code"], ["shortened_urls.short_code"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_url_analytics_short_code_clicked",
        "url_analytics",
        ["short_code", "clicked_at"],
    )
    op.create_index("idx_url_analytics_clicked_at", "url_analytics", ["clicked_at"])


def downgrade() -> None:
    op.drop_index("idx_url_analytics_clicked_at", table_name="url_analytics")
    op.drop_index("idx_url_analytics_short_code_clicked", table_name="url_analytics")
    op.drop_table("url_analytics")
    op.drop_table("shortened_urls")
    op.drop_index("idx_rate_limit_tokens_reset_at", table_name="rate_limit_tokens")
    op.drop_table("rate_limit_tokens")
    op.drop_index("idx_pending_joins_unconsumed_created", table_name="pending_joins")
    op.drop_index("idx_pending_joins_email", table_name="pending_joins")
    op.drop_table("pending_joins")
    op.drop_index("idx_mentorships_instructor_status", table_name="mentorships")
    op.drop_table("mentorships")
    op.drop_index("idx_purchases_email", table_name="purchases")
    op.drop_index("idx_purchases_purchased_at", table_name="purchases")
    op.drop_table("purchases")
    op.drop_index("idx_mentees_discord_id", table_name="mentees")
    op.drop_table("mentees")
    op.drop_index("idx_offers_instructor", table_name="offers")
    op.drop_table("offers")
    op.drop_table("instructors")
