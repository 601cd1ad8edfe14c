"""Initial schema (firms, clients, cases, emails, sources, jobs)

Revision ID: 20261001_0900
Revises:
Create Date: 2026-10-01

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "20261001_0900"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def _enum() -> sa.String:
    # Enums are stored by value in VARCHAR columns.
    return sa.String(32)


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _firm_fk(*, nullable: bool = False) -> sa.Column:
    return sa.Column(
        "firm_id", sa.Uuid(), sa.ForeignKey("firms.id", ondelete="CASCADE"), nullable=nullable
    )


def upgrade() -> None:
    op.create_table(
        "firms",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        _ts("created_at"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_table(
        "memberships",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", _enum(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("firm_id", "user_id", name="uq_memberships_firm_user"),
    )
    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "active_firm_id", sa.Uuid(), sa.ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("token_hash", sa.LargeBinary(), nullable=False, unique=True),
        _ts("created_at"),
        _ts("last_seen_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _ts("revoked_at", nullable=True),
        sa.Column("revoked_reason", sa.Text(), nullable=True),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column(
            "actor_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("event_data", JSONType, nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_audit_events_firm_created", "audit_events", ["firm_id", "created_at"])

    op.create_table(
        "clients",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("client_type", _enum(), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("company_type", sa.String(64), nullable=True),
        sa.Column("cui", sa.String(64), nullable=True),
        sa.Column("registration_number", sa.String(64), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("firm_id", "name", name="uq_clients_firm_name"),
    )
    op.create_table(
        "client_contacts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("kind", _enum(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_client_contacts_client", "client_contacts", ["client_id"])
    op.create_table(
        "client_team_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("client_id", "user_id", name="uq_client_team_client_user"),
    )

    op.create_table(
        "cases",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("case_number", sa.String(64), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", _enum(), nullable=False),
        sa.Column("reference_numbers", JSONType, nullable=False),
        sa.Column("keywords", JSONType, nullable=False),
        sa.Column("subject_patterns", JSONType, nullable=False),
        sa.Column("company_domain", sa.String(255), nullable=True),
        _ts("last_activity_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("firm_id", "case_number", name="uq_cases_firm_case_number"),
    )
    op.create_index("ix_cases_firm_status", "cases", ["firm_id", "status"])
    op.create_table(
        "case_team_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", _enum(), nullable=False),
        _ts("assigned_at"),
        sa.UniqueConstraint("case_id", "user_id", name="uq_case_team_case_user"),
    )
    op.create_table(
        "case_actors",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("organization", sa.Text(), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("email_domains", JSONType, nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_case_actors_case", "case_actors", ["case_id"])
    op.create_table(
        "case_notes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "author_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("body_html", sa.Text(), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_case_notes_case_created", "case_notes", ["case_id", "created_at"])

    op.create_table(
        "emails",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column(
            "owner_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("conversation_id", sa.String(255), nullable=True),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("body_preview", sa.Text(), nullable=False),
        sa.Column("body_content", sa.Text(), nullable=False),
        sa.Column("direction", _enum(), nullable=False),
        sa.Column("from_address", sa.String(320), nullable=False),
        sa.Column("from_name", sa.Text(), nullable=True),
        sa.Column("to_recipients", JSONType, nullable=False),
        sa.Column("cc_recipients", JSONType, nullable=False),
        _ts("received_at"),
        sa.Column("classification_state", _enum(), nullable=False),
        sa.Column("classification_confidence", sa.Float(), nullable=True),
        sa.Column("match_type", _enum(), nullable=True),
        sa.Column("classification_reason", sa.Text(), nullable=True),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("cases.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
        ),
        _ts("classified_at", nullable=True),
        sa.Column("classified_by", sa.String(255), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_emails_firm_state", "emails", ["firm_id", "classification_state"])
    op.create_index("ix_emails_firm_conversation", "emails", ["firm_id", "conversation_id"])
    op.create_index("ix_emails_firm_from", "emails", ["firm_id", "from_address"])
    op.create_index("ix_emails_case", "emails", ["case_id"])
    op.create_table(
        "email_case_links",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column(
            "email_id", sa.Uuid(), sa.ForeignKey("emails.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("match_type", _enum(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("linked_by", sa.String(255), nullable=False),
        _ts("linked_at"),
        sa.UniqueConstraint("email_id", "case_id", name="uq_email_case_links_email_case"),
    )
    op.create_table(
        "global_email_sources",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category", _enum(), nullable=False),
        sa.Column("domains", JSONType, nullable=False),
        sa.Column("emails", JSONType, nullable=False),
        sa.Column("classification_hint", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("firm_id", "name", name="uq_email_sources_firm_name"),
    )

    op.create_table(
        "bg_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _firm_fk(nullable=True),
        sa.Column("type", _enum(), nullable=False),
        sa.Column("status", _enum(), nullable=False),
        _ts("run_at"),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        _ts("locked_at", nullable=True),
        sa.Column("locked_by", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("dedupe_key", sa.Text(), nullable=True),
        sa.Column("payload", JSONType, nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_bg_jobs_status_run_at", "bg_jobs", ["status", "run_at"])
    op.create_index("ix_bg_jobs_dedupe_key", "bg_jobs", ["dedupe_key"])


def downgrade() -> None:
    for table in (
        "bg_jobs",
        "global_email_sources",
        "email_case_links",
        "emails",
        "case_notes",
        "case_actors",
        "case_team_members",
        "cases",
        "client_team_members",
        "client_contacts",
        "clients",
        "audit_events",
        "auth_sessions",
        "memberships",
        "users",
        "firms",
    ):
        op.drop_table(table)
