"""Initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-11-01 00:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "lists",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("list_type", sa.String(), nullable=False, server_default="gifts"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_lists_owner_id", "lists", ["owner_id"])

    op.create_table(
        "list_collaborators",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("list_id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("permission", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["list_id"], ["lists.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("list_id", "user_id", name="uq_list_collaborators_list_user"),
    )

    op.create_table(
        "secret_santa_rounds",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("list_id", sa.String(length=36), nullable=False),
        sa.Column(
            "status",
            sa.Enum("draft", "active", "closed", name="secret_santa_round_status"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("budget_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("exchange_date", sa.Date(), nullable=True),
        sa.Column("signup_cutoff_date", sa.Date(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("exclusion_pairs", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("auto_draw_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notify_via_push", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notify_via_email", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_draw_seed", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["list_id"], ["lists.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
    )
    op.create_index("ix_secret_santa_rounds_list_status", "secret_santa_rounds", ["list_id", "status"])
    op.create_index(
        "uq_secret_santa_rounds_open_list",
        "secret_santa_rounds",
        ["list_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('draft', 'active')"),
        sqlite_where=sa.text("status IN ('draft', 'active')"),
    )

    op.create_table(
        "secret_santa_round_participants",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("round_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column(
            "status",
            sa.Enum("invited", "accepted", "declined", "removed", name="secret_santa_participant_status"),
            nullable=False,
            server_default="invited",
        ),
        sa.Column("wishlist_list_id", sa.String(length=36), nullable=True),
        sa.Column("wishlist_type", sa.String(), nullable=True),
        sa.Column("wishlist_share_consent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("wishlist_share_consented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["round_id"], ["secret_santa_rounds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["wishlist_list_id"], ["lists.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("round_id", "user_id", name="uq_secret_santa_participants_round_user"),
    )
    op.create_index("ix_secret_santa_participants_round", "secret_santa_round_participants", ["round_id"])

    op.create_table(
        "secret_santa_pairings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("round_id", sa.String(length=36), nullable=False),
        sa.Column("giver_user_id", sa.String(length=36), nullable=False),
        sa.Column("recipient_user_id", sa.String(length=36), nullable=False),
        sa.Column("revealed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["round_id"], ["secret_santa_rounds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["giver_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("round_id", "giver_user_id", name="uq_secret_santa_pairings_round_giver"),
    )
    op.create_index("ix_secret_santa_pairings_round", "secret_santa_pairings", ["round_id"])

    op.create_table(
        "secret_santa_guest_invites",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("round_id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("invite_token", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["round_id"], ["secret_santa_rounds.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("round_id", "email", name="uq_secret_santa_guest_invites_round_email"),
        sa.UniqueConstraint("invite_token", name="uq_secret_santa_guest_invites_token"),
    )
    op.create_index("ix_secret_santa_guest_invites_round", "secret_santa_guest_invites", ["round_id"])

    op.create_table(
        "change_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("table_name", sa.String(), nullable=False),
        sa.Column("record_id", sa.String(length=36), nullable=False),
        sa.Column("operation", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_change_log_user_id", "change_log", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_change_log_user_id", table_name="change_log")
    op.drop_table("change_log")
    op.drop_index("ix_secret_santa_guest_invites_round", table_name="secret_santa_guest_invites")
    op.drop_table("secret_santa_guest_invites")
    op.drop_index("ix_secret_santa_pairings_round", table_name="secret_santa_pairings")
    op.drop_table("secret_santa_pairings")
    op.drop_index("ix_secret_santa_participants_round", table_name="secret_santa_round_participants")
    op.drop_table("secret_santa_round_participants")
    op.drop_index("uq_secret_santa_rounds_open_list", table_name="secret_santa_rounds")
    op.drop_index("ix_secret_santa_rounds_list_status", table_name="secret_santa_rounds")
    op.drop_table("secret_santa_rounds")
    op.drop_table("list_collaborators")
    op.drop_index("ix_lists_owner_id", table_name="lists")
    op.drop_table("lists")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS secret_santa_participant_status")
    op.execute("DROP TYPE IF EXISTS secret_santa_round_status")
