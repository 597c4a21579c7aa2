"""initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 12:00:00

"""

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "event",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(length=900), nullable=True),
        sa.Column("location", sa.String(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("allowed_transport_types", sa.JSON(), nullable=False),
        sa.Column("disable_link_previews", sa.Boolean(), nullable=False),
        sa.Column("share_code", sa.String(length=50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_event_share_code", "event", ["share_code"], unique=True)

    op.create_table(
        "registrant",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("telegram_id", sa.String(length=50), nullable=False),
        sa.Column("telegram_nickname", sa.String(length=100), nullable=True),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("transport_type", sa.String(length=20), nullable=False),
        sa.Column("transport_model", sa.String(length=100), nullable=True),
        sa.Column("participant_number", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("event.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("telegram_id", "event_id", name="unique_telegram_event"),
    )
    op.create_index("ix_registrant_telegram_id", "registrant", ["telegram_id"])
    op.create_index("ix_registrant_telegram_nickname", "registrant", ["telegram_nickname"])
    op.create_index("ix_registrant_event_id", "registrant", ["event_id"])
    op.create_index(
        "unique_active_event_number",
        "registrant",
        ["event_id", "participant_number"],
        unique=True,
        sqlite_where=sa.text("is_active"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "reservednumber",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("event.id"), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("event_id", "number", name="unique_event_reserved_number"),
    )
    op.create_index("ix_reservednumber_event_id", "reservednumber", ["event_id"])

    op.create_table(
        "fixednumberbinding",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("telegram_nickname", sa.String(length=100), nullable=False),
        sa.Column("participant_number", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_fixednumberbinding_telegram_nickname", "fixednumberbinding", ["telegram_nickname"], unique=True)
    op.create_index("ix_fixednumberbinding_participant_number", "fixednumberbinding", ["participant_number"], unique=True)

    op.create_table(
        "chat",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_chat_chat_id", "chat", ["chat_id"], unique=True)

    op.create_table(
        "eventchat",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("event.id"), nullable=False),
        sa.Column("chat_id", sa.Integer(), sa.ForeignKey("chat.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("event_id", "chat_id", name="unique_event_chat"),
    )
    op.create_index("ix_eventchat_event_id", "eventchat", ["event_id"])
    op.create_index("ix_eventchat_chat_id", "eventchat", ["chat_id"])


def downgrade() -> None:
    op.drop_table("eventchat")
    op.drop_index("ix_chat_chat_id", table_name="chat")
    op.drop_table("chat")
    op.drop_table("fixednumberbinding")
    op.drop_table("reservednumber")
    op.drop_index("unique_active_event_number", table_name="registrant")
    op.drop_table("registrant")
    op.drop_index("ix_event_share_code", table_name="event")
    op.drop_table("event")
