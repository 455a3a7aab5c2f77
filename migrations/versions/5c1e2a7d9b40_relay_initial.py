"""relay initial schema

Revision ID: 5c1e2a7d9b40
Revises:
Create Date: 2026-10-18 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e2a7d9b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create conversation, notification, marketplace and ledger tables."""
    op.create_table(
        "conversation",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("participant_a", sa.String(128), nullable=False),
        sa.Column("participant_b", sa.String(128), nullable=False),
        sa.Column("pair_key", sa.String(257), nullable=False),
        sa.Column("last_message", sa.JSON(), nullable=True),
        sa.Column("last_message_at", TS, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index(
        "uq_conversation_active_pair",
        "conversation",
        ["pair_key"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )
    op.create_index("ix_conversation_participant_a", "conversation", ["participant_a"])
    op.create_index("ix_conversation_participant_b", "conversation", ["participant_b"])

    op.create_table(
        "conversation_unread",
        sa.Column(
            "conversation_id",
            sa.String(32),
            sa.ForeignKey("conversation.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "message",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("conversation_id", sa.String(32), sa.ForeignKey("conversation.id"), nullable=False),
        sa.Column("sender_id", sa.String(128), nullable=False),
        sa.Column("receiver_id", sa.String(128), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("timestamp", TS, nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("is_edited", sa.Boolean(), nullable=False),
        sa.Column("edited_at", TS, nullable=True),
        sa.Column("reply_to", sa.String(32), nullable=True),
    )
    op.create_index(
        "ix_message_conversation_timestamp", "message", ["conversation_id", "timestamp"]
    )
    op.create_index("ix_message_unread", "message", ["conversation_id", "receiver_id", "is_read"])

    op.create_table(
        "notification",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("priority", sa.String(8), nullable=False),
    )
    op.create_index("ix_notification_user_created", "notification", ["user_id", "created_at"])
    op.create_index("ix_notification_user_unread", "notification", ["user_id", "is_read"])

    op.create_table(
        "admin_alert",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("purchase_id", sa.String(32), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_admin_alert_status_created", "admin_alert", ["status", "created_at"])

    op.create_table(
        "user_profile",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("company_logo", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("is_online", sa.Boolean(), nullable=False),
        sa.Column("verification_status", sa.String(16), nullable=False),
        sa.Column("account_status", sa.String(16), nullable=False),
    )

    op.create_table(
        "offer",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("seller_id", sa.String(128), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("previous_price", sa.Float(), nullable=True),
        sa.Column("last_price_update", TS, nullable=True),
    )

    op.create_table(
        "watchlist_entry",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("offer_id", sa.String(32), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.UniqueConstraint("user_id", "offer_id", name="uq_watchlist_user_offer"),
    )
    op.create_index("ix_watchlist_entry_offer_id", "watchlist_entry", ["offer_id"])

    op.create_table(
        "purchase",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("offer_id", sa.String(32), nullable=False),
        sa.Column("buyer_id", sa.String(128), nullable=False),
        sa.Column("seller_id", sa.String(128), nullable=False),
        sa.Column("final_amount", sa.Float(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("previous_status", sa.String(16), nullable=True),
        sa.Column("last_status_update", TS, nullable=True),
        sa.Column("purchase_date", TS, nullable=False),
        sa.Column("shipped_at", TS, nullable=True),
        sa.Column("reminder_shipped_at", TS, nullable=True),
        sa.Column("reminder_last_sent_at", TS, nullable=True),
        sa.Column("reminder_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reminder_admin_notified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_active", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_purchase_buyer_status", "purchase", ["buyer_id", "status"])
    op.create_index("ix_purchase_seller_status", "purchase", ["seller_id", "status"])

    op.create_table(
        "processed_event",
        sa.Column("namespace", sa.String(64), primary_key=True),
        sa.Column("event_id", sa.String(128), primary_key=True),
        sa.Column("recorded_at", TS, nullable=False),
    )
    op.create_index("ix_processed_event_recorded", "processed_event", ["namespace", "recorded_at"])


def downgrade() -> None:
    """Drop every relay table."""
    for table in (
        "processed_event",
        "purchase",
        "watchlist_entry",
        "offer",
        "user_profile",
        "admin_alert",
        "notification",
        "message",
        "conversation_unread",
        "conversation",
    ):
        op.drop_table(table)
