"""Create anonymous chat tables

Revision ID: 7c2e9a41b0d3
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c2e9a41b0d3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create profiles, chats, the message ledger, and read bookmarks."""
    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "anonymous_chats",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user1_id", sa.String(64), nullable=False),
        sa.Column("user2_id", sa.String(64), nullable=False),
        sa.Column("pair_low", sa.String(64), nullable=False),
        sa.Column("pair_high", sa.String(64), nullable=False),
        sa.Column("user1_anonymous_name", sa.String(64), nullable=False),
        sa.Column("user2_anonymous_name", sa.String(64), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, server_default="anonymous"),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reveal_requested_by", sa.String(64), nullable=True),
        sa.Column("reveal_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revealed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("pair_low", "pair_high", name="uq_anonymous_chats_pair"),
        sa.CheckConstraint("user1_id <> user2_id", name="ck_anonymous_chats_distinct_users"),
        sa.CheckConstraint(
            "state IN ('anonymous', 'reveal_pending', 'normal')",
            name="ck_anonymous_chats_state",
        ),
        sa.CheckConstraint(
            "reveal_requested_by IS NULL OR reveal_requested_by IN (user1_id, user2_id)",
            name="ck_anonymous_chats_requester_is_participant",
        ),
    )
    op.create_index("ix_anonymous_chats_user1", "anonymous_chats", ["user1_id", "updated_at"])
    op.create_index("ix_anonymous_chats_user2", "anonymous_chats", ["user2_id", "updated_at"])

    op.create_table(
        "anonymous_chat_messages",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column(
            "chat_id",
            sa.String(36),
            sa.ForeignKey("anonymous_chats.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "message_type IN ('text', 'system', 'reveal_request', "
            "'reveal_accepted', 'reveal_declined')",
            name="ck_anonymous_chat_messages_type",
        ),
    )
    op.create_index(
        "ix_anonymous_chat_messages_chat_created",
        "anonymous_chat_messages",
        ["chat_id", "created_at", "id"],
    )

    op.create_table(
        "chat_read_states",
        sa.Column(
            "chat_id",
            sa.String(36),
            sa.ForeignKey("anonymous_chats.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("last_read_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    """Drop the anonymous chat tables."""
    op.drop_table("chat_read_states")
    op.drop_index("ix_anonymous_chat_messages_chat_created", table_name="anonymous_chat_messages")
    op.drop_table("anonymous_chat_messages")
    op.drop_index("ix_anonymous_chats_user2", table_name="anonymous_chats")
    op.drop_index("ix_anonymous_chats_user1", table_name="anonymous_chats")
    op.drop_table("anonymous_chats")
    op.drop_table("user_profiles")
