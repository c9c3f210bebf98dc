"""Direct messaging schema - conversations, messages

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Users are owned by another service; participant columns hold opaque ids
with no foreign key.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Enable pgcrypto extension for gen_random_uuid()
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # conversations table
    # ==========================================================================
    op.create_table(
        "conversations",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        # "C" collation: pair ordering must be bytewise, matching the app
        sa.Column("user_a_id", sa.Text(collation="C"), nullable=False),
        sa.Column("user_b_id", sa.Text(collation="C"), nullable=False),
        sa.Column("unread_count_a", sa.Integer(), server_default="0", nullable=False),
        sa.Column("unread_count_b", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_message_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_message_preview", sa.Text(), nullable=True),
        sa.Column("next_seq", sa.Integer(), server_default="1", nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uix_conversations_pair"),
        sa.CheckConstraint("user_a_id < user_b_id", name="ck_conversations_pair_ordered"),
        sa.CheckConstraint("unread_count_a >= 0", name="ck_conversations_unread_a_nonneg"),
        sa.CheckConstraint("unread_count_b >= 0", name="ck_conversations_unread_b_nonneg"),
        sa.CheckConstraint("next_seq >= 1", name="ck_conversations_next_seq_positive"),
    )

    op.create_index("idx_conversations_user_a", "conversations", ["user_a_id"])
    op.create_index("idx_conversations_user_b", "conversations", ["user_b_id"])

    # ==========================================================================
    # messages table
    # ==========================================================================
    op.create_table(
        "messages",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("conversation_id", sa.UUID(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Text(), nullable=False),
        sa.Column("recipient_id", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["conversation_id"],
            ["conversations.id"],
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("conversation_id", "seq", name="uix_messages_conversation_seq"),
        sa.CheckConstraint("seq >= 1", name="ck_messages_seq_positive"),
        sa.CheckConstraint("sender_id <> recipient_id", name="ck_messages_distinct_parties"),
        sa.CheckConstraint("length(content) > 0", name="ck_messages_content_nonempty"),
    )

    op.create_index(
        "idx_messages_conversation_created_at",
        "messages",
        ["conversation_id", "created_at"],
    )
    # Serves the mark-read bulk update and unread counts
    op.create_index(
        "idx_messages_unread",
        "messages",
        ["conversation_id", "recipient_id", "is_read"],
    )


def downgrade() -> None:
    op.drop_index("idx_messages_unread", table_name="messages")
    op.drop_index("idx_messages_conversation_created_at", table_name="messages")
    op.drop_table("messages")

    op.drop_index("idx_conversations_user_b", table_name="conversations")
    op.drop_index("idx_conversations_user_a", table_name="conversations")
    op.drop_table("conversations")
