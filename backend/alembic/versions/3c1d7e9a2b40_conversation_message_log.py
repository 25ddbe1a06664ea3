"""Conversation message log

Revision ID: 3c1d7e9a2b40
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""

from typing import Sequence
from typing import Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1d7e9a2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create conversations, messages, tool_calls and tool_outputs."""
    op.create_table(
        "conversations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("parent_conversation_id", sa.String(length=36), sa.ForeignKey("conversations.id"), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_conversations_owner_id", "conversations", ["owner_id"])
    op.create_index("ix_conversations_parent_conversation_id", "conversations", ["parent_conversation_id"])

    op.create_table(
        "messages",
        sa.Column("server_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column(
            "conversation_id",
            sa.String(length=36),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=9), nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("conversation_id", "seq", name="uq_messages_conversation_seq"),
        sa.UniqueConstraint("conversation_id", "id", name="uq_messages_conversation_id"),
    )

    op.create_table(
        "tool_calls",
        sa.Column("server_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("call_id", sa.String(), nullable=False),
        sa.Column(
            "message_server_id",
            sa.Integer(),
            sa.ForeignKey("messages.server_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("conversation_id", sa.String(length=36), nullable=False),
        sa.Column("call_index", sa.Integer(), nullable=False),
        sa.Column("tool_name", sa.String(), nullable=False),
        sa.Column("arguments", sa.Text(), nullable=False),
        sa.Column("text_offset", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_tool_calls_call_id", "tool_calls", ["call_id"])
    op.create_index("ix_tool_calls_conversation_id", "tool_calls", ["conversation_id"])

    op.create_table(
        "tool_outputs",
        sa.Column("server_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tool_call_id", sa.String(), nullable=False),
        sa.Column(
            "message_server_id",
            sa.Integer(),
            sa.ForeignKey("messages.server_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("conversation_id", sa.String(length=36), nullable=False),
        sa.Column("output", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=7), nullable=False),
        sa.Column("executed_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_tool_outputs_tool_call_id", "tool_outputs", ["tool_call_id"])
    op.create_index("ix_tool_outputs_conversation_id", "tool_outputs", ["conversation_id"])


def downgrade() -> None:
    """Drop the message log tables."""
    op.drop_table("tool_outputs")
    op.drop_table("tool_calls")
    op.drop_table("messages")
    op.drop_table("conversations")
