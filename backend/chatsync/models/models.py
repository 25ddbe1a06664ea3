import uuid

from sqlalchemy import JSON
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from chatsync.database import Base
from chatsync.models.enums import MessageRole
from chatsync.models.enums import MessageStatus
from chatsync.models.enums import ToolOutputStatus


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    # Persist the lowercase *values* ("user"), not the member names ("USER").
    return [member.value for member in enum_cls]


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class Conversation(Base):
    """A strictly ordered message log owned by one user.

    ``parent_conversation_id`` is set when the conversation was created by
    forking another one on edit.  Rows are only ever soft-deleted.
    """

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_new_uuid)
    owner_id = Column(String, nullable=False, index=True)
    parent_conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=True, index=True)
    title = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.seq",
    )


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "seq", name="uq_messages_conversation_seq"),
        UniqueConstraint("conversation_id", "id", name="uq_messages_conversation_id"),
    )

    # Store-assigned key used for joins to tool data
    server_id = Column(Integer, primary_key=True, autoincrement=True)
    # Stable identifier returned to clients, unique per conversation
    id = Column(String(64), nullable=False, default=_new_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    seq = Column(Integer, nullable=False)
    role = Column(
        SAEnum(MessageRole, native_enum=False, name="message_role_enum", values_callable=_enum_values),
        nullable=False,
    )
    status = Column(
        SAEnum(MessageStatus, native_enum=False, name="message_status_enum", values_callable=_enum_values),
        nullable=False,
        default=MessageStatus.FINAL.value,
    )
    # Plain-text projection; mixed content keeps its parts in content_json
    content = Column(Text, nullable=False, default="")
    content_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    conversation = relationship("Conversation", back_populates="messages")
    tool_calls = relationship(
        "ToolCall",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="ToolCall.call_index",
    )
    tool_outputs = relationship(
        "ToolOutput",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="ToolOutput.server_id",
    )


# ---------------------------------------------------------------------------
# Tool metadata – child rows of assistant / tool messages
# ---------------------------------------------------------------------------


class ToolCall(Base):
    __tablename__ = "tool_calls"

    server_id = Column(Integer, primary_key=True, autoincrement=True)
    call_id = Column(String, nullable=False, index=True)  # e.g. "call_abc123"
    message_server_id = Column(Integer, ForeignKey("messages.server_id", ondelete="CASCADE"), nullable=False)
    conversation_id = Column(String(36), nullable=False, index=True)
    call_index = Column(Integer, nullable=False, default=0)
    tool_name = Column(String, nullable=False)
    arguments = Column(Text, nullable=False, default="{}")  # JSON text as emitted by the provider
    text_offset = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    message = relationship("Message", back_populates="tool_calls")


class ToolOutput(Base):
    __tablename__ = "tool_outputs"

    server_id = Column(Integer, primary_key=True, autoincrement=True)
    tool_call_id = Column(String, nullable=False, index=True)
    message_server_id = Column(Integer, ForeignKey("messages.server_id", ondelete="CASCADE"), nullable=False)
    conversation_id = Column(String(36), nullable=False, index=True)
    output = Column(Text, nullable=False, default="")
    status = Column(
        SAEnum(ToolOutputStatus, native_enum=False, name="tool_output_status_enum", values_callable=_enum_values),
        nullable=False,
        default=ToolOutputStatus.SUCCESS.value,
    )
    executed_at = Column(DateTime, server_default=func.now())

    message = relationship("Message", back_populates="tool_outputs")
