# Row-level helpers for conversations, messages and tool metadata.
#
# None of the helpers commit: every mutation runs inside the unit of work
# opened by ``MessageStore.run_in_transaction``.  Helpers flush where later
# statements in the same transaction depend on the write (assigned primary
# keys, freed ``(conversation_id, seq)`` slots).
#
# NOTE: Return annotations use ``Optional[Model]`` rather than ``Model | None``
# because the declarative class proxy overrides ``|``.

from datetime import datetime
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm import selectinload

from chatsync.models.enums import MessageRole
from chatsync.models.enums import MessageStatus
from chatsync.models.enums import ToolOutputStatus
from chatsync.models.models import Conversation
from chatsync.models.models import Message
from chatsync.models.models import ToolCall
from chatsync.models.models import ToolOutput
from chatsync.utils.time import utc_now_naive

# ------------------------------------------------------------
# Conversation CRUD operations
# ------------------------------------------------------------


def get_conversation(db: Session, conversation_id: str, *, include_deleted: bool = False) -> Optional[Conversation]:
    query = db.query(Conversation).filter(Conversation.id == conversation_id)
    if not include_deleted:
        query = query.filter(Conversation.deleted_at.is_(None))
    return query.first()


def lock_conversation(db: Session, conversation_id: str) -> Optional[Conversation]:
    """Take the per-conversation write lock and return the row.

    ``SELECT ... FOR UPDATE`` serializes writers on PostgreSQL.  SQLite
    ignores the clause, so ``updated_at`` is touched as well: the UPDATE
    acquires SQLite's database write lock for the rest of the transaction.
    """

    row = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.deleted_at.is_(None))
        .with_for_update()
        .first()
    )
    if row is None:
        return None
    row.updated_at = utc_now_naive()
    db.flush([row])
    return row


def create_conversation(
    db: Session,
    owner_id: str,
    *,
    parent_conversation_id: Optional[str] = None,
    title: Optional[str] = None,
) -> Conversation:
    row = Conversation(owner_id=owner_id, parent_conversation_id=parent_conversation_id, title=title)
    db.add(row)
    db.flush([row])
    return row


def count_conversations(db: Session, owner_id: str) -> int:
    return (
        db.query(func.count(Conversation.id))
        .filter(Conversation.owner_id == owner_id, Conversation.deleted_at.is_(None))
        .scalar()
    )


def soft_delete_conversation(db: Session, conversation_id: str) -> Optional[Conversation]:
    row = get_conversation(db, conversation_id)
    if row is None:
        return None
    row.deleted_at = utc_now_naive()
    db.flush([row])
    return row


# ------------------------------------------------------------
# Message CRUD operations
# ------------------------------------------------------------


def _message_query(db: Session, conversation_id: str):
    return (
        db.query(Message)
        .options(selectinload(Message.tool_calls), selectinload(Message.tool_outputs))
        .filter(Message.conversation_id == conversation_id)
    )


def get_message(db: Session, conversation_id: str, message_id: str) -> Optional[Message]:
    return _message_query(db, conversation_id).filter(Message.id == message_id).first()


def get_last_message(db: Session, conversation_id: str) -> Optional[Message]:
    return _message_query(db, conversation_id).order_by(Message.seq.desc()).first()


def get_max_seq(db: Session, conversation_id: str) -> int:
    """Return the highest seq in the conversation, 0 when it is empty."""

    value = db.query(func.max(Message.seq)).filter(Message.conversation_id == conversation_id).scalar()
    return value or 0


def count_messages(db: Session, conversation_id: str) -> int:
    return db.query(func.count(Message.server_id)).filter(Message.conversation_id == conversation_id).scalar()


def get_messages(
    db: Session,
    conversation_id: str,
    *,
    after_seq: int = 0,
    limit: Optional[int] = None,
) -> List[Message]:
    query = _message_query(db, conversation_id).filter(Message.seq > after_seq).order_by(Message.seq.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def create_message(
    db: Session,
    conversation_id: str,
    *,
    message_id: str,
    seq: int,
    role: MessageRole,
    content: str,
    content_json: Optional[List[Dict[str, Any]]] = None,
    status: MessageStatus = MessageStatus.FINAL,
    created_at: Optional[datetime] = None,
) -> Message:
    row = Message(
        id=message_id,
        conversation_id=conversation_id,
        seq=seq,
        role=role,
        status=status,
        content=content,
        content_json=content_json,
    )
    if created_at is not None:
        row.created_at = created_at
    db.add(row)
    db.flush([row])
    return row


def delete_messages(db: Session, rows: List[Message]) -> None:
    """Delete *rows* through the ORM so tool calls / outputs cascade.

    The flush frees their ``(conversation_id, seq)`` slots for inserts later
    in the same transaction.
    """

    for row in rows:
        db.delete(row)
    if rows:
        db.flush()


# ------------------------------------------------------------
# Tool metadata CRUD operations
# ------------------------------------------------------------


def add_tool_call(
    db: Session,
    message: Message,
    *,
    call_id: str,
    call_index: int,
    tool_name: str,
    arguments: str,
    text_offset: Optional[int] = None,
) -> ToolCall:
    row = ToolCall(
        call_id=call_id,
        conversation_id=message.conversation_id,
        call_index=call_index,
        tool_name=tool_name,
        arguments=arguments,
        text_offset=text_offset,
    )
    message.tool_calls.append(row)
    db.flush()
    return row


def add_tool_output(
    db: Session,
    message: Message,
    *,
    tool_call_id: str,
    output: str,
    status: ToolOutputStatus = ToolOutputStatus.SUCCESS,
) -> ToolOutput:
    row = ToolOutput(
        tool_call_id=tool_call_id,
        conversation_id=message.conversation_id,
        output=output,
        status=status,
    )
    message.tool_outputs.append(row)
    db.flush()
    return row


def clear_tool_metadata(db: Session, message: Message) -> None:
    """Remove every tool call and output attached to *message*."""

    message.tool_calls.clear()
    message.tool_outputs.clear()
    db.flush()
