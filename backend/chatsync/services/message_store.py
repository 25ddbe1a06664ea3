"""Durable, strictly ordered per-conversation message log.

:class:`MessageStore` wraps one SQLAlchemy session and exposes the only
write paths into the ``messages`` / ``tool_calls`` / ``tool_outputs``
tables.  Callers group a whole sync operation into a single
:meth:`MessageStore.run_in_transaction` call; every method returns detached
:class:`~chatsync.schemas.schemas.StoredMessage` snapshots rather than ORM
rows so nothing leaks past the transaction boundary.
"""

import logging
import uuid
from typing import Callable
from typing import List
from typing import Optional
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatsync.config import get_settings
from chatsync.crud import crud
from chatsync.errors import ConstraintViolation
from chatsync.errors import ConversationNotFound
from chatsync.errors import NotFound
from chatsync.errors import StoreError
from chatsync.models.enums import MessageStatus
from chatsync.models.models import Conversation
from chatsync.models.models import Message
from chatsync.schemas.schemas import IncomingMessage
from chatsync.schemas.schemas import MessagePage
from chatsync.schemas.schemas import StoredMessage
from chatsync.services.message_diff import MessageUpdate
from chatsync.services.message_diff import ToolArtifactChanges
from chatsync.utils.time import utc_now_naive

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAGE_LIMIT_DEFAULT = 50
PAGE_LIMIT_MAX = 200


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


class MessageStore:
    """Message persistence bound to one session."""

    def __init__(self, db: Session, *, timeout_seconds: Optional[float] = None):
        self.db = db
        self.timeout_seconds = timeout_seconds or get_settings().store_timeout_seconds
        self._in_transaction = False

    # ---------------------------- Transactions ---------------------------

    def run_in_transaction(self, fn: Callable[[], T]) -> T:
        """Run *fn* as one atomic unit of work.

        Commits when *fn* returns and rolls back every write when it raises.
        Driver errors surface as :class:`StoreError`
        (:class:`ConstraintViolation` for uniqueness failures); any other
        exception is re-raised unchanged after the rollback.  A call made
        from inside *fn* joins the outer unit instead of committing early.
        """

        if self._in_transaction:
            return fn()

        self._in_transaction = True
        try:
            self._apply_statement_timeout()
            result = fn()
            self.db.commit()
            return result
        except IntegrityError as exc:
            self.db.rollback()
            raise ConstraintViolation("Write violates a message uniqueness constraint", exc) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Message store transaction failed: %s", exc)
            raise StoreError("Message store operation failed", exc) from exc
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._in_transaction = False

    def _apply_statement_timeout(self) -> None:
        # SQLite relies on the busy timeout configured in make_engine().
        if self.db.get_bind().dialect.name != "postgresql":
            return
        timeout_ms = int(self.timeout_seconds * 1000)
        self.db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    # ---------------------------- Conversations --------------------------

    def create_conversation(
        self,
        owner_id: str,
        *,
        parent_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Conversation:
        return crud.create_conversation(self.db, owner_id, parent_conversation_id=parent_id, title=title)

    def lock_conversation(self, conversation_id: str) -> Conversation:
        row = crud.lock_conversation(self.db, conversation_id)
        if row is None:
            raise ConversationNotFound(conversation_id)
        return row

    def count_conversations(self, owner_id: str) -> int:
        return crud.count_conversations(self.db, owner_id)

    # ---------------------------- Reads ----------------------------------

    def list_all(self, conversation_id: str) -> List[StoredMessage]:
        return [StoredMessage.from_row(row) for row in crud.get_messages(self.db, conversation_id)]

    def get(self, conversation_id: str, message_id: str) -> Optional[StoredMessage]:
        row = crud.get_message(self.db, conversation_id, message_id)
        return StoredMessage.from_row(row) if row is not None else None

    def get_last(self, conversation_id: str) -> Optional[StoredMessage]:
        row = crud.get_last_message(self.db, conversation_id)
        return StoredMessage.from_row(row) if row is not None else None

    def max_seq(self, conversation_id: str) -> int:
        return crud.get_max_seq(self.db, conversation_id)

    def count(self, conversation_id: str) -> int:
        return crud.count_messages(self.db, conversation_id)

    def list_page(self, conversation_id: str, *, after_seq: int = 0, limit: int = PAGE_LIMIT_DEFAULT) -> MessagePage:
        """Return up to *limit* messages with ``seq > after_seq``.

        *limit* is clamped to ``1..200``.  ``next_after_seq`` is the cursor
        for the following page, ``None`` on the last one.
        """

        limit = min(max(int(limit or PAGE_LIMIT_DEFAULT), 1), PAGE_LIMIT_MAX)
        rows = crud.get_messages(self.db, conversation_id, after_seq=max(after_seq, 0), limit=limit + 1)
        has_more = len(rows) > limit
        rows = rows[:limit]
        return MessagePage(
            messages=[StoredMessage.from_row(row) for row in rows],
            next_after_seq=rows[-1].seq if has_more else None,
            has_more=has_more,
        )

    # ---------------------------- Writes ---------------------------------

    def insert(self, conversation_id: str, message: IncomingMessage, *, created_at=None) -> StoredMessage:
        """Append *message* at ``max(seq) + 1`` and persist its tool metadata."""

        message_id = message.id or str(uuid.uuid4())
        if crud.get_message(self.db, conversation_id, message_id) is not None:
            raise ConstraintViolation(f"Message id {message_id} already exists in conversation {conversation_id}")

        body = message.body()
        row = crud.create_message(
            self.db,
            conversation_id,
            message_id=message_id,
            seq=crud.get_max_seq(self.db, conversation_id) + 1,
            role=message.role,
            status=message.status or MessageStatus.FINAL,
            content=body.plain_text(),
            content_json=body.parts_json(),
            created_at=created_at,
        )
        self._add_tool_calls(row, message.tool_calls or [])
        self._add_tool_outputs(row, message.tool_outputs or [])
        return StoredMessage.from_row(row)

    def update(self, conversation_id: str, message_id: str, fields: MessageUpdate) -> StoredMessage:
        """Apply *fields* in place.  ``seq`` and ``id`` never change."""

        row = crud.get_message(self.db, conversation_id, message_id)
        if row is None:
            raise NotFound(f"Message {message_id} not found in conversation {conversation_id}")

        if fields.content is not None:
            row.content = fields.content.plain_text()
            row.content_json = fields.content.parts_json()
        if fields.status is not None:
            row.status = fields.status
        if fields.tool_changes is not None:
            self._apply_tool_changes(row, fields.tool_changes)
        row.updated_at = utc_now_naive()
        self.db.flush()
        return StoredMessage.from_row(row)

    def delete_after(self, conversation_id: str, seq: int) -> List[StoredMessage]:
        """Delete every message with a larger seq; return them as snapshots."""

        rows = crud.get_messages(self.db, conversation_id, after_seq=seq)
        snapshots = [StoredMessage.from_row(row) for row in rows]
        crud.delete_messages(self.db, rows)
        return snapshots

    def clear(self, conversation_id: str) -> List[StoredMessage]:
        return self.delete_after(conversation_id, 0)

    # ---------------------------- Tool metadata --------------------------

    def _add_tool_calls(self, row: Message, calls) -> None:
        for i, call in enumerate(calls):
            crud.add_tool_call(
                self.db,
                row,
                call_id=call.id or _new_call_id(),
                call_index=call.index if call.index is not None else i,
                tool_name=call.function.name,
                arguments=call.function.arguments,
                text_offset=call.text_offset,
            )

    def _add_tool_outputs(self, row: Message, outputs) -> None:
        for output in outputs:
            crud.add_tool_output(
                self.db,
                row,
                tool_call_id=output.tool_call_id,
                output=output.output,
                status=output.status,
            )

    def _apply_tool_changes(self, row: Message, changes: ToolArtifactChanges) -> None:
        if changes.replace_all:
            crud.clear_tool_metadata(self.db, row)
            self._add_tool_calls(row, changes.tool_calls or [])
            self._add_tool_outputs(row, changes.tool_outputs or [])
            return

        calls_by_index = {call.call_index: call for call in row.tool_calls}
        for change in changes.calls_to_update:
            call_row = calls_by_index[change.stored_index]
            payload = change.payload
            if payload.id:
                call_row.call_id = payload.id
            call_row.call_index = payload.index
            call_row.tool_name = payload.function.name
            call_row.arguments = payload.function.arguments
            call_row.text_offset = payload.text_offset

        outputs_by_call = {output.tool_call_id: output for output in row.tool_outputs}
        for payload in changes.outputs_to_update:
            output_row = outputs_by_call[payload.tool_call_id]
            output_row.output = payload.output
            output_row.status = payload.status
        for tool_call_id in changes.outputs_to_delete:
            row.tool_outputs.remove(outputs_by_call[tool_call_id])
        self._add_tool_outputs(row, changes.outputs_to_insert)


__all__ = ["MessageStore", "PAGE_LIMIT_DEFAULT", "PAGE_LIMIT_MAX"]
