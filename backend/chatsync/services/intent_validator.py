"""Validation of explicit Append / Edit intents against stored state.

The validator locks the conversation row and otherwise only reads.  It runs
inside the orchestrator's transaction, so the state it checks is the state
the subsequent writes will see.  Failures raise the matching
:class:`~chatsync.errors.SyncError` subclass carrying the intent's
``client_operation``.
"""

from dataclasses import dataclass
from typing import Optional

from chatsync.config import get_settings
from chatsync.errors import ConversationMismatch
from chatsync.errors import ConversationNotFound
from chatsync.errors import EditNotAllowed
from chatsync.errors import LimitExceeded
from chatsync.errors import MessageNotFound
from chatsync.errors import MissingRequiredField
from chatsync.errors import NotLastMessage
from chatsync.errors import SeqMismatch
from chatsync.models.enums import MessageRole
from chatsync.models.models import Conversation
from chatsync.schemas.schemas import AppendMessageIntent
from chatsync.schemas.schemas import EditMessageIntent
from chatsync.schemas.schemas import StoredMessage
from chatsync.services.message_store import MessageStore
from chatsync.utils.log import log


@dataclass
class AppendCheck:
    """Outcome of a successful append validation for an existing conversation."""

    conversation: Conversation
    anchor: StoredMessage
    truncate: bool


@dataclass
class EditCheck:
    conversation: Conversation
    message: StoredMessage


class IntentValidator:
    """Checks intents against the store; raises on the first violated rule."""

    def __init__(self, store: MessageStore, settings=None):
        self.store = store
        self.settings = settings or get_settings()

    # ---------------------------- Limits ---------------------------------

    def check_conversation_limit(self, owner_id: str, *, client_operation: Optional[str] = None) -> None:
        current = self.store.count_conversations(owner_id)
        maximum = self.settings.max_conversations_per_owner
        if current >= maximum:
            raise LimitExceeded(
                "conversation_limit_exceeded",
                "Max conversations per owner reached",
                current=current,
                maximum=maximum,
                client_operation=client_operation,
            )

    def check_message_limit(
        self,
        conversation_id: str,
        *,
        adding: int = 1,
        client_operation: Optional[str] = None,
    ) -> None:
        """Raise when storing *adding* more messages would exceed the cap."""

        current = self.store.count(conversation_id)
        maximum = self.settings.max_messages_per_conversation
        if current + adding > maximum:
            raise LimitExceeded(
                "message_limit_exceeded",
                "Max messages per conversation reached",
                current=current,
                maximum=maximum,
                client_operation=client_operation,
            )

    # ---------------------------- Append ---------------------------------

    def validate_append(self, intent: AppendMessageIntent, *, owner_id: str) -> Optional[AppendCheck]:
        """Validate an append intent.

        Returns ``None`` when the intent starts a new conversation, otherwise
        the locked conversation and the anchor message.  The message limit
        is checked by the caller once any truncation has been applied.
        """

        op = intent.client_operation
        log.info(
            "append-intent",
            owner_id=owner_id,
            conversation_id=intent.conversation_id,
            client_operation=op,
            after_seq=intent.after_seq,
            truncate_after=intent.truncate_after,
        )

        if not intent.messages:
            raise MissingRequiredField("messages", "At least one message is required", client_operation=op)

        if not intent.conversation_id:
            self.check_conversation_limit(owner_id, client_operation=op)
            return None

        try:
            conversation = self.store.lock_conversation(intent.conversation_id)
        except ConversationNotFound:
            raise ConversationNotFound(intent.conversation_id, client_operation=op) from None
        if conversation.owner_id != owner_id:
            raise ConversationNotFound(intent.conversation_id, client_operation=op)

        if not intent.after_message_id or intent.after_seq is None:
            raise MissingRequiredField(
                "after_message_id, after_seq",
                "When conversation_id is provided, both after_message_id and after_seq are required",
                client_operation=op,
            )

        anchor = self.store.get(intent.conversation_id, intent.after_message_id)
        if anchor is None:
            raise MessageNotFound(intent.after_message_id, field="after_message_id", client_operation=op)

        if anchor.seq != intent.after_seq:
            raise SeqMismatch(
                expected_seq=intent.after_seq,
                actual_seq=anchor.seq,
                field="after_seq",
                client_operation=op,
            )

        if not intent.truncate_after:
            last = self.store.get_last(intent.conversation_id)
            if last is not None and last.id != anchor.id:
                raise NotLastMessage(after_message_id=anchor.id, last_message_id=last.id, client_operation=op)

        return AppendCheck(conversation=conversation, anchor=anchor, truncate=intent.truncate_after)

    # ---------------------------- Edit -----------------------------------

    def validate_edit(self, intent: EditMessageIntent, *, conversation_id: str) -> EditCheck:
        """Validate an edit intent; return the locked conversation and the message."""

        op = intent.client_operation
        log.info(
            "edit-intent",
            conversation_id=conversation_id,
            message_id=intent.message_id,
            client_operation=op,
            expected_seq=intent.expected_seq,
        )

        if intent.conversation_id and intent.conversation_id != conversation_id:
            raise ConversationMismatch(expected=conversation_id, actual=intent.conversation_id, client_operation=op)

        try:
            conversation = self.store.lock_conversation(conversation_id)
        except ConversationNotFound:
            raise ConversationNotFound(conversation_id, client_operation=op) from None

        message = self.store.get(conversation_id, intent.message_id)
        if message is None:
            raise MessageNotFound(intent.message_id, client_operation=op)

        if message.role != MessageRole.USER:
            raise EditNotAllowed(role=getattr(message.role, "value", message.role), client_operation=op)

        if message.seq != intent.expected_seq:
            raise SeqMismatch(
                expected_seq=intent.expected_seq,
                actual_seq=message.seq,
                field="expected_seq",
                client_operation=op,
            )

        return EditCheck(conversation=conversation, message=message)


__all__ = ["AppendCheck", "EditCheck", "IntentValidator"]
