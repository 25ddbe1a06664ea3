"""Fork-on-edit: move a truncated tail into a child conversation."""

from typing import Sequence

from chatsync.models.models import Conversation
from chatsync.schemas.schemas import StoredMessage
from chatsync.services.message_store import MessageStore
from chatsync.utils.log import get_logger


class ConversationForker:
    def __init__(self, store: MessageStore):
        self.store = store

    def fork(self, original: Conversation, tail: Sequence[StoredMessage]) -> str:
        """Create a child of *original* holding *tail*; return its id.

        The child has the same owner and title and ``parent_conversation_id``
        pointing at *original*.  Tail messages keep their ids, roles, content,
        status, tool metadata and ``created_at`` and are re-sequenced from 1.
        The child is created even for an empty tail.  Must run inside the
        caller's transaction.
        """

        child = self.store.create_conversation(original.owner_id, parent_id=original.id, title=original.title)
        for message in sorted(tail, key=lambda m: m.seq):
            self.store.insert(child.id, message.to_incoming(), created_at=message.created_at)

        logger = get_logger(conversation_id=original.id)
        logger.info("conversation-forked", fork_conversation_id=child.id, moved=len(tail))
        return child.id


__all__ = ["ConversationForker"]
