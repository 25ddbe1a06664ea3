"""Conversation-level reads and lifecycle helpers used by the HTTP layer."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from chatsync.crud import crud
from chatsync.models.models import Conversation

logger = logging.getLogger(__name__)


class ConversationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return crud.get_conversation(self.db, conversation_id)

    def ownership_check(self, conversation_id: str, owner_id: str) -> bool:
        """Return True when the live conversation exists and belongs to *owner_id*."""

        row = crud.get_conversation(self.db, conversation_id)
        return row is not None and row.owner_id == owner_id

    def soft_delete(self, conversation_id: str) -> bool:
        """Mark the conversation deleted; messages stay in place."""

        row = crud.soft_delete_conversation(self.db, conversation_id)
        if row is None:
            return False
        self.db.commit()
        logger.info("Soft-deleted conversation %s", conversation_id)
        return True


__all__ = ["ConversationRepository"]
