"""
Router for conversation message synchronization.

Intent endpoints (append / edit) and the legacy full-list sync all funnel
into :class:`~chatsync.services.sync_orchestrator.SyncOrchestrator`.  Each
route confirms ownership first so the engine never sees a foreign
conversation.
"""

import logging
from typing import Any
from typing import Dict

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Query
from fastapi import Response
from fastapi import status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from chatsync.database import get_db
from chatsync.dependencies.auth import get_current_owner
from chatsync.dependencies.providers import ReplyProvider
from chatsync.dependencies.providers import get_reply_provider
from chatsync.errors import ConversationNotFound
from chatsync.schemas.schemas import AppendMessageIntent
from chatsync.schemas.schemas import ConversationOut
from chatsync.schemas.schemas import EditMessageIntent
from chatsync.schemas.schemas import LegacySyncRequest
from chatsync.schemas.schemas import MessagePage
from chatsync.schemas.schemas import SyncResponse
from chatsync.services.conversation_repository import ConversationRepository
from chatsync.services.message_store import PAGE_LIMIT_DEFAULT
from chatsync.services.message_store import MessageStore
from chatsync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["conversations"],
)


def _require_owned(db: Session, conversation_id: str, owner_id: str, client_operation=None) -> None:
    if not ConversationRepository(db).ownership_check(conversation_id, owner_id):
        raise ConversationNotFound(conversation_id, client_operation=client_operation)


# ---------------------------------------------------------------------------
# Intent endpoints
# ---------------------------------------------------------------------------


@router.post("/messages", response_model=SyncResponse)
def append_messages(
    intent: AppendMessageIntent,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner),
    reply_provider: ReplyProvider = Depends(get_reply_provider),
):
    """Append user message(s) and the provider's reply after a known anchor."""

    if intent.conversation_id:
        _require_owned(db, intent.conversation_id, owner_id, intent.client_operation)

    replies = reply_provider(intent)
    result = SyncOrchestrator(db).append(intent, owner_id=owner_id, replies=replies)
    return SyncResponse(**result.model_dump())


@router.put("/{conversation_id}/messages/{message_id}/edit", response_model=SyncResponse)
def edit_message(
    conversation_id: str,
    message_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner),
):
    """Edit a user message; everything after it moves to a forked conversation."""

    try:
        intent = EditMessageIntent.model_validate({**payload, "message_id": message_id})
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc

    _require_owned(db, conversation_id, owner_id, intent.client_operation)

    result = SyncOrchestrator(db).edit(intent, conversation_id=conversation_id)
    return SyncResponse(**result.model_dump())


# ---------------------------------------------------------------------------
# Legacy full-list sync
# ---------------------------------------------------------------------------


@router.put("/{conversation_id}/sync", response_model=SyncResponse)
def sync_messages(
    conversation_id: str,
    request: LegacySyncRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner),
):
    """Reconcile the stored log with the client's full message list."""

    _require_owned(db, conversation_id, owner_id)

    result = SyncOrchestrator(db).legacy_sync(conversation_id, request.messages)
    return SyncResponse(**result.model_dump())


# ---------------------------------------------------------------------------
# Reads & lifecycle
# ---------------------------------------------------------------------------


@router.get("/{conversation_id}/messages", response_model=MessagePage)
def read_messages(
    conversation_id: str,
    after_seq: int = Query(0, ge=0),
    limit: int = Query(PAGE_LIMIT_DEFAULT),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner),
):
    """Page through messages in seq order; ``limit`` is clamped to 1..200."""

    _require_owned(db, conversation_id, owner_id)
    return MessageStore(db).list_page(conversation_id, after_seq=after_seq, limit=limit)


@router.get("/{conversation_id}", response_model=ConversationOut)
def read_conversation(
    conversation_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner),
):
    _require_owned(db, conversation_id, owner_id)
    return ConversationRepository(db).get(conversation_id)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_conversation(
    conversation_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner),
):
    """Soft-delete the conversation."""

    _require_owned(db, conversation_id, owner_id)
    ConversationRepository(db).soft_delete(conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
