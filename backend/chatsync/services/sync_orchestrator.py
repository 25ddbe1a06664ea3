"""Single entry point for every conversation mutation.

``SyncOrchestrator`` decides between the two paths a request can take and
owns the transaction boundary for both:

* **intent path** - an explicit Append or Edit envelope is validated by
  :class:`IntentValidator` and applied.  Validation failures are terminal:
  no retry, no fallback.
* **legacy path** - a raw message list is aligned against the stored log,
  classified into a change-set and applied.  When alignment is uncertain the
  conversation is cleared and rewritten from the incoming list instead.

Each public method runs exactly one :meth:`MessageStore.run_in_transaction`
so validation reads and writes are atomic per conversation.
"""

from typing import List
from typing import Optional
from typing import Sequence
from typing import Union

from sqlalchemy.orm import Session

from chatsync.errors import MissingRequiredField
from chatsync.schemas.content import to_content
from chatsync.schemas.schemas import AppendMessageIntent
from chatsync.schemas.schemas import EditMessageIntent
from chatsync.schemas.schemas import IncomingMessage
from chatsync.schemas.schemas import OperationRecord
from chatsync.schemas.schemas import Operations
from chatsync.schemas.schemas import StoredMessage
from chatsync.schemas.schemas import SyncResult
from chatsync.services.alignment import AlignmentPolicy
from chatsync.services.alignment import align
from chatsync.services.conversation_forker import ConversationForker
from chatsync.services.intent_validator import IntentValidator
from chatsync.services.message_diff import MessageDiff
from chatsync.services.message_diff import MessageUpdate
from chatsync.services.message_diff import classify
from chatsync.services.message_store import MessageStore
from chatsync.utils.log import log

# ---------------------------------------------------------------------------
# Change-set bookkeeping
# ---------------------------------------------------------------------------


class OperationsTracker:
    """Collects ``{id, seq, role}`` records for the result envelope."""

    def __init__(self):
        self.inserted: List[OperationRecord] = []
        self.updated: List[OperationRecord] = []
        self.deleted: List[OperationRecord] = []

    @staticmethod
    def _record(message: StoredMessage) -> OperationRecord:
        return OperationRecord(id=message.id, seq=message.seq, role=message.role)

    def add_inserted(self, message: StoredMessage) -> None:
        self.inserted.append(self._record(message))

    def add_updated(self, message: StoredMessage) -> None:
        self.updated.append(self._record(message))

    def add_deleted(self, messages: Sequence[StoredMessage]) -> None:
        self.deleted.extend(self._record(message) for message in messages)

    def operations(self) -> Operations:
        return Operations(inserted=self.inserted, updated=self.updated, deleted=self.deleted)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SyncOrchestrator:
    def __init__(
        self,
        db: Session,
        *,
        store: Optional[MessageStore] = None,
        policy: Optional[AlignmentPolicy] = None,
        settings=None,
    ):
        self.store = store or MessageStore(db)
        self.policy = policy
        self.validator = IntentValidator(self.store, settings=settings)
        self.forker = ConversationForker(self.store)

    # ---------------------------- Intent path ----------------------------

    def dispatch(
        self,
        intent: Union[AppendMessageIntent, EditMessageIntent],
        *,
        owner_id: str,
        conversation_id: Optional[str] = None,
        replies: Sequence[IncomingMessage] = (),
    ) -> SyncResult:
        """Route an intent envelope to :meth:`append` or :meth:`edit`."""

        if isinstance(intent, EditMessageIntent):
            target = conversation_id or intent.conversation_id
            if not target:
                raise MissingRequiredField("conversation_id", client_operation=intent.client_operation)
            return self.edit(intent, conversation_id=target)
        return self.append(intent, owner_id=owner_id, replies=replies)

    def append(
        self,
        intent: AppendMessageIntent,
        *,
        owner_id: str,
        replies: Sequence[IncomingMessage] = (),
    ) -> SyncResult:
        """Append the intent's user messages followed by *replies*.

        *replies* are the server-generated messages (assistant / tool) that
        the provider adapter produced for this turn.
        """

        def _apply() -> SyncResult:
            ops = OperationsTracker()
            check = self.validator.validate_append(intent, owner_id=owner_id)

            if check is None:
                conversation_id = self.store.create_conversation(owner_id).id
            else:
                conversation_id = check.conversation.id
                if check.truncate:
                    ops.add_deleted(self.store.delete_after(conversation_id, check.anchor.seq))

            batch = list(intent.messages) + list(replies)
            self.validator.check_message_limit(
                conversation_id, adding=len(batch), client_operation=intent.client_operation
            )

            for message in batch:
                ops.add_inserted(self.store.insert(conversation_id, message))

            return SyncResult(
                conversation_id=conversation_id,
                client_operation=intent.client_operation,
                operations=ops.operations(),
            )

        result = self.store.run_in_transaction(_apply)
        self._log_result("append", result)
        return result

    def edit(self, intent: EditMessageIntent, *, conversation_id: str) -> SyncResult:
        """Edit a user message in place and fork everything after it."""

        def _apply() -> SyncResult:
            ops = OperationsTracker()
            check = self.validator.validate_edit(intent, conversation_id=conversation_id)

            edit = MessageUpdate(content=to_content(intent.content))
            ops.add_updated(self.store.update(conversation_id, check.message.id, edit))

            tail = self.store.delete_after(conversation_id, intent.expected_seq)
            ops.add_deleted(tail)

            fork_id = self.forker.fork(check.conversation, tail)

            return SyncResult(
                conversation_id=conversation_id,
                client_operation=intent.client_operation,
                operations=ops.operations(),
                fork_conversation_id=fork_id,
            )

        result = self.store.run_in_transaction(_apply)
        self._log_result("edit", result)
        return result

    # ---------------------------- Legacy path ----------------------------

    def legacy_sync(self, conversation_id: str, incoming: Sequence[IncomingMessage]) -> SyncResult:
        """Reconcile the stored log with a raw client message list.

        An empty incoming list is rejected rather than treated as "clear the
        conversation".
        """

        if not incoming:
            raise MissingRequiredField("messages", "At least one message is required")

        def _apply() -> SyncResult:
            self.store.lock_conversation(conversation_id)
            existing = self.store.list_all(conversation_id)

            diff = self._plan(conversation_id, existing, incoming)
            if diff is None:
                return self._rewrite(conversation_id, incoming)
            return self._apply_diff(conversation_id, diff)

        return self.store.run_in_transaction(_apply)

    def _plan(
        self,
        conversation_id: str,
        existing: Sequence[StoredMessage],
        incoming: Sequence[IncomingMessage],
    ) -> Optional[MessageDiff]:
        """Return the change-set, or ``None`` when the log must be rewritten."""

        try:
            alignment = align(existing, incoming, self.policy)
            if alignment.fallback:
                log.warning(
                    "message-sync-fallback",
                    conversation_id=conversation_id,
                    reason=alignment.reason,
                    existing=len(existing),
                    incoming=len(incoming),
                )
                return None
            return classify(existing, incoming, alignment)
        except Exception as exc:  # noqa: BLE001 – diffing is pure; rewrite instead of failing the sync
            log.error("message-sync-diff-error", conversation_id=conversation_id, error=str(exc))
            return None

    def _apply_diff(self, conversation_id: str, diff: MessageDiff) -> SyncResult:
        ops = OperationsTracker()

        for planned in diff.to_update:
            ops.add_updated(self.store.update(conversation_id, planned.existing.id, planned.update))

        if diff.to_delete:
            first_seq = min(message.seq for message in diff.to_delete)
            ops.add_deleted(self.store.delete_after(conversation_id, first_seq - 1))

        for message in diff.to_insert:
            ops.add_inserted(self.store.insert(conversation_id, message))

        log.info("message-sync", conversation_id=conversation_id, strategy="diff", **diff.stats())
        return SyncResult(conversation_id=conversation_id, operations=ops.operations())

    def _rewrite(self, conversation_id: str, incoming: Sequence[IncomingMessage]) -> SyncResult:
        ops = OperationsTracker()
        ops.add_deleted(self.store.clear(conversation_id))
        for message in incoming:
            ops.add_inserted(self.store.insert(conversation_id, message))

        log.info(
            "message-sync",
            conversation_id=conversation_id,
            strategy="rewrite",
            deleted=len(ops.deleted),
            inserted=len(ops.inserted),
        )
        return SyncResult(conversation_id=conversation_id, operations=ops.operations())

    # ---------------------------- Helpers --------------------------------

    @staticmethod
    def _log_result(kind: str, result: SyncResult) -> None:
        log.info(
            "intent-applied",
            kind=kind,
            conversation_id=result.conversation_id,
            client_operation=result.client_operation,
            inserted=len(result.operations.inserted),
            updated=len(result.operations.updated),
            deleted=len(result.operations.deleted),
            fork_conversation_id=result.fork_conversation_id,
        )


__all__ = ["OperationsTracker", "SyncOrchestrator"]
