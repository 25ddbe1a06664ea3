"""Exception types raised by the synchronization engine.

:class:`SyncError` subclasses are client-correctable outcomes.  Each carries a
stable ``code`` that the HTTP layer renders in the intent error envelope.
:class:`StoreError` covers infrastructure failures.  The transaction has
already been rolled back by the time either reaches a caller.
"""

from __future__ import annotations

from typing import Any
from typing import Dict
from typing import Optional


class SyncError(Exception):
    """Base exception for all client-visible synchronization failures."""

    code = "sync_error"

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        client_operation: Optional[str] = None,
    ):
        self.message = message
        self.details = details
        self.client_operation = client_operation
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        """Return the JSON error envelope for this failure."""

        payload: Dict[str, Any] = {
            "success": False,
            "error": "validation_error",
            "error_code": self.code,
            "message": self.message,
        }
        if self.client_operation:
            payload["client_operation"] = self.client_operation
        if self.details:
            payload["details"] = self.details
        return payload


class ConversationNotFound(SyncError):
    code = "conversation_not_found"

    def __init__(self, conversation_id: str, **kwargs):
        self.conversation_id = conversation_id
        super().__init__(
            "The specified conversation does not exist or does not belong to you",
            details={"field": "conversation_id", "actual": conversation_id},
            **kwargs,
        )


class MessageNotFound(SyncError):
    code = "message_not_found"

    def __init__(self, message_id: str, *, field: str = "message_id", **kwargs):
        self.message_id = message_id
        super().__init__(
            "The referenced message does not exist in this conversation",
            details={"field": field, "actual": message_id},
            **kwargs,
        )


class SeqMismatch(SyncError):
    """Optimistic lock failure: the message moved since the client read it."""

    code = "seq_mismatch"

    def __init__(self, *, expected_seq: int, actual_seq: int, field: str, **kwargs):
        self.expected_seq = expected_seq
        self.actual_seq = actual_seq
        super().__init__(
            "The sequence number does not match the current message sequence (optimistic lock failure)",
            details={"field": field, "expected_seq": expected_seq, "actual_seq": actual_seq},
            **kwargs,
        )


class NotLastMessage(SyncError):
    code = "not_last_message"

    def __init__(self, *, after_message_id: str, last_message_id: str, **kwargs):
        super().__init__(
            "Cannot append after a non-terminal message without truncate_after=true",
            details={"field": "after_message_id", "expected": last_message_id, "actual": after_message_id},
            **kwargs,
        )


class EditNotAllowed(SyncError):
    code = "edit_not_allowed"

    def __init__(self, *, role: str, **kwargs):
        super().__init__(
            "Only user messages can be edited",
            details={"field": "role", "expected": "user", "actual": role},
            **kwargs,
        )


class MissingRequiredField(SyncError):
    code = "missing_required_field"

    def __init__(self, field: str, message: Optional[str] = None, **kwargs):
        self.field = field
        super().__init__(message or f"Missing required field: {field}", details={"field": field}, **kwargs)


class ConversationMismatch(SyncError):
    code = "conversation_mismatch"

    def __init__(self, *, expected: str, actual: str, **kwargs):
        super().__init__(
            "The conversation_id in the intent does not match the addressed conversation",
            details={"field": "conversation_id", "expected": expected, "actual": actual},
            **kwargs,
        )


class LimitExceeded(SyncError):
    """Raised when a configured per-owner or per-conversation cap is hit."""

    def __init__(self, code: str, message: str, *, current: int, maximum: int, **kwargs):
        self.code = code
        super().__init__(message, details={"current": current, "max": maximum}, **kwargs)


# ---------------------------------------------------------------------------
# Store / infrastructure errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Raised when the message store fails (I/O, timeout, driver error)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class ConstraintViolation(StoreError):
    """Raised when a write would break a uniqueness invariant."""


class NotFound(StoreError):
    """Raised by point writes whose target row does not exist."""


__all__ = [
    "SyncError",
    "ConversationNotFound",
    "MessageNotFound",
    "SeqMismatch",
    "NotLastMessage",
    "EditNotAllowed",
    "MissingRequiredField",
    "ConversationMismatch",
    "LimitExceeded",
    "StoreError",
    "ConstraintViolation",
    "NotFound",
]
