"""Classify an aligned window into insert / update / delete / unchanged.

Everything here is pure: no session, no I/O.  The classifier receives the
stored snapshot, the incoming list and a successful :class:`Alignment`, and
returns a :class:`MessageDiff` that :class:`~chatsync.services.message_store.MessageStore`
can apply inside one transaction.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from dataclasses import field
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence

from chatsync.models.enums import MessageStatus
from chatsync.schemas.content import Content
from chatsync.schemas.schemas import IncomingMessage
from chatsync.schemas.schemas import StoredMessage
from chatsync.schemas.schemas import ToolCallPayload
from chatsync.schemas.schemas import ToolOutputPayload
from chatsync.services.alignment import Alignment
from chatsync.utils.log import log

# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass
class CallUpdate:
    """Replace the stored call at ``stored_index`` with ``payload``."""

    stored_index: int
    payload: ToolCallPayload


@dataclass
class ToolArtifactChanges:
    """Tool metadata changes for one message.

    ``replace_all`` means the granular diff could not be trusted; the store
    drops every child row and re-creates ``tool_calls`` / ``tool_outputs``.
    """

    replace_all: bool = False
    tool_calls: Optional[List[ToolCallPayload]] = None
    tool_outputs: Optional[List[ToolOutputPayload]] = None
    calls_to_update: List[CallUpdate] = field(default_factory=list)
    outputs_to_insert: List[ToolOutputPayload] = field(default_factory=list)
    outputs_to_update: List[ToolOutputPayload] = field(default_factory=list)
    outputs_to_delete: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        if self.replace_all:
            return False
        return not (
            self.calls_to_update
            or self.outputs_to_insert
            or self.outputs_to_update
            or self.outputs_to_delete
        )


@dataclass
class MessageUpdate:
    """In-place change of one stored message; ``None`` fields stay as stored."""

    content: Optional[Content] = None
    status: Optional[MessageStatus] = None
    tool_changes: Optional[ToolArtifactChanges] = None


@dataclass
class PlannedUpdate:
    existing: StoredMessage
    update: MessageUpdate


@dataclass
class MessageDiff:
    unchanged: List[StoredMessage] = field(default_factory=list)
    to_update: List[PlannedUpdate] = field(default_factory=list)
    to_delete: List[StoredMessage] = field(default_factory=list)
    to_insert: List[IncomingMessage] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.to_update or self.to_delete or self.to_insert)

    def stats(self) -> Dict[str, int]:
        return {
            "unchanged": len(self.unchanged),
            "updated": len(self.to_update),
            "deleted": len(self.to_delete),
            "inserted": len(self.to_insert),
        }


# ---------------------------------------------------------------------------
# Equality helpers
# ---------------------------------------------------------------------------


def _normalized_arguments(arguments: Optional[str]) -> str:
    raw = arguments or "{}"
    try:
        return json.dumps(json.loads(raw), sort_keys=True)
    except ValueError:
        return raw


def tool_calls_equal(a: ToolCallPayload, b: ToolCallPayload) -> bool:
    """Compare tool name and JSON-normalized arguments."""

    if a.function.name != b.function.name:
        return False
    return _normalized_arguments(a.function.arguments) == _normalized_arguments(b.function.arguments)


def tool_outputs_equal(a: ToolOutputPayload, b: ToolOutputPayload) -> bool:
    return a.tool_call_id == b.tool_call_id and a.status == b.status and a.output == b.output


def _tool_lists_equal(stored: Sequence, incoming: Optional[Sequence], equal) -> bool:
    if incoming is None:
        return True
    if len(stored) != len(incoming):
        return False
    return all(equal(a, b) for a, b in zip(stored, incoming))


def messages_equal(existing: StoredMessage, incoming: IncomingMessage) -> bool:
    """Return True when applying *incoming* over *existing* would change nothing."""

    if existing.role != incoming.role:
        return False
    if existing.body().signature() != incoming.body().signature():
        return False
    if incoming.status is not None and incoming.status != existing.status:
        return False
    if not _tool_lists_equal(existing.tool_calls, incoming.tool_calls, tool_calls_equal):
        return False
    return _tool_lists_equal(existing.tool_outputs, incoming.tool_outputs, tool_outputs_equal)


def ids_conflict(existing: StoredMessage, incoming: IncomingMessage) -> bool:
    return bool(incoming.id) and incoming.id != existing.id


# ---------------------------------------------------------------------------
# Tool artifact diff
# ---------------------------------------------------------------------------


def _replace_all(existing: StoredMessage, incoming: IncomingMessage, reason: str) -> ToolArtifactChanges:
    log.info("tool-artifact-fallback", message_id=existing.id, reason=reason)
    return ToolArtifactChanges(
        replace_all=True,
        tool_calls=incoming.tool_calls if incoming.tool_calls is not None else list(existing.tool_calls),
        tool_outputs=incoming.tool_outputs if incoming.tool_outputs is not None else list(existing.tool_outputs),
    )


def diff_tool_artifacts(existing: StoredMessage, incoming: IncomingMessage) -> Optional[ToolArtifactChanges]:
    """Compute the minimal child-row changes for one message.

    Returns ``None`` when nothing changes.  Incoming ``None`` lists keep the
    stored rows.  Calls are matched by call id when both sides carry one,
    else by index; outputs by ``tool_call_id``.  When the incoming calls
    cannot be paired one to one with the stored calls, all tool metadata is
    replaced instead.
    """

    changes = ToolArtifactChanges()

    if incoming.tool_calls is not None:
        stored_calls = list(existing.tool_calls)
        next_calls = incoming.tool_calls
        if len(stored_calls) != len(next_calls):
            return _replace_all(existing, incoming, "tool call count changed")

        incoming_ids = {call.id for call in next_calls if call.id}
        for stored in stored_calls:
            if stored.id and incoming_ids and stored.id not in incoming_ids:
                return _replace_all(existing, incoming, "stored tool call id vanished")

        by_id = {call.id: pos for pos, call in enumerate(stored_calls) if call.id}
        by_index = {call.index if call.index is not None else pos: pos for pos, call in enumerate(stored_calls)}
        claimed = set()
        for i, call in enumerate(next_calls):
            index = call.index if call.index is not None else i
            pos = by_id.get(call.id) if call.id else None
            if pos is None:
                pos = by_index.get(index)
            # Counts are equal, so an unmatched incoming call leaves a stored one unclaimed.
            if pos is None or pos in claimed:
                return _replace_all(existing, incoming, "tool calls do not pair up")
            claimed.add(pos)
            match = stored_calls[pos]
            payload = call.model_copy(update={"index": index})
            if not tool_calls_equal(match, call) or match.index != index:
                changes.calls_to_update.append(CallUpdate(stored_index=match.index, payload=payload))

    if incoming.tool_outputs is not None:
        stored_outputs = {output.tool_call_id: output for output in existing.tool_outputs}
        seen = set()
        for output in incoming.tool_outputs:
            seen.add(output.tool_call_id)
            match = stored_outputs.get(output.tool_call_id)
            if match is None:
                changes.outputs_to_insert.append(output)
            elif not tool_outputs_equal(match, output):
                changes.outputs_to_update.append(output)
        changes.outputs_to_delete = [key for key in stored_outputs if key not in seen]

    if changes.is_empty():
        return None
    return changes


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def plan_update(existing: StoredMessage, incoming: IncomingMessage) -> MessageUpdate:
    update = MessageUpdate()
    body = incoming.body()
    if body.signature() != existing.body().signature():
        update.content = body
    if incoming.status is not None and incoming.status != existing.status:
        update.status = incoming.status
    update.tool_changes = diff_tool_artifacts(existing, incoming)
    return update


def classify(
    existing: Sequence[StoredMessage],
    incoming: Sequence[IncomingMessage],
    alignment: Alignment,
) -> MessageDiff:
    """Walk the aligned window in lockstep and classify every position.

    Messages before ``anchor_offset`` are left untouched.  Stored messages
    past the end of the incoming list are deleted; incoming messages past
    the stored tail are inserted.  A position whose ids conflict or whose
    roles differ turns itself and everything after it into delete + insert.
    """

    if alignment.fallback:
        raise ValueError("cannot classify a fallback alignment")

    diff = MessageDiff()
    anchor = alignment.anchor_offset
    cut = alignment.overlap_length

    for i in range(alignment.overlap_length):
        old = existing[anchor + i]
        new = incoming[i]
        if ids_conflict(old, new) or old.role != new.role:
            cut = i
            break
        if messages_equal(old, new):
            diff.unchanged.append(old)
        else:
            diff.to_update.append(PlannedUpdate(existing=old, update=plan_update(old, new)))

    diff.to_delete = list(existing[anchor + cut :])
    diff.to_insert = list(incoming[cut:])
    return diff


__all__ = [
    "CallUpdate",
    "ToolArtifactChanges",
    "MessageUpdate",
    "PlannedUpdate",
    "MessageDiff",
    "tool_calls_equal",
    "tool_outputs_equal",
    "messages_equal",
    "ids_conflict",
    "diff_tool_artifacts",
    "plan_update",
    "classify",
]
