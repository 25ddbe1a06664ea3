import json
from datetime import datetime
from typing import Annotated
from typing import Any
from typing import Dict
from typing import List
from typing import Literal
from typing import Optional
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import TypeAdapter
from pydantic import field_validator

from chatsync.models.enums import MessageRole
from chatsync.models.enums import MessageStatus
from chatsync.models.enums import ToolOutputStatus
from chatsync.schemas.content import Content
from chatsync.schemas.content import WireContent
from chatsync.schemas.content import from_stored
from chatsync.schemas.content import to_content


# ---------------------------------------------------------------------------
# Tool metadata
# ---------------------------------------------------------------------------


class ToolFunction(BaseModel):
    name: str
    arguments: str = "{}"

    @field_validator("arguments", mode="before")
    @classmethod
    def _serialize_arguments(cls, value: Any):
        # Providers sometimes hand over already-decoded argument objects.
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        if value is None:
            return "{}"
        return value


class ToolCallPayload(BaseModel):
    """A tool call in OpenAI wire format."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    type: Literal["function"] = "function"
    index: Optional[int] = None
    function: ToolFunction
    text_offset: Optional[int] = Field(default=None, alias="textOffset")

    @classmethod
    def from_row(cls, row) -> "ToolCallPayload":
        return cls(
            id=row.call_id,
            index=row.call_index,
            function=ToolFunction(name=row.tool_name, arguments=row.arguments),
            text_offset=row.text_offset,
        )


class ToolOutputPayload(BaseModel):
    tool_call_id: str
    output: str = ""
    status: ToolOutputStatus = ToolOutputStatus.SUCCESS

    @classmethod
    def from_row(cls, row) -> "ToolOutputPayload":
        return cls(tool_call_id=row.tool_call_id, output=row.output, status=row.status)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class IncomingMessage(BaseModel):
    """A message as supplied by a client or a provider adapter.

    ``status``, ``tool_calls`` and ``tool_outputs`` left as ``None`` mean "not
    supplied" and keep whatever is stored; an empty list means "no tool
    metadata".
    """

    id: Optional[str] = None
    role: MessageRole
    content: Optional[WireContent] = ""
    status: Optional[MessageStatus] = None
    tool_calls: Optional[List[ToolCallPayload]] = None
    tool_outputs: Optional[List[ToolOutputPayload]] = None

    def body(self) -> Content:
        return to_content(self.content)


class StoredMessage(BaseModel):
    """Detached snapshot of a persisted message, safe to use after commit."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    seq: int
    role: MessageRole
    status: MessageStatus
    content: str
    content_json: Optional[List[Dict[str, Any]]] = None
    tool_calls: List[ToolCallPayload] = Field(default_factory=list)
    tool_outputs: List[ToolOutputPayload] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "StoredMessage":
        return cls(
            id=row.id,
            conversation_id=row.conversation_id,
            seq=row.seq,
            role=row.role,
            status=row.status,
            content=row.content or "",
            content_json=row.content_json,
            tool_calls=[ToolCallPayload.from_row(call) for call in row.tool_calls],
            tool_outputs=[ToolOutputPayload.from_row(output) for output in row.tool_outputs],
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def body(self) -> Content:
        return from_stored(self.content, self.content_json)

    def to_incoming(self) -> IncomingMessage:
        """Return an insertable copy keeping id, role, content, status and tool metadata."""

        return IncomingMessage(
            id=self.id,
            role=self.role,
            content=self.body().to_wire(),
            status=self.status,
            tool_calls=[call.model_copy() for call in self.tool_calls],
            tool_outputs=[output.model_copy() for output in self.tool_outputs],
        )


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


class AppendMessageIntent(BaseModel):
    """Append user message(s) after a known anchor message.

    Cross-field requirements (anchor id and seq together, both required when
    ``conversation_id`` is set) are checked by the intent validator so they
    surface with a ``missing_required_field`` error code.
    """

    type: Literal["append"] = "append"
    conversation_id: Optional[str] = None
    after_message_id: Optional[str] = None
    after_seq: Optional[int] = Field(default=None, gt=0)
    truncate_after: bool = False
    messages: List[IncomingMessage] = Field(min_length=1)
    client_operation: Optional[str] = None

    @field_validator("messages")
    @classmethod
    def _only_user_messages(cls, messages: List[IncomingMessage]):
        for message in messages:
            if message.role != MessageRole.USER:
                raise ValueError("append intents may only carry user messages")
        return messages


class EditMessageIntent(BaseModel):
    """Replace the content of a user message guarded by its expected seq."""

    type: Literal["edit"] = "edit"
    message_id: str
    expected_seq: int = Field(gt=0)
    content: WireContent
    conversation_id: Optional[str] = None
    client_operation: Optional[str] = None


IntentEnvelope = Annotated[Union[AppendMessageIntent, EditMessageIntent], Field(discriminator="type")]

_intent_adapter = TypeAdapter(IntentEnvelope)


def parse_intent(payload: Dict[str, Any]) -> Union[AppendMessageIntent, EditMessageIntent]:
    """Validate a raw intent envelope and return the concrete intent model."""

    return _intent_adapter.validate_python(payload)


class LegacySyncRequest(BaseModel):
    messages: List[IncomingMessage] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class OperationRecord(BaseModel):
    id: str
    seq: int
    role: MessageRole


class Operations(BaseModel):
    inserted: List[OperationRecord] = Field(default_factory=list)
    updated: List[OperationRecord] = Field(default_factory=list)
    deleted: List[OperationRecord] = Field(default_factory=list)


class SyncResult(BaseModel):
    conversation_id: str
    client_operation: Optional[str] = None
    operations: Operations = Field(default_factory=Operations)
    fork_conversation_id: Optional[str] = None


class SyncResponse(SyncResult):
    success: bool = True


class MessagePage(BaseModel):
    messages: List[StoredMessage]
    next_after_seq: Optional[int] = None
    has_more: bool = False


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    parent_conversation_id: Optional[str] = None
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
