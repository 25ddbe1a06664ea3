"""Database models."""

from chatsync.models.models import Conversation
from chatsync.models.models import Message
from chatsync.models.models import ToolCall
from chatsync.models.models import ToolOutput

__all__ = [
    "Conversation",
    "Message",
    "ToolCall",
    "ToolOutput",
]
