"""Shared *Enum* definitions for SQLAlchemy & Pydantic models.

The Enums inherit from ``str`` so JSON serialisation renders plain strings
and equality checks against raw literals (``role == "user"``) keep working.
"""

from __future__ import annotations

from enum import Enum


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    DRAFT = "draft"
    STREAMING = "streaming"
    FINAL = "final"
    ERROR = "error"


class ToolOutputStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


__all__ = [
    "MessageRole",
    "MessageStatus",
    "ToolOutputStatus",
]
