"""Seam for the AI-provider adapter that produces reply messages.

An Append request persists the user's message(s) together with the reply the
provider generated for that turn.  Generating replies is outside this
service; deployments override :func:`get_reply_provider` with their adapter.
"""

from typing import Callable
from typing import List

from chatsync.schemas.schemas import AppendMessageIntent
from chatsync.schemas.schemas import IncomingMessage

ReplyProvider = Callable[[AppendMessageIntent], List[IncomingMessage]]


def no_replies(intent: AppendMessageIntent) -> List[IncomingMessage]:  # noqa: D401 – default adapter
    """Persist user messages only."""

    return []


def get_reply_provider() -> ReplyProvider:
    return no_replies


__all__ = ["ReplyProvider", "get_reply_provider", "no_replies"]
