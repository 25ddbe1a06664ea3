"""FastAPI dependency that exposes the *current owner*.

Authentication happens upstream: the gateway in front of the service
resolves the session and forwards the caller's id in the ``X-User-Id``
header.  The engine only needs that opaque id to scope conversations.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header
from fastapi import HTTPException
from fastapi import status

OWNER_HEADER = "X-User-Id"


def get_current_owner(x_user_id: Optional[str] = Header(default=None, alias=OWNER_HEADER)) -> str:
    """Return the caller id or raise *401* when the header is missing."""

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {OWNER_HEADER} header",
        )
    return x_user_id.strip()


__all__ = ["OWNER_HEADER", "get_current_owner"]
