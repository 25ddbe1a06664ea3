"""Shared *structlog* logger.

The rest of the codebase can always ``from chatsync.utils.log import log`` and
call ``log.info("event-name", key=value)``.  Output is rendered as JSON so
sync decisions (diff stats, fallbacks, forks) can be queried in production.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

from chatsync.config import get_settings


def _level_from_settings() -> int:
    name = get_settings().log_level.upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


# Attach the default processor chain only if the application has not
# configured structlog already.
if not structlog.is_configured():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_from_settings()),
    )

# Keep the logger global so every import shares the same base instance.
log = structlog.get_logger("chatsync")


def get_logger(**bindings: Any):  # noqa: D401 – factory helper
    """Return a child/bound logger with optional key/value bindings."""

    return log.bind(**bindings)


__all__ = ["log", "get_logger"]
