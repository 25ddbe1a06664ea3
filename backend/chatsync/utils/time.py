"""UTC timestamp helper for the persistence layer."""

from datetime import datetime
from datetime import timezone


def utc_now_naive() -> datetime:  # noqa: D401 – simple utility
    """Return *naive* current time in UTC.

    The ``DateTime`` columns are declared without timezone so SQLite and
    PostgreSQL round-trip the same value.
    """

    return datetime.now(timezone.utc).replace(tzinfo=None)


__all__ = ["utc_now_naive"]
