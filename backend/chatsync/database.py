import logging
from contextlib import contextmanager
from typing import Any
from typing import Iterator

from sqlalchemy import Engine
from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from chatsync.config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()

# Create Base class
Base = declarative_base()


def make_engine(db_url: str, **kwargs) -> Engine:
    """Create a SQLAlchemy engine with the given URL and options.

    Args:
        db_url: Database connection URL
        **kwargs: Additional arguments for create_engine

    Returns:
        A SQLAlchemy Engine instance
    """
    connect_args = kwargs.pop("connect_args", {})
    is_sqlite = "sqlite" in db_url
    if is_sqlite:
        if "check_same_thread" not in connect_args:
            connect_args["check_same_thread"] = False
        # Busy timeout: a writer waiting on another conversation's
        # transaction gives up after this many seconds and rolls back.
        connect_args.setdefault("timeout", _settings.store_timeout_seconds)
    else:
        kwargs.setdefault("pool_pre_ping", True)

    engine = create_engine(db_url, connect_args=connect_args, **kwargs)

    if is_sqlite:
        # SQLite ignores ON DELETE CASCADE unless the pragma is on for every
        # connection.
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):  # noqa: D401 – event hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def make_sessionmaker(engine: Engine) -> sessionmaker:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` keeps attributes of returned rows readable
    after the sync transaction has committed.
    """

    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


# Default engine and sessionmaker instances for app usage.  Tests overwrite
# these via ``chatsync.database.default_session_factory = …``.
default_engine = make_engine(_settings.resolved_database_url)
default_session_factory = make_sessionmaker(default_engine)


def get_session_factory() -> sessionmaker:
    """Return the default session factory for the application."""

    return default_session_factory


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a session from the default factory."""

    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session(session_factory: Any = None) -> Iterator[Session]:
    """Database session context manager for scripts and background tasks.

    Commits on success, rolls back on error and always closes the session.

    Usage:
        with db_session() as db:
            SyncOrchestrator(db).legacy_sync(conversation_id, messages)
    """
    factory = session_factory or get_session_factory()
    session = factory()

    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database session rolled back due to error: {e}")
        raise
    finally:
        session.close()


def initialize_database(engine: Engine = None) -> None:
    """Create all tables using the given engine (defaults to default_engine)."""

    # Import the models so they are registered with Base
    from chatsync.models.models import Conversation  # noqa: F401
    from chatsync.models.models import Message  # noqa: F401
    from chatsync.models.models import ToolCall  # noqa: F401
    from chatsync.models.models import ToolOutput  # noqa: F401

    target_engine = engine or default_engine
    Base.metadata.create_all(bind=target_engine)


__all__ = [
    "Base",
    "make_engine",
    "make_sessionmaker",
    "default_engine",
    "default_session_factory",
    "get_session_factory",
    "get_db",
    "db_session",
    "initialize_database",
]
