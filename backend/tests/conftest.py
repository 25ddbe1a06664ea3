import os

# Must be set before the package reads its settings.
os.environ["TESTING"] = "1"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import chatsync.database as _db_mod  # noqa: E402
import chatsync.models  # noqa: E402,F401
from chatsync.database import Base  # noqa: E402
from chatsync.database import get_db  # noqa: E402
from chatsync.database import make_engine  # noqa: E402
from chatsync.database import make_sessionmaker  # noqa: E402
from chatsync.main import app  # noqa: E402
from chatsync.models.enums import MessageRole  # noqa: E402
from chatsync.schemas.schemas import IncomingMessage  # noqa: E402
from chatsync.services.message_store import MessageStore  # noqa: E402
from chatsync.services.sync_orchestrator import SyncOrchestrator  # noqa: E402

# Create a test database - using in-memory SQLite for tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

test_engine = make_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Use StaticPool for in-memory database
)

TestingSessionLocal = make_sessionmaker(test_engine)

_db_mod.default_session_factory = TestingSessionLocal

OWNER = "owner-1"


def _msg(role, content="", **kwargs) -> IncomingMessage:
    return IncomingMessage(role=MessageRole(role), content=content, **kwargs)


@pytest.fixture
def msg():
    """Shorthand factory: ``msg("user", "hi", id="m1")``."""

    return _msg


@pytest.fixture
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=test_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def store(db_session):
    return MessageStore(db_session)


@pytest.fixture
def orchestrator(db_session):
    return SyncOrchestrator(db_session)


@pytest.fixture
def seed_conversation(store, db_session):
    """Factory creating a committed conversation holding *messages*."""

    def _seed(messages, owner_id: str = OWNER, title=None) -> str:
        conversation = store.create_conversation(owner_id, title=title)
        for message in messages:
            store.insert(conversation.id, message)
        db_session.commit()
        return conversation.id

    return _seed


@pytest.fixture
def client(db_session):
    """
    Create a FastAPI TestClient with the test database dependency.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    client = TestClient(app)
    yield client

    app.dependency_overrides = {}
