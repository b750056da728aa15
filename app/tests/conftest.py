import os

# Settings are read at import time; keep the app off real Redis and off disk.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCK_BACKEND", "local")
os.environ.setdefault("STORE_BACKEND", "sql")

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import Engine, StaticPool, create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.orm.session import Session  # noqa: E402

from app.core.locks import LocalEventLocks, RedisEventLocks  # noqa: E402
from app.database.db import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.services.ledger import RegistrationLedger  # noqa: E402
from app.stores.memory import MemoryStore  # noqa: E402
from app.stores.sql import SqlAlchemyStore  # noqa: E402

# Use an in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine: Engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Set up and tear down the database for the test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# Override the database dependency
def override_get_db():
    db: Session = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    """Client on the SQL store with process-local event locks."""
    app.state.memory_store = None
    app.state.event_locks = LocalEventLocks()
    app.state.event_delete_mode = "cancel"
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def memory_client():
    """Client on a fresh in-memory store."""
    app.state.memory_store = MemoryStore()
    app.state.event_locks = LocalEventLocks()
    app.state.event_delete_mode = "cancel"
    with TestClient(app) as test_client:
        yield test_client
    app.state.memory_store = None


@pytest.fixture
def fake_redis():
    server = fakeredis.FakeServer()
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture
def redis_client(fake_redis):
    """Route the app's event locks through fake Redis."""
    previous = app.state.event_locks
    app.state.event_locks = RedisEventLocks(fake_redis, timeout=10, blocking_timeout=5)
    yield fake_redis
    app.state.event_locks = previous


@pytest.fixture(params=["sql", "memory"])
def store(request, db_session):
    if request.param == "sql":
        return SqlAlchemyStore(db_session)
    return MemoryStore()


@pytest.fixture
def ledger(store):
    return RegistrationLedger(store, LocalEventLocks())


@pytest.fixture
def event_fields():
    return {
        "name": "Hack Night",
        "description": "Build something in one evening",
        "date": "2025-03-14",
        "time": "18:00",
        "venue": "Main Auditorium",
        "maxParticipants": 50,
        "category": "Technical",
    }


@pytest.fixture
def participant():
    def make(event_id: int, email: str = "ada@example.com", **extra) -> dict:
        return {
            "eventId": event_id,
            "participantName": "Ada Lovelace",
            "email": email,
            "phone": "+44 20 7946 0000",
            **extra,
        }

    return make
