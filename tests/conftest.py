# tests/conftest.py

import os
import tempfile
import time

import pytest
from unittest.mock import MagicMock

# Point the app at throwaway local resources before anything imports settings
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"eventvalidate_test_{os.getpid()}.db")
os.environ["ENV"] = "local"
os.environ["DATABASE_URL_LOCAL"] = f"sqlite:///{_TEST_DB_PATH}"

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from starlette.testclient import TestClient

from eventvalidate.api import deps
from eventvalidate.core.limiter import limiter
from eventvalidate.db.session import get_db
from eventvalidate.main import app
from eventvalidate.models import Base
from eventvalidate.services.one_time_codes import ConfirmationStore
from eventvalidate.services.validation.gateway import ValidationGateway


# --- Test Database Setup ---
engine = create_engine(
    f"sqlite:///{_TEST_DB_PATH}",
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="session", autouse=True)
def remove_test_database_file():
    yield
    engine.dispose()
    if os.path.exists(_TEST_DB_PATH):
        os.remove(_TEST_DB_PATH)


@pytest.fixture(scope="function")
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def session_factory():
    """For tests that need several independent sessions (concurrency)."""
    return TestingSessionLocal


# --- Redis stand-in ---
class FakeRedis:
    """Dict-backed subset of the redis client API used by ConfirmationStore."""

    def __init__(self):
        self.store = {}

    def _alive(self, key):
        item = self.store.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and time.monotonic() >= expires_at:
            del self.store[key]
            return None
        return value

    def set(self, key, value, nx=False, ex=None):
        if nx and self._alive(key) is not None:
            return None
        self.store[key] = (value, time.monotonic() + ex if ex else None)
        return True

    def get(self, key):
        return self._alive(key)

    def getdel(self, key):
        value = self._alive(key)
        self.store.pop(key, None)
        return value

    def expire_everything(self):
        """Simulate every TTL elapsing."""
        self.store.clear()


@pytest.fixture(scope="function")
def fake_redis():
    return FakeRedis()


@pytest.fixture(scope="function")
def confirmation_store(fake_redis):
    return ConfirmationStore(client=fake_redis, ttl_seconds=600)


class StubScorer:
    """Similarity scorer returning a preset score."""

    def __init__(self, score=0.9):
        self.next_score = score
        self.calls = []

    def score(self, reference, live):
        self.calls.append((reference, live))
        return self.next_score


@pytest.fixture(scope="function")
def stub_scorer():
    return StubScorer()


@pytest.fixture(scope="function")
def photos():
    """In-memory photo storage keyed by object path."""
    return {}


@pytest.fixture(scope="function")
def gateway(confirmation_store, stub_scorer, photos):
    return ValidationGateway(
        confirmations=confirmation_store,
        scorer=stub_scorer,
        photo_loader=photos.get,
    )


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def outbox_relay():
    return MagicMock(return_value=0)


@pytest.fixture(scope="function")
def client(gateway, confirmation_store, outbox_relay):
    """
    TestClient backed by the SQLite test database. Authentication is real
    (see tests/utils/auth.py); Redis, Kafka and photo storage are stubbed.
    """

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_confirmation_store] = lambda: confirmation_store
    app.dependency_overrides[deps.get_validation_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_outbox_relay] = lambda: outbox_relay
    limiter.reset()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
