import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

import cache
import config
from database import get_session, init_db, make_engine
from main import app


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(config, "REDIS_URL", None)
    monkeypatch.setattr(config, "STRICT_TRANSITIONS", False)
    monkeypatch.setattr(cache, "_redis_client", None)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


class FakeRedis:
    """Just enough of the redis client for the cache helpers."""

    def __init__(self):
        self.store = {}
        self.published = []

    def setex(self, key, ttl, value):
        self.store[key] = value

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)

    def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    def publish(self, channel, message):
        self.published.append((channel, message))


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache, "get_redis", lambda: fake)
    return fake
