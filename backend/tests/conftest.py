"""Shared test fixtures and configuration for backend tests."""
from typing import Optional

import jwt
import pytest
from fastapi.testclient import TestClient

from studysync.auth import set_verifier
from studysync.chat.manager import rooms
from studysync.chat.session import sessions
from studysync.config import AppConfig, set_config
from studysync.main import app
from studysync.membership import set_oracle
from studysync.store import StudyStore

TEST_SECRET = "test-secret"


def make_token(user_id, name: Optional[str] = None, secret: str = TEST_SECRET, **claims) -> str:
    """Issue a credential the way the external account service would."""
    payload = {"id": user_id, "email": f"user{user_id}@example.com", **claims}
    if name is not None:
        payload["name"] = name
    return jwt.encode(payload, secret, algorithm="HS256")


def _reset_singletons() -> None:
    set_verifier(None)
    set_oracle(None)
    StudyStore.reset_instance()
    rooms.clear()
    sessions.clear()


@pytest.fixture(autouse=True)
def test_config(tmp_path):
    """Point every test at its own DuckDB file and a known JWT secret."""
    config = AppConfig()
    config.database.path = str(tmp_path / "studysync.duckdb")
    config.secrets.jwt.secret_key = TEST_SECRET
    set_config(config)
    _reset_singletons()
    yield config
    _reset_singletons()
    set_config(None)


@pytest.fixture
def store(test_config):
    """The process-wide store, bound to the test database."""
    return StudyStore.get_instance(test_config.database.path)


@pytest.fixture
def client(store):
    """TestClient running the app lifespan, with one event loop for all sockets."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def group7(store):
    """Group 7 with members Alice (1) and Bob (2); Carol (3) is not a member."""
    store.upsert_user(1, "Alice")
    store.upsert_user(2, "Bob")
    store.upsert_user(3, "Carol")
    store.add_member(7, 1)
    store.add_member(7, 2)
    return 7


def room_size(registry, room_id: int) -> int:
    """Number of sessions live in a room."""
    return len(registry._rooms.get(room_id, ()))


def live_rooms(registry) -> list:
    """Ids of rooms with at least one live session."""
    return list(registry._rooms)
