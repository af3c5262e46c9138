"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from genielearn.config import AppSettings, DatabaseSettings, reset_config
from genielearn.main import create_app
from genielearn.services import build_services


@pytest.fixture
def services():
    """Fresh service bundle on an in-memory database."""
    bundle = build_services(AppSettings(database=DatabaseSettings(path=":memory:")))
    yield bundle
    bundle.registry.clear()
    bundle.close()


@pytest.fixture
def api_client(services):
    """Provide a TestClient for an app wired to the in-memory services.

    Used as a context manager so every request and socket shares one event
    loop (the gateway's fan-out locks live on it).
    """
    reset_config()
    app = create_app(services)
    with TestClient(app) as client:
        yield client
    reset_config()


@pytest.fixture
def alice(services):
    """(user_id, token) for a signed-in user."""
    return "alice", services.sessions.issue("alice", "Alice")


@pytest.fixture
def bob(services):
    return "bob", services.sessions.issue("bob", "Bob")


@pytest.fixture
def mallory(services):
    return "mallory", services.sessions.issue("mallory", "Mallory")


@pytest.fixture
def group(services, alice, bob):
    """A study group with Alice (creator) and Bob as members."""
    created = services.groups.create("G42", created_by="alice", creator_name="Alice")
    services.groups.add_member(created.id, "bob", "Bob")
    return created
