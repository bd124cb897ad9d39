# Shared fixtures for the authorization layer tests.
# Created: 2026-10-12

import base64
import hashlib
import os
import secrets

import pytest
from fastapi.testclient import TestClient

from projectflow.api.oauth2.models import AuthenticatedUser
from projectflow.api.oauth2.server import AuthorizationServer
from projectflow.api.oauth2.storage import OAuthStorage
from projectflow.api.serve import create_api_app
from projectflow.config import Settings, reset_settings
from projectflow.security.sessions import InMemoryUserDirectory

BASE_URL = "https://flow.example"
RESOURCE = f"{BASE_URL}/api/mcp"
JWT_SECRET = "test-jwt-secret-that-is-long-enough-for-hs256"
SESSION_SECRET = "test-session-secret-0123456789abcdef"
REDIRECT_URI = "https://tool.example/cb"
NATIVE_REDIRECT = "cursor://anysphere.cursor-mcp/oauth/callback"


def make_pkce_pair():
    """Generate a PKCE code_verifier and code_challenge pair."""
    verifier = secrets.token_urlsafe(32)
    challenge = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )
    return verifier, challenge


def make_settings(**overrides) -> Settings:
    values = {
        "base_url": BASE_URL,
        "jwt_secret": JWT_SECRET,
        "session_secret": SESSION_SECRET,
        "environment": "test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("PROJECTFLOW_"):
            monkeypatch.delenv(name)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def storage():
    return OAuthStorage()


@pytest.fixture
def alice():
    return AuthenticatedUser(id="user-alice", email="alice@example.com", username="alice")


@pytest.fixture
def users(alice):
    return InMemoryUserDirectory([alice])


@pytest.fixture
def server(settings, storage):
    return AuthorizationServer(settings, storage=storage)


@pytest.fixture
def app(settings, storage, users):
    return create_api_app(settings, storage=storage, users=users)


@pytest.fixture
def client(app):
    return TestClient(app, base_url=BASE_URL, follow_redirects=False)


@pytest.fixture
def login(client, app, settings):
    """Give the test client a browser session for ``user_id``."""

    def _login(user_id: str = "user-alice") -> None:
        token = app.state.session_provider.create_token(user_id)
        client.cookies.set(settings.session_cookie_name, token)

    return _login
