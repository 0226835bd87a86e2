import asyncio

import pytest
from fastapi.testclient import TestClient

from sharecdn.config import Settings
from sharecdn.main import create_app

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def tmp_settings(tmp_path):
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        upload_dir=tmp_path / "uploads",
        env_path=tmp_path / ".env",
        rate_limit_tokens=20,
        rate_limit_refill=1.0,
        public_origin=None,
    )


@pytest.fixture
def app(tmp_settings):
    return create_app(tmp_settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def ctx(client, app):
    return app.state.context


@pytest.fixture
def admin_password(ctx):
    return ctx.initial_admin_password


@pytest.fixture
def upload_token(ctx):
    return ctx.upload_tokens.current_plaintext


def login(client, username, password):
    r = client.post("/api/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return r


def register(client, username, email, password="secret123"):
    return client.post(
        "/api/register", json={"username": username, "email": email, "password": password}
    )


@pytest.fixture
def admin_client(client, admin_password):
    login(client, "admin", admin_password)
    return client


@pytest.fixture
def user_client(app, client):
    """A second cookie jar on the same running app, logged in as ``alice``."""
    c = TestClient(app)
    r = register(c, "alice", "alice@example.com")
    assert r.status_code == 201, r.text
    login(c, "alice", "secret123")
    return c


def on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
